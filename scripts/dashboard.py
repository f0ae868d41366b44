# /// script
# requires-python = ">=3.11"
# dependencies = ["fastapi[standard]"]
# ///
"""Mission Control — FastAPI dashboard for openclaw agent sessions.

Run: uv run scripts/dashboard.py
Open: http://localhost:3000
"""

import argparse
import asyncio
import logging
import os
import re
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, Field, StrictInt
from starlette.exceptions import HTTPException as StarletteHTTPException

SCRIPT_DIR = Path(__file__).resolve().parent

# Import openclaw from same directory
sys.path.insert(0, str(SCRIPT_DIR))
import openclaw  # noqa: E402

logger = logging.getLogger(__name__)

HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "3000"))
GATEWAY_URL = os.environ.get("GATEWAY_URL", "http://127.0.0.1:18789")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

SESSION_KEY_RE = re.compile(r"^[^\s\x00-\x1f\x7f\-][^\s\x00-\x1f\x7f]{0,255}$")


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    logger.info(
        "Proxying openclaw CLI (%s), gateway %s", openclaw.OPENCLAW_BIN, GATEWAY_URL
    )
    yield
    logger.info("Mission Control shutting down")


app = FastAPI(title="Mission Control", lifespan=_lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.mount("/static", StaticFiles(directory=str(SCRIPT_DIR / "static")), name="static")
templates = Jinja2Templates(directory=str(SCRIPT_DIR / "templates"))


# ── Request bodies ───────────────────────────────────────


class MessageRequest(BaseModel):
    message: str = Field(min_length=1)
    timeout: StrictInt = Field(60, ge=1)


class ModelRequest(BaseModel):
    model: str = Field(min_length=1)


class SpawnRequest(BaseModel):
    task: str = Field(min_length=1)
    label: str | None = None
    model: str | None = None
    timeout: StrictInt = Field(3600, ge=1)


# ── Error handling ───────────────────────────────────────


def _error(
    message: str, status_code: int, headers: dict[str, str] | None = None
) -> JSONResponse:
    return JSONResponse(
        {"success": False, "error": message}, status_code=status_code, headers=headers
    )


@app.exception_handler(StarletteHTTPException)
async def _http_error(request: Request, exc: StarletteHTTPException):
    return _error(str(exc.detail), exc.status_code, getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def _validation_error(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        problems.append(f"{field}: {err['msg']}" if field else err["msg"])
    return _error("; ".join(problems) or "Invalid request", 400)


@app.exception_handler(Exception)
async def _unhandled_error(request: Request, exc: Exception):
    logger.error(
        "Unhandled error in %s %s", request.method, request.url.path, exc_info=exc
    )
    return _error(str(exc) or type(exc).__name__, 500)


# ── Helpers ──────────────────────────────────────────────


def _validate_session_key(key: str) -> bool:
    """Reject keys the CLI would read as flags or that carry whitespace."""
    return bool(SESSION_KEY_RE.match(key))


def _invalid_key() -> JSONResponse:
    return _error("Invalid session key", 400)


def _relay(result: dict) -> dict:
    """Shape a CLI result for endpoints that pass the output straight through."""
    return {
        "success": result["success"],
        "result": result["output"],
        "error": result["error"],
    }


# ── Routes: Status ───────────────────────────────────────


@app.get("/api/health")
async def health():
    status = await asyncio.to_thread(openclaw.gateway_status)
    return {
        "success": True,
        "gateway": status["success"],
        "gateway_url": GATEWAY_URL,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/api/agents")
async def list_agents():
    result = await asyncio.to_thread(openclaw.list_sessions)
    if not result["success"]:
        return {"success": False, "error": result["error"]}
    return {"success": True, "agents": openclaw.parse_json_lines(result["output"])}


@app.get("/api/cron")
async def list_cron():
    result = await asyncio.to_thread(openclaw.list_cron_jobs)
    return {"success": True, "jobs": openclaw.parse_json_lines(result["output"])}


# ── Routes: Session actions ──────────────────────────────


@app.post("/api/agents/spawn")
async def spawn_agent(body: SpawnRequest):
    result = await asyncio.to_thread(
        openclaw.spawn_session, body.task, body.label, body.model, body.timeout
    )
    return _relay(result)


@app.post("/api/agents/{key:path}/message")
async def message_agent(key: str, body: MessageRequest):
    if not _validate_session_key(key):
        return _invalid_key()
    result = await asyncio.to_thread(
        openclaw.send_message, key, body.message, body.timeout
    )
    return _relay(result)


@app.post("/api/agents/{key:path}/kill")
async def kill_agent(key: str):
    if not _validate_session_key(key):
        return _invalid_key()
    result = await asyncio.to_thread(openclaw.kill_session, key)
    return {"success": True, "message": "Kill signal sent", "result": result["output"]}


@app.post("/api/agents/{key:path}/model")
async def change_model(key: str, body: ModelRequest):
    if not _validate_session_key(key):
        return _invalid_key()
    result = await asyncio.to_thread(openclaw.set_model, key, body.model)
    return {
        "success": True,
        "message": f"Model change requested: {body.model}",
        "result": result["output"],
    }


# ── Routes: Emergency ────────────────────────────────────


@app.post("/api/emergency/kill-all")
async def emergency_kill_all():
    count = await asyncio.to_thread(openclaw.kill_all)
    logger.warning("Emergency kill-all terminated %d agents", count)
    return {"success": True, "count": count, "message": f"Terminated {count} agents"}


@app.post("/api/emergency/restart-gateway")
async def emergency_restart_gateway():
    logger.warning("Emergency gateway restart requested")
    result = await asyncio.to_thread(openclaw.gateway_restart)
    return _relay(result)


# ── Routes: Dashboard page ───────────────────────────────


@app.get("/", response_class=HTMLResponse)
async def index(request: Request):
    return templates.TemplateResponse(
        request, "mission-control.html", {"gateway_url": GATEWAY_URL}
    )


# ── CLI args ─────────────────────────────────────────────


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Mission Control dashboard")
    parser.add_argument("--host", default=HOST, help=f"Bind host (default: {HOST})")
    parser.add_argument(
        "--port", type=int, default=PORT, help=f"Bind port (default: {PORT})"
    )
    parser.add_argument(
        "--openclaw-bin",
        default=openclaw.OPENCLAW_BIN,
        help=f"openclaw executable (default: {openclaw.OPENCLAW_BIN})",
    )
    parser.add_argument(
        "--log-level", default=LOG_LEVEL, help=f"Log level (default: {LOG_LEVEL})"
    )
    return parser.parse_args(argv)


# ── Main ──────────────────────────────────────────────────


def main(argv: list[str] | None = None) -> None:
    import uvicorn

    args = _parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    openclaw.OPENCLAW_BIN = args.openclaw_bin
    logger.info("Mission Control running on http://%s:%d", args.host, args.port)
    logger.info("Gateway: %s", GATEWAY_URL)
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
