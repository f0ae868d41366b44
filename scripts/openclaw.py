"""openclaw adapter — runs the openclaw CLI and relays its output.

All subprocess calls use list args (never shell=True) with timeouts, so
message text reaches the CLI verbatim without quoting.
"""

from __future__ import annotations

import json
import logging
import os
import re
import subprocess

logger = logging.getLogger(__name__)

OPENCLAW_BIN = os.environ.get("OPENCLAW_BIN", "openclaw")
DEFAULT_TIMEOUT = 30
TIMEOUT_GRACE = 30

KILL_MESSAGE = "MISSION_COMPLETE - End session now"
MAIN_SESSION_MARKER = ":main:main"

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*[a-zA-Z]")


def _strip_ansi(text: str) -> str:
    return _ANSI_RE.sub("", text)


def _result(success: bool, output: str | None, error: str | None = None) -> dict:
    return {"success": success, "output": output or "", "error": error}


def run(args: list[str], timeout: int = DEFAULT_TIMEOUT) -> dict:
    """Run openclaw with list args. Returns {success, output, error}."""
    cmd = [OPENCLAW_BIN, *args]
    try:
        result = subprocess.run(
            cmd, capture_output=True, text=True, timeout=timeout
        )
    except FileNotFoundError:
        logger.warning("openclaw executable not found: %s", OPENCLAW_BIN)
        return _result(False, "", f"openclaw not found: {OPENCLAW_BIN}")
    except subprocess.TimeoutExpired as e:
        logger.warning("openclaw timed out after %ss: %s", timeout, cmd)
        partial = e.stdout
        if isinstance(partial, bytes):
            partial = partial.decode("utf-8", errors="replace")
        return _result(False, partial, f"openclaw timed out after {timeout}s")

    if result.returncode != 0:
        stderr = _strip_ansi(result.stderr or "").strip()
        error = stderr or f"openclaw exited with code {result.returncode}"
        logger.warning("openclaw failed (%s): %s", result.returncode, cmd)
        return _result(False, result.stdout, error)
    return _result(True, result.stdout)


def parse_json_lines(text: str | None) -> list:
    """Parse newline-delimited JSON, skipping lines that are not JSON."""
    if not text:
        return []
    items = []
    for line in text.strip().split("\n"):
        line = line.strip()
        if not line:
            continue
        try:
            items.append(json.loads(line))
        except json.JSONDecodeError:
            continue
    return items


# ── Gateway ───────────────────────────────────────────────


def gateway_status() -> dict:
    return run(["gateway", "status"])


def gateway_restart() -> dict:
    return run(["gateway", "restart"])


# ── Sessions ──────────────────────────────────────────────


def list_sessions() -> dict:
    return run(["sessions", "list", "--json"])


def send_message(key: str, message: str, timeout: int = 60) -> dict:
    """Send a message to a session and wait up to `timeout` seconds for a reply."""
    return run(
        ["sessions", "send", key, message, "--timeout", str(timeout)],
        timeout=timeout + TIMEOUT_GRACE,
    )


def kill_session(key: str, timeout: int = 10) -> dict:
    """Ask a session to end itself."""
    return send_message(key, KILL_MESSAGE, timeout=timeout)


def set_model(key: str, model: str) -> dict:
    return send_message(key, f"/model {model}", timeout=10)


def spawn_session(
    task: str,
    label: str | None = None,
    model: str | None = None,
    timeout: int = 3600,
) -> dict:
    """Spawn a new agent session working on `task`."""
    args = ["sessions", "spawn", task]
    if label:
        args += ["--label", label]
    if model:
        args += ["--model", model]
    args += ["--timeout", str(timeout)]
    return run(args, timeout=timeout + TIMEOUT_GRACE)


def kill_all(timeout: int = 5) -> int:
    """Send the kill message to every session except main. Returns count sent."""
    listing = list_sessions()
    count = 0
    for session in parse_json_lines(listing["output"]):
        if not isinstance(session, dict):
            continue
        key = session.get("key")
        if not isinstance(key, str) or not key or MAIN_SESSION_MARKER in key:
            continue
        kill_session(key, timeout=timeout)
        count += 1
    return count


# ── Cron ──────────────────────────────────────────────────


def list_cron_jobs() -> dict:
    return run(["cron", "list", "--json"])
