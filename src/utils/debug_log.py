"""
Debug Log Utility

Provides optional, safe file-based debug logging for hanging protocol
navigation. Logs are written only when enabled via environment variable;
I/O failures are ignored so navigation never fails because of logging.

Inputs:
    - debug_log(location, message, data) calls from application code
    - Environment: HANGING_PROTOCOL_DEBUG_LOG (set to 1, true, or yes to enable)
    - Environment: HANGING_PROTOCOL_DEBUG_DIR (optional log directory override)

Outputs:
    - When enabled: appends JSON lines to <project_root>/.debug/hanging_protocol.log
    - When disabled or on error: no side effects

Requirements:
    - Standard library only: pathlib, os, json, time
"""

import json
import os
import time
from pathlib import Path
from typing import Any, Dict

# Project root: this file is src/utils/debug_log.py -> parent=utils, parent.parent=src, parent.parent.parent=project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


def is_debug_log_enabled() -> bool:
    """True when HANGING_PROTOCOL_DEBUG_LOG is 1, true or yes (case-insensitive)."""
    return os.getenv("HANGING_PROTOCOL_DEBUG_LOG", "0").strip().lower() in ("1", "true", "yes")


def get_debug_log_path() -> Path:
    """Location of the debug log file."""
    override = os.getenv("HANGING_PROTOCOL_DEBUG_DIR", "").strip()
    log_dir = Path(override) if override else _PROJECT_ROOT / ".debug"
    return log_dir / "hanging_protocol.log"


def debug_log(location: str, message: str, data: Dict[str, Any]) -> None:
    """
    Append one JSON log line when debug logging is enabled.

    Args:
        location: Call site identifier (e.g. "hanging_protocol_controller.py:set_hanging_protocol").
        message: Short description of the event.
        data: Context values; anything not JSON-serializable is written with str().
    """
    if not is_debug_log_enabled():
        return
    payload = {
        "location": location,
        "message": message,
        "data": data,
        "timestamp": int(time.time() * 1000),
    }
    try:
        log_path = get_debug_log_path()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(payload, default=str) + "\n")
    except OSError:
        pass
