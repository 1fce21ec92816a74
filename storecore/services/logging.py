import json
import logging
import sys
from datetime import datetime


_LEVELS = {"debug": 10, "info": 20, "warning": 30, "error": 40, "critical": 50}
_threshold = _LEVELS["info"]


def configure_logging(level: str = "INFO") -> None:
    """Set the threshold for log_event and configure stdlib logging to match."""
    global _threshold
    name = (level or "INFO").lower()
    _threshold = _LEVELS.get(name, _LEVELS["info"])
    logging.basicConfig(
        level=_threshold,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def log_event(level: str, event: str, **fields) -> None:
    lvl = level.lower()
    if _LEVELS.get(lvl, _LEVELS["info"]) < _threshold:
        return
    payload = {
        "ts": datetime.utcnow().isoformat() + "Z",
        "level": lvl,
        "event": event,
    }
    payload.update(fields or {})
    try:
        sys.stdout.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")
    except (OSError, ValueError):
        # best-effort logging
        pass
