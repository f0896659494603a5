import json
import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal

logger = logging.getLogger(__name__)


def _default(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return repr(value)


def log_event(level: str, event: str, **fields) -> None:
    """Write one JSON line describing a domain event to stdout."""
    payload = {
        "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "level": level.lower(),
        "event": event,
    }
    payload.update(fields or {})
    try:
        sys.stdout.write(json.dumps(payload, ensure_ascii=False, default=_default) + "\n")
    except (OSError, ValueError):
        logger.warning("could not write event %s", event)
