from __future__ import annotations

import json
import logging
import os
import sys
from typing import Optional

# request context the handlers attach with `extra=`
CONTEXT_FIELDS = ("path", "tile", "source")


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line:
      {"t": 1697, "lvl": "WARNING", "name": "tileserver.app", "msg": "Invalid zoom: 21",
       "tile": {"zoom": 21, "x": 0, "y": 0, "format": "png", "retina": false}}
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload = {
            "t": int(record.created * 1000),
            "lvl": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(level: Optional[str] = None, *, force: bool = False) -> None:
    """
    Install the JSON handler on the root logger.

    Level: `level`, else $LOG_LEVEL, else INFO. A second call is a no-op
    unless `force` is set (the CLI re-applies --log-level that way).
    uvicorn runs with log_config=None, so its records end up here too.
    """
    root = logging.getLogger()
    if getattr(root, "_tileserver_configured", False) and not force:
        return

    lvl_name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    lvl = logging.getLevelName(lvl_name)
    if not isinstance(lvl, int):
        lvl = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())

    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(lvl)
    root._tileserver_configured = True  # type: ignore[attr-defined]
