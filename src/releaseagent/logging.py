"""
Logging setup for the releaseagent CLI.

Library modules only create loggers under "releaseagent" and never attach
handlers; the CLI calls configure_logging() at startup and again once the
release config, which may set the level, is loaded.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, UTC


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def configure_logging(
    level: int | str = logging.WARNING,
    json_format: bool = False,
) -> None:
    """Attach a single stderr handler to the "releaseagent" logger.

    Args:
        level: Logging level, as a number or a name ("DEBUG", "INFO", ...)
        json_format: If True, use JSON structured output. Otherwise human-readable.
    """
    root = logging.getLogger("releaseagent")
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
    root.addHandler(handler)
