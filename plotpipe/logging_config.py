"""Logging setup shared by the command line and scripts.

Format examples:
    Human: 2026-01-12T09:14:03.201Z | INFO     | plotpipe.pipeline | Pipeline: executing grid
    JSON: {"t":"2026-01-12T09:14:03.201Z","lvl":"INFO","name":"plotpipe.pipeline","msg":"..."}

Repeated ``setup_logging`` calls replace the handler instead of adding one.
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

_handler: Optional[logging.Handler] = None


class PlotFormatter(logging.Formatter):
    """Single line records, human readable or JSON."""

    def __init__(self, fmt_mode: str = "human") -> None:
        super().__init__()
        self.fmt_mode = fmt_mode

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        stamp = ts.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
        if self.fmt_mode == "json":
            entry = {"t": stamp, "lvl": record.levelname, "name": record.name, "msg": record.getMessage()}
            if record.exc_info:
                entry["exc"] = self.formatException(record.exc_info)
            return json.dumps(entry)
        line = f"{stamp} | {record.levelname:8s} | {record.name} | {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(log_level: str = "INFO", fmt_mode: str = "human") -> logging.Handler:
    """Attach one stderr handler to the ``plotpipe`` logger."""
    global _handler
    if fmt_mode not in ("human", "json"):
        raise ValueError(f"Unknown log format: {fmt_mode!r}. Use 'human' or 'json'.")
    logger = logging.getLogger("plotpipe")
    if _handler is not None:
        logger.removeHandler(_handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(PlotFormatter(fmt_mode))
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, log_level.upper()))
    logging.captureWarnings(True)
    _handler = handler
    return handler


__all__ = ["PlotFormatter", "setup_logging"]
