# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Structured logging and log-once helpers."""

import logging
import json
import sys
from typing import Any


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        event_id = getattr(record, "event_id", None)
        if event_id is not None:
            log_entry["event_id"] = event_id
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = str(record.exc_info[1])
        return json.dumps(log_entry)


class TextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        msg = super().format(record)
        event_id = getattr(record, "event_id", None)
        if event_id is not None:
            msg = f"{msg} [event {event_id}]"
        return msg


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    root = logging.getLogger("auditprov")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            TextFormatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
    root.addHandler(handler)


class OnceLogger:
    """Emit a message at most once per distinct key.

    Unknown record types and unsupported syscalls repeat on every event,
    so they are reported the first time only.
    """

    def __init__(self, logger: logging.Logger, level: int = logging.WARNING) -> None:
        self._logger = logger
        self._level = level
        self._seen: set[str] = set()

    def log(self, key: str, msg: str, *args: object) -> bool:
        if key in self._seen:
            return False
        self._seen.add(key)
        self._logger.log(self._level, msg, *args)
        return True

    def __contains__(self, key: str) -> bool:
        return key in self._seen
