"""Structured, leveled log events returned alongside results.

Components record what they did through an `EventLog`. Every event is kept
on the log (so callers can decide whether to show it) and forwarded to the
stdlib logger with the structured fields attached under `extra`.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class LogEvent(BaseModel):
    level: str
    message: str
    fields: Dict[str, Any] = Field(default_factory=dict)


class EventLog:
    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger or logging.getLogger(__name__)
        self.events: List[LogEvent] = []

    def record(self, level: int, message: str, **fields: Any) -> LogEvent:
        event = LogEvent(level=logging.getLevelName(level), message=message, fields=fields)
        self.events.append(event)
        self._logger.log(level, message, extra={"event_fields": fields})
        return event

    def debug(self, message: str, **fields: Any) -> LogEvent:
        return self.record(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields: Any) -> LogEvent:
        return self.record(logging.INFO, message, **fields)

    def warning(self, message: str, **fields: Any) -> LogEvent:
        return self.record(logging.WARNING, message, **fields)

    def error(self, message: str, **fields: Any) -> LogEvent:
        return self.record(logging.ERROR, message, **fields)
