"""
StructuredLogger - Leveled event log kept in a ring buffer and echoed to loguru.
"""

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Literal

from loguru import logger

LogLevel = Literal["debug", "info", "warn", "error"]

_LEVEL_ORDER: dict[str, int] = {"debug": 10, "info": 20, "warn": 30, "error": 40}
_LOGURU_LEVELS: dict[str, str] = {
    "debug": "DEBUG",
    "info": "INFO",
    "warn": "WARNING",
    "error": "ERROR",
}


@dataclass
class LogEvent:
    """A single structured log record."""

    level: LogLevel
    message: str
    context: dict[str, Any] = field(default_factory=dict)
    timestamp: float = 0.0
    request_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp,
            "request_id": self.request_id,
        }


def normalize_level(level: str) -> LogLevel:
    """Map ``WARNING``/``warning``/``warn`` style names to a LogLevel."""
    name = level.lower()
    if name == "warning":
        name = "warn"
    if name not in _LEVEL_ORDER:
        raise ValueError(f"Unknown log level: {level}")
    return name  # type: ignore[return-value]


class StructuredLogger:
    """
    Keeps the most recent log events for dashboards.

    Events below ``min_level`` are neither stored nor echoed.
    """

    def __init__(
        self,
        max_size: int = 500,
        min_level: str = "debug",
        clock: Callable[[], float] = time.time,
        echo: bool = True,
    ):
        self._events: deque[LogEvent] = deque(maxlen=max_size)
        self._min_level = _LEVEL_ORDER[normalize_level(min_level)]
        self._clock = clock
        self._echo = echo

    def _log(
        self,
        level: LogLevel,
        message: str,
        context: dict[str, Any] | None = None,
        request_id: str | None = None,
    ) -> None:
        if _LEVEL_ORDER[level] < self._min_level:
            return

        event = LogEvent(
            level=level,
            message=message,
            context=dict(context or {}),
            timestamp=self._clock(),
            request_id=request_id,
        )
        self._events.append(event)

        if self._echo:
            logger.bind(**{**event.context, "request_id": request_id}).log(
                _LOGURU_LEVELS[level], message
            )

    def debug(self, message: str, context: dict[str, Any] | None = None, request_id: str | None = None) -> None:
        self._log("debug", message, context, request_id)

    def info(self, message: str, context: dict[str, Any] | None = None, request_id: str | None = None) -> None:
        self._log("info", message, context, request_id)

    def warn(self, message: str, context: dict[str, Any] | None = None, request_id: str | None = None) -> None:
        self._log("warn", message, context, request_id)

    def error(self, message: str, context: dict[str, Any] | None = None, request_id: str | None = None) -> None:
        self._log("error", message, context, request_id)

    def get_logs(self, level: str | None = None, since: float | None = None) -> list[LogEvent]:
        """Return stored events filtered by exact level and/or start time."""
        events: list[LogEvent] = list(self._events)
        if level is not None:
            wanted = normalize_level(level)
            events = [e for e in events if e.level == wanted]
        if since is not None:
            events = [e for e in events if e.timestamp >= since]
        return events

    def __len__(self) -> int:
        return len(self._events)
