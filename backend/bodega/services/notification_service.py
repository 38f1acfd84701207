# Overview: Notification sink for (message, severity) events emitted by mutating operations.

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

from ..time_utils import to_utc_z, utcnow

logger = logging.getLogger("bodega.notifications")

SUCCESS = "success"
ERROR = "error"
INFO = "info"
WARNING = "warning"

SEVERITIES = (SUCCESS, ERROR, INFO, WARNING)

_LOG_LEVELS = {
    SUCCESS: logging.INFO,
    INFO: logging.INFO,
    WARNING: logging.WARNING,
    ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class Notification:
    id: int
    message: str
    severity: str
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "message": self.message,
            "severity": self.severity,
            "timestamp": self.timestamp,
        }


@dataclass
class Notifier:
    """
    Fan-out of notification events.

    Every event is logged, kept in a short ring buffer the UI can poll, and
    handed to any registered sink callables.
    """
    maxlen: int = 50
    sinks: list[Callable[[Notification], None]] = field(default_factory=list)

    def __post_init__(self):
        self._recent: deque[Notification] = deque(maxlen=self.maxlen)
        self._lock = threading.Lock()
        self._next_id = 1

    def notify(self, message: str, severity: str = INFO) -> Notification:
        if severity not in SEVERITIES:
            raise ValueError(f"Unknown severity: {severity}")
        with self._lock:
            event = Notification(self._next_id, message, severity, to_utc_z(utcnow()))
            self._next_id += 1
            self._recent.append(event)
        logger.log(_LOG_LEVELS[severity], "%s", message)
        for sink in list(self.sinks):
            sink(event)
        return event

    def recent(self) -> list[Notification]:
        with self._lock:
            return list(self._recent)

    def clear(self) -> None:
        with self._lock:
            self._recent.clear()
