"""
User-facing notifications.

The orchestrator reports outcomes through a ``NotificationSink``; it never
reads anything back from it. The default sink writes to the log and keeps a
short in-memory history that the API exposes.
"""

from __future__ import annotations

from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, Protocol

from loguru import logger


@dataclass
class Notification:
    level: str  # "success" | "error"
    title: str
    message: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


class NotificationSink(Protocol):
    def success(self, title: str, message: str = "") -> None: ...

    def error(self, title: str, message: str = "") -> None: ...


class LoggingNotificationSink:
    def __init__(self, history_size: int = 100) -> None:
        self._history: Deque[Notification] = deque(maxlen=history_size)

    def success(self, title: str, message: str = "") -> None:
        logger.info("Notification: {} {}", title, message)
        self._history.append(Notification("success", title, message))

    def error(self, title: str, message: str = "") -> None:
        logger.warning("Notification error: {} {}", title, message)
        self._history.append(Notification("error", title, message))

    def recent(self, limit: Optional[int] = None) -> List[Notification]:
        """Most recent notifications, newest first."""
        items = list(reversed(self._history))
        if limit is not None:
            items = items[:limit]
        return items

    def clear(self) -> None:
        self._history.clear()
