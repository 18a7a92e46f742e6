from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

STATUS_PENDING = "pending"
STATUS_SUCCESS = "success"
STATUS_ERROR = "error"
_STATUSES = (STATUS_PENDING, STATUS_SUCCESS, STATUS_ERROR)


@dataclass(frozen=True)
class ActionLogEntry:
    id: str
    message: str
    status: str
    timestamp: datetime
    start_time: float
    link: Optional[str] = None
    link_text: Optional[str] = None
    duration_ms: Optional[int] = None

    def to_state(self) -> Dict[str, Any]:
        state: Dict[str, Any] = {
            "id": self.id,
            "message": self.message,
            "status": self.status,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.link:
            state["link"] = self.link
        if self.link_text:
            state["linkText"] = self.link_text
        if self.duration_ms is not None:
            state["durationMs"] = self.duration_ms
        return state


@dataclass(frozen=True)
class TransferEvent:
    """One status update emitted by the orchestrator.

    ``replace_last`` asks the reporter to rewrite the current line instead of
    starting a new one.
    """

    stage: str
    message: str
    status: str = STATUS_PENDING
    link: Optional[str] = None
    link_text: Optional[str] = None
    replace_last: bool = False


class StatusReporter:
    """Append-only action log whose last entry may be rewritten in place."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: List[ActionLogEntry] = []
        self._lock = threading.Lock()

    @staticmethod
    def _check_status(status: str) -> None:
        if status not in _STATUSES:
            raise ValueError(f"Unknown action status {status!r}.")

    def append(
        self,
        message: str,
        status: str = STATUS_PENDING,
        link: Optional[str] = None,
        link_text: Optional[str] = None,
        start_time: Optional[float] = None,
    ) -> str:
        self._check_status(status)
        now = self._clock()
        entry = ActionLogEntry(
            id=f"{int(now * 1000)}{uuid.uuid4().hex[:9]}",
            message=message,
            status=status,
            timestamp=datetime.fromtimestamp(now, tz=timezone.utc),
            start_time=start_time if start_time is not None else now,
            link=link,
            link_text=link_text,
            duration_ms=int((now - start_time) * 1000) if start_time is not None else None,
        )
        with self._lock:
            self._entries.append(entry)
        return entry.id

    def update_last(
        self,
        message: str,
        status: str,
        link: Optional[str] = None,
        link_text: Optional[str] = None,
    ) -> str:
        self._check_status(status)
        now = self._clock()
        with self._lock:
            if not self._entries:
                last = None
            else:
                last = self._entries[-1]
                self._entries[-1] = replace(
                    last,
                    message=message,
                    status=status,
                    link=link if link is not None else last.link,
                    link_text=link_text if link_text is not None else last.link_text,
                    duration_ms=int((now - last.start_time) * 1000),
                )
        if last is None:
            return self.append(message, status, link, link_text)
        return last.id

    def apply(self, event: TransferEvent) -> str:
        if event.replace_last:
            return self.update_last(event.message, event.status, event.link, event.link_text)
        return self.append(event.message, event.status, event.link, event.link_text)

    @property
    def entries(self) -> Tuple[ActionLogEntry, ...]:
        with self._lock:
            return tuple(self._entries)

    @property
    def last(self) -> Optional[ActionLogEntry]:
        with self._lock:
            return self._entries[-1] if self._entries else None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
