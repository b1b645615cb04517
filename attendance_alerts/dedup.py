"""In-memory tracking of alert ids already notified this session."""

from threading import Lock
from typing import Set


class DedupTracker:
    """
    Set of alert ids that have already produced a notification.

    One instance per recipient session. Nothing is persisted: after a
    restart, items that are still unread will notify again.
    """

    __slots__ = ("scope", "_seen", "_lock")

    def __init__(self, scope: str = ""):
        self.scope = scope
        self._seen: Set[str] = set()
        self._lock = Lock()

    def admit(self, alert_id: str) -> bool:
        """
        Record `alert_id` and report whether it is new.

        The check and the insert happen under one lock so two callbacks
        racing on the same id cannot both be admitted.
        """
        key = str(alert_id)
        with self._lock:
            if key in self._seen:
                return False
            self._seen.add(key)
            return True

    def seen(self, alert_id: str) -> bool:
        with self._lock:
            return str(alert_id) in self._seen

    def clear(self) -> None:
        with self._lock:
            self._seen.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)
