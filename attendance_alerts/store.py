"""Alert and schedule store interfaces, plus in-memory implementations."""

import copy
import logging
from abc import ABC, abstractmethod
from threading import RLock
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .models import READ, RecipientKey, RecipientRecord, Snapshot

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[Snapshot], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


class AlertStore(ABC):
    """Document store holding one alert record per recipient."""

    @abstractmethod
    def subscribe(
        self,
        key: RecipientKey,
        on_update: UpdateCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        """
        Watch a recipient record.

        Args:
            key: Record to watch.
            on_update: Called with a Snapshot for every change, in order.
            on_error: Called when the watch hits a transport error.

        Returns:
            A callable that stops the watch.
        """
        pass

    @abstractmethod
    def read(self, key: RecipientKey) -> RecipientRecord:
        """Read the current record (empty when missing)."""
        pass

    @abstractmethod
    def mark_read(self, key: RecipientKey, ids: Iterable[str]) -> None:
        """Set status=read on the given item ids of one record."""
        pass


class ScheduleStore(ABC):
    """Source of weekly schedules, keyed by student id."""

    @abstractmethod
    def read_schedule(self, entity_id: str) -> Optional[Any]:
        """Return the stored schedule document, or None if there is none."""
        pass


class InMemoryAlertStore(AlertStore):
    """
    Dict-backed alert store that pushes snapshots to subscribers.

    Writes flagged as local are emitted twice, the way a client-side
    document cache does: once optimistically from cache with pending
    writes, then again once the "server" confirms.
    """

    def __init__(self, initial_from_cache: bool = True):
        self._records: Dict[RecipientKey, Any] = {}
        self._subscribers: Dict[RecipientKey, List[Tuple[UpdateCallback, ErrorCallback]]] = {}
        self._lock = RLock()
        self._initial_from_cache = initial_from_cache

    def subscribe(self, key, on_update, on_error):
        entry = (on_update, on_error)
        with self._lock:
            self._subscribers.setdefault(key, []).append(entry)
            initial = self._snapshot(key, from_cache=self._initial_from_cache)
        on_update(initial)

        def unsubscribe() -> None:
            with self._lock:
                subscribers = self._subscribers.get(key, [])
                if entry in subscribers:
                    subscribers.remove(entry)

        return unsubscribe

    def read(self, key):
        with self._lock:
            items = self._records.get(key)
            exists = key in self._records
        items = copy.deepcopy(items) if isinstance(items, list) else []
        return RecipientRecord(key=key, items=items, exists=exists)

    def mark_read(self, key, ids):
        wanted = {str(i) for i in ids}
        with self._lock:
            items = self._records.get(key)
            if not isinstance(items, list):
                return
            for item in items:
                if isinstance(item, dict) and str(item.get("id")) in wanted:
                    item["status"] = READ
        self._emit(key)

    def add_item(self, key: RecipientKey, item: Dict[str, Any], local: bool = False) -> None:
        """Append an item to a record, creating the record if needed."""
        with self._lock:
            items = self._records.get(key)
            if not isinstance(items, list):
                items = []
                self._records[key] = items
            items.append(copy.deepcopy(item))
        if local:
            self._emit(key, from_cache=True, has_pending_writes=True)
        self._emit(key)

    def set_items(self, key: RecipientKey, items: Any) -> None:
        """Overwrite the raw items field (may be malformed on purpose)."""
        with self._lock:
            self._records[key] = copy.deepcopy(items)
        self._emit(key)

    def replay_from_cache(self, key: RecipientKey) -> None:
        """Re-emit the record as a stale cache read with no pending writes."""
        self._emit(key, from_cache=True)

    def fail(self, key: RecipientKey, error: Exception) -> None:
        """Deliver a transport error to every watcher of a record."""
        with self._lock:
            subscribers = list(self._subscribers.get(key, []))
        for _on_update, on_error in subscribers:
            on_error(error)

    def subscriber_count(self, key: RecipientKey) -> int:
        with self._lock:
            return len(self._subscribers.get(key, []))

    def _snapshot(self, key, from_cache=False, has_pending_writes=False) -> Snapshot:
        return Snapshot(
            key=key,
            items=copy.deepcopy(self._records.get(key)),
            exists=key in self._records,
            from_cache=from_cache,
            has_pending_writes=has_pending_writes,
        )

    def _emit(self, key, from_cache=False, has_pending_writes=False) -> None:
        with self._lock:
            subscribers = list(self._subscribers.get(key, []))
            snapshot = self._snapshot(key, from_cache, has_pending_writes)
        for on_update, _on_error in subscribers:
            on_update(snapshot)


class InMemoryScheduleStore(ScheduleStore):
    """Dict-backed schedule store."""

    def __init__(self, schedules: Optional[Dict[str, Any]] = None):
        self._schedules = dict(schedules or {})
        self._lock = RLock()

    def put_schedule(self, entity_id: str, schedule: Any) -> None:
        with self._lock:
            self._schedules[str(entity_id)] = copy.deepcopy(schedule)

    def read_schedule(self, entity_id):
        with self._lock:
            schedule = self._schedules.get(str(entity_id))
        return copy.deepcopy(schedule)
