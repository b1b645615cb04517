"""Real-time alert listeners: one subscription per recipient record.

Every update event for a watched record is filtered, reduced to its
unread items, and passed through that recipient's DedupTracker; only
items seen for the first time are formatted and handed to the
dispatcher. Nothing in here raises into the store's callback thread.
"""

import logging
from enum import Enum
from threading import Lock, RLock
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .dedup import DedupTracker
from .errors import (
    CONNECTION_NOTICE_MESSAGE,
    CONNECTION_NOTICE_TITLE,
    NoticeSink,
    is_connection_error,
)
from .formatter import format_alert
from .models import AlertItem, Notification, RecipientKey, Role, Snapshot
from .store import AlertStore, Unsubscribe

logger = logging.getLogger(__name__)

ADMIN_INBOX = "inbox"
ADMIN_TARGET = "Admin"


class SubscriptionState(str, Enum):
    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBING = "subscribing"
    ACTIVE = "active"
    ERROR = "error"


def resolve_recipient_key(
    role: str,
    user_id: str,
    student_id: Optional[str] = None,
    parent_id: Optional[str] = None,
) -> Optional[RecipientKey]:
    """
    Which alert record a signed-in user watches.

    Students watch their student-number record, parents their canonical
    (dashed) parent id when they have one, else their uid, and every
    admin shares one inbox.
    """
    try:
        role_ = Role(str(role or "").strip().lower())
    except ValueError:
        return None

    if role_ == Role.STUDENT:
        return RecipientKey(role_, str(student_id)) if student_id else None
    if role_ == Role.PARENT:
        canonical = str(parent_id or "").strip()
        doc_id = canonical if "-" in canonical else str(user_id or "").strip()
        return RecipientKey(role_, doc_id) if doc_id else None
    return RecipientKey(role_, ADMIN_INBOX)


def target_id_for(key: RecipientKey, alert: AlertItem) -> str:
    """The user id the push transport should deliver to."""
    if key.role == Role.ADMIN:
        return ADMIN_TARGET
    if key.role == Role.STUDENT:
        return alert.student_id or key.doc_id
    return key.doc_id


def extract_unread(items: Any) -> List[Tuple[AlertItem, Dict[str, Any]]]:
    """
    Unread alerts from a raw items field, in stored order.

    A missing or non-list field counts as empty; entries without an id
    are skipped.
    """
    if not isinstance(items, list):
        return []
    unread = []
    for raw in items:
        alert = AlertItem.from_dict(raw)
        if alert is None:
            logger.debug(f"Skipping alert entry without id: {raw!r}")
            continue
        if alert.is_unread:
            unread.append((alert, raw))
    return unread


class RecipientSubscription:
    """State of one recipient's watch, including its dedup tracker."""

    def __init__(self, key: RecipientKey):
        self.key = key
        self.tracker = DedupTracker(scope=str(key))
        self.state = SubscriptionState.UNSUBSCRIBED
        # cache-only reads are trusted until the server has answered once
        self.server_seen = False
        self.unsubscribe: Optional[Unsubscribe] = None
        # one writer per recipient: snapshots are processed one at a time
        self.lock = RLock()


Formatter = Callable[[Role, AlertItem], Tuple[str, str]]


class ListenerManager:
    """Owns every recipient subscription of this process."""

    def __init__(
        self,
        store: AlertStore,
        dispatcher,
        notices: Optional[NoticeSink] = None,
        notice_seconds: float = 4.0,
        formatter: Formatter = format_alert,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.notices = notices
        self.notice_seconds = notice_seconds
        self.formatter = formatter
        self._subscriptions: Dict[RecipientKey, RecipientSubscription] = {}
        self._write_locks: Dict[RecipientKey, Lock] = {}
        self._lock = Lock()

    # -- lifecycle -----------------------------------------------------

    def start_session(
        self,
        role: str,
        user_id: str,
        student_id: Optional[str] = None,
        parent_id: Optional[str] = None,
    ) -> Optional[RecipientKey]:
        """Resolve the signed-in user's record and start watching it."""
        key = resolve_recipient_key(role, user_id, student_id, parent_id)
        if key is None:
            logger.warning(f"No alert record to watch for user {user_id} (role={role})")
            return None
        self.subscribe(key)
        return key

    def end_session(self) -> None:
        """Stop every subscription and forget every notified id."""
        with self._lock:
            keys = list(self._subscriptions)
        for key in keys:
            self.unsubscribe(key)
        logger.info(f"Alert listeners cleaned up ({len(keys)} recipient(s))")

    def subscribe(self, key: RecipientKey) -> RecipientSubscription:
        """Watch a recipient record; a no-op if it is already watched."""
        with self._lock:
            sub = self._subscriptions.get(key)
            if sub is None:
                sub = RecipientSubscription(key)
                self._subscriptions[key] = sub
            elif sub.state != SubscriptionState.UNSUBSCRIBED:
                logger.debug(f"Already listening on {key}")
                return sub
            sub.state = SubscriptionState.SUBSCRIBING
            sub.server_seen = False

        logger.info(f"Subscribing to {key}")
        try:
            stop = self.store.subscribe(
                key,
                lambda snapshot: self._on_update(sub, snapshot),
                lambda error: self._on_error(sub, error),
            )
        except Exception as e:
            logger.error(f"Error subscribing to {key}: {e}", exc_info=True)
            with sub.lock:
                if sub.state != SubscriptionState.UNSUBSCRIBED:
                    sub.state = SubscriptionState.ERROR
            return sub

        with sub.lock:
            torn_down = sub.state == SubscriptionState.UNSUBSCRIBED
            if not torn_down:
                sub.unsubscribe = stop
                if sub.state == SubscriptionState.SUBSCRIBING:
                    sub.state = SubscriptionState.ACTIVE
        if torn_down:
            # unsubscribed while the store was opening the watch
            logger.debug(f"Subscription to {key} ended before it opened")
            self._stop_watch(key, stop)
        return sub

    def unsubscribe(self, key: RecipientKey, clear: bool = True) -> None:
        """Stop watching a record; `clear` also forgets its notified ids."""
        with self._lock:
            sub = self._subscriptions.get(key)
            if sub is None:
                return
            if clear:
                del self._subscriptions[key]
                self._write_locks.pop(key, None)

        with sub.lock:
            sub.state = SubscriptionState.UNSUBSCRIBED
            stop, sub.unsubscribe = sub.unsubscribe, None
            if clear:
                sub.tracker.clear()
        if stop is not None:
            self._stop_watch(key, stop)

    @staticmethod
    def _stop_watch(key: RecipientKey, stop: Unsubscribe) -> None:
        try:
            stop()
        except Exception as e:
            logger.error(f"Error unsubscribing from {key}: {e}")

    def resubscribe(self, key: RecipientKey) -> RecipientSubscription:
        """Re-open a watch, keeping the ids already notified."""
        self.unsubscribe(key, clear=False)
        return self.subscribe(key)

    def state(self, key: RecipientKey) -> SubscriptionState:
        with self._lock:
            sub = self._subscriptions.get(key)
        return sub.state if sub else SubscriptionState.UNSUBSCRIBED

    def tracker(self, key: RecipientKey) -> Optional[DedupTracker]:
        with self._lock:
            sub = self._subscriptions.get(key)
        return sub.tracker if sub else None

    # -- writes --------------------------------------------------------

    def mark_read(self, key: RecipientKey, ids: Iterable[str]) -> None:
        """Mark items read; writes for one recipient never overlap."""
        ids = [str(i) for i in ids if i]
        if not ids:
            return
        with self._lock:
            write_lock = self._write_locks.setdefault(key, Lock())
        with write_lock:
            self.store.mark_read(key, ids)
        logger.debug(f"Marked {len(ids)} alert(s) read on {key}")

    # -- store callbacks ----------------------------------------------

    def _on_update(self, sub: RecipientSubscription, snapshot: Snapshot) -> None:
        try:
            self.handle_snapshot(sub, snapshot)
        except Exception as e:
            logger.error(f"Error in alert listener for {sub.key}: {e}", exc_info=True)

    def _on_error(self, sub: RecipientSubscription, error: Exception) -> None:
        try:
            self.handle_error(sub, error)
        except Exception as e:
            logger.error(f"Error handling listener error for {sub.key}: {e}", exc_info=True)

    def handle_snapshot(self, sub: RecipientSubscription, snapshot: Snapshot) -> List[str]:
        """
        Process one update event; returns the ids handed to the dispatcher.

        Cache-only reads are processed until the first server snapshot
        arrives (an offline start). After that, cache reads without
        pending writes replay state the listener has already reacted to
        and are dropped.
        """
        with sub.lock:
            if sub.state == SubscriptionState.UNSUBSCRIBED:
                return []
            stale = (
                snapshot.from_cache
                and not snapshot.has_pending_writes
                and sub.server_seen
            )
            if not snapshot.from_cache:
                sub.server_seen = True
            sub.state = SubscriptionState.ACTIVE
            if stale:
                logger.debug(f"Ignoring cached replay for {sub.key}")
                return []

            items = snapshot.items if snapshot.exists else None
            dispatched = []
            for alert, raw in extract_unread(items):
                if not sub.tracker.admit(alert.id):
                    continue
                self._notify(sub.key, alert, raw)
                dispatched.append(alert.id)
            return dispatched

    def handle_error(self, sub: RecipientSubscription, error: Exception) -> None:
        if not is_connection_error(error):
            logger.error(f"Alert listener error on {sub.key}: {error}")
            return

        # the store keeps retrying; the next snapshot makes us ACTIVE again
        with sub.lock:
            if sub.state != SubscriptionState.UNSUBSCRIBED:
                sub.state = SubscriptionState.ERROR
        logger.warning(f"Connection problem on {sub.key}: {error}")
        if self.notices is not None:
            try:
                self.notices.show(
                    CONNECTION_NOTICE_TITLE, CONNECTION_NOTICE_MESSAGE, self.notice_seconds
                )
            except Exception as e:
                logger.error(f"Failed to show connection notice: {e}")

    def _notify(self, key: RecipientKey, alert: AlertItem, raw: Dict[str, Any]) -> None:
        title, body = self.formatter(key.role, alert)
        metadata = dict(raw)
        metadata.setdefault("id", alert.id)
        metadata["alertType"] = alert.raw_type or alert.type.value
        notification = Notification(
            target_id=target_id_for(key, alert),
            role=key.role,
            title=title,
            body=body,
            metadata=metadata,
        )
        logger.info(f"New alert {alert.id} for {key}: {title}")
        try:
            self.dispatcher.dispatch(notification)
        except Exception as e:
            logger.error(f"Failed to hand alert {alert.id} to dispatcher: {e}")
