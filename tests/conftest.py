"""Shared fixtures for the attendance alert tests."""

from threading import Lock
from typing import List

import pytest

from attendance_alerts.models import Notification, RecipientKey, Role
from attendance_alerts.store import InMemoryAlertStore, InMemoryScheduleStore


class RecordingDispatcher:
    """Dispatcher stand-in that records notifications synchronously."""

    def __init__(self):
        self.sent: List[Notification] = []
        self._lock = Lock()

    def dispatch(self, notification: Notification) -> None:
        with self._lock:
            self.sent.append(notification)

    @property
    def ids(self) -> List[str]:
        return [n.metadata["id"] for n in self.sent]


class RecordingNotices:
    def __init__(self):
        self.shown = []

    def show(self, title, message, duration_seconds):
        self.shown.append((title, message, duration_seconds))


@pytest.fixture
def alert_store() -> InMemoryAlertStore:
    return InMemoryAlertStore()


@pytest.fixture
def schedule_store() -> InMemoryScheduleStore:
    return InMemoryScheduleStore()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def notices() -> RecordingNotices:
    return RecordingNotices()


@pytest.fixture
def parent_key() -> RecipientKey:
    return RecipientKey(Role.PARENT, "P-0001")


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every variable load_config() reads."""
    for name in (
        "DB_PATH", "POLL_INTERVAL_SECONDS", "GRACE_MINUTES", "UPCOMING_LIMIT",
        "DISPATCH_METHOD", "DISPATCH_WORKERS", "NOTICE_SECONDS",
        "API_BASE_URL", "API_TIMEOUT_SECONDS",
        "TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_FROM_NUMBER", "TWILIO_TO_NUMBER",
        "OUTBOX_QUEUE_URL", "AWS_REGION",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch
