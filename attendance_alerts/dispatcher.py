"""Fire-and-forget hand-off of formatted notifications to a push transport."""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

import requests

from .config import BackendConfig
from .models import Notification

logger = logging.getLogger(__name__)


class PushTransport(ABC):
    """Abstract base class for push transports."""

    @abstractmethod
    def send(self, notification: Notification) -> None:
        """
        Deliver one notification.

        Args:
            notification: Target, role, title, body and metadata.

        Raises:
            Exception: On any delivery failure; the dispatcher logs it.
        """
        pass


class LoggingTransport(PushTransport):
    """Transport that only logs; useful for local runs."""

    def send(self, notification):
        logger.info(
            f"[{notification.role.value}:{notification.target_id}] "
            f"{notification.title} - {notification.body}"
        )


class BackendPushTransport(PushTransport):
    """Posts alerts to the backend push endpoint, which owns device tokens."""

    def __init__(self, config: BackendConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.url = f"{config.base_url.rstrip('/')}/notifications/alert-push"
        self.session = session or requests.Session()

    def send(self, notification):
        payload = {
            "alert": notification.metadata,
            "userId": notification.target_id,
            "role": notification.role.value,
            "title": notification.title,
            "body": notification.body,
        }
        try:
            response = self.session.post(self.url, json=payload, timeout=self.config.timeout_seconds)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Backend push API error for {notification.target_id}: {e}")
            raise
        logger.debug(f"Backend accepted push for {notification.target_id}")


class Dispatcher:
    """
    Runs transport sends on a worker pool without blocking the caller.

    Sends are never retried or awaited here; failures are logged.
    """

    def __init__(self, transport: PushTransport, max_workers: int = 4):
        self.transport = transport
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="alert-dispatch"
        )

    def dispatch(self, notification: Notification) -> Future:
        future = self._executor.submit(self.transport.send, notification)
        future.add_done_callback(lambda f: self._log_outcome(f, notification))
        return future

    @staticmethod
    def _log_outcome(future: Future, notification: Notification) -> None:
        error = future.exception()
        alert_id = notification.metadata.get("id")
        if error is not None:
            logger.error(f"Failed to send push for alert {alert_id}: {error}")
        else:
            logger.info(f"Push sent for alert {alert_id} to {notification.target_id}")

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
