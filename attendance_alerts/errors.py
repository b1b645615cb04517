"""Classification of store/transport errors and user-facing notices."""

import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)

CONNECTION_ERROR_PATTERNS = (
    "network-request-failed",
    "network",
    "unavailable",
    "deadline-exceeded",
    "connection",
    "timeout",
    "offline",
    "no internet",
)

CONNECTION_NOTICE_TITLE = "Connection Error"
CONNECTION_NOTICE_MESSAGE = (
    "Unable to connect to the server. "
    "Please check your internet connection and try again."
)


def is_connection_error(error: BaseException) -> bool:
    """
    True when an error looks like a transient network problem.

    Both an optional `code` attribute and the message are checked,
    case-insensitively, against CONNECTION_ERROR_PATTERNS.
    """
    if error is None:
        return False
    if isinstance(error, (ConnectionError, TimeoutError)):
        return True
    message = str(error).lower()
    code = str(getattr(error, "code", "") or "").lower()
    return any(p in message or p in code for p in CONNECTION_ERROR_PATTERNS)


class NoticeSink(ABC):
    """UI collaborator that shows short, auto-dismissing notices."""

    @abstractmethod
    def show(self, title: str, message: str, duration_seconds: float) -> None:
        """
        Show a non-blocking notice.

        Args:
            title: Short heading.
            message: Notice text.
            duration_seconds: How long before it dismisses itself.
        """
        pass


class LoggingNoticeSink(NoticeSink):
    """Notice sink for headless runs: notices go to the log."""

    def show(self, title, message, duration_seconds):
        logger.warning(f"{title}: {message}")
