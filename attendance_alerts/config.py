"""Configuration management."""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

DISPATCH_METHODS = ("backend", "sms", "outbox", "log")


@dataclass
class StoreConfig:
    """Local SQLite alert/schedule store configuration."""
    db_path: str
    poll_interval_seconds: float = 2.0


@dataclass
class ScheduleConfig:
    """Time-window evaluation configuration."""
    grace_minutes: int = 3
    upcoming_limit: int = 3


@dataclass
class BackendConfig:
    """Backend push API configuration."""
    base_url: str
    timeout_seconds: float = 10.0


@dataclass
class TwilioConfig:
    """Twilio SMS configuration."""
    account_sid: str
    auth_token: str
    from_number: str
    to_number: str


@dataclass
class OutboxConfig:
    """SQS outbox configuration."""
    queue_url: str
    region: str = "us-east-1"


@dataclass
class DispatchConfig:
    """How formatted notifications leave the process."""
    method: str = "backend"  # one of DISPATCH_METHODS
    workers: int = 4
    notice_seconds: float = 4.0


@dataclass
class AppConfig:
    """Complete application configuration."""
    store: StoreConfig
    schedule: ScheduleConfig
    dispatch: DispatchConfig
    backend: Optional[BackendConfig] = None
    twilio: Optional[TwilioConfig] = None
    outbox: Optional[OutboxConfig] = None


def load_config(require_dispatch: bool = True) -> AppConfig:
    """
    Load configuration from environment variables.

    Only the settings of the selected DISPATCH_METHOD are required, and
    only when `require_dispatch` is set.

    Raises:
        ValueError: If required configuration values are missing or invalid.
    """
    store = StoreConfig(
        db_path=os.getenv("DB_PATH", "attendance_alerts.db"),
        poll_interval_seconds=float(os.getenv("POLL_INTERVAL_SECONDS", "2.0")),
    )
    schedule = ScheduleConfig(
        grace_minutes=int(os.getenv("GRACE_MINUTES", "3")),
        upcoming_limit=int(os.getenv("UPCOMING_LIMIT", "3")),
    )
    dispatch = DispatchConfig(
        method=os.getenv("DISPATCH_METHOD", "backend").lower(),
        workers=int(os.getenv("DISPATCH_WORKERS", "4")),
        notice_seconds=float(os.getenv("NOTICE_SECONDS", "4")),
    )
    if dispatch.method not in DISPATCH_METHODS:
        raise ValueError(
            f"Unknown DISPATCH_METHOD '{dispatch.method}'. "
            f"Expected one of: {', '.join(DISPATCH_METHODS)}"
        )

    # Backend push API
    api_base_url = os.getenv("API_BASE_URL")
    api_timeout = float(os.getenv("API_TIMEOUT_SECONDS", "10"))

    # Twilio configuration
    twilio_account_sid = os.getenv("TWILIO_ACCOUNT_SID")
    twilio_auth_token = os.getenv("TWILIO_AUTH_TOKEN")
    twilio_from_number = os.getenv("TWILIO_FROM_NUMBER")
    twilio_to_number = os.getenv("TWILIO_TO_NUMBER")

    # Outbox queue
    outbox_queue_url = os.getenv("OUTBOX_QUEUE_URL")
    aws_region = os.getenv("AWS_REGION", "us-east-1")

    # Validate required fields for the chosen method
    missing = []
    if dispatch.method == "backend" and not api_base_url:
        missing.append("API_BASE_URL")
    if dispatch.method == "sms":
        if not twilio_account_sid:
            missing.append("TWILIO_ACCOUNT_SID")
        if not twilio_auth_token:
            missing.append("TWILIO_AUTH_TOKEN")
        if not twilio_from_number:
            missing.append("TWILIO_FROM_NUMBER")
        if not twilio_to_number:
            missing.append("TWILIO_TO_NUMBER")
    if dispatch.method == "outbox" and not outbox_queue_url:
        missing.append("OUTBOX_QUEUE_URL")

    if missing and require_dispatch:
        raise ValueError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    return AppConfig(
        store=store,
        schedule=schedule,
        dispatch=dispatch,
        backend=BackendConfig(
            base_url=api_base_url,
            timeout_seconds=api_timeout,
        ) if api_base_url else None,
        twilio=TwilioConfig(
            account_sid=twilio_account_sid,
            auth_token=twilio_auth_token,
            from_number=twilio_from_number,
            to_number=twilio_to_number,
        ) if twilio_account_sid else None,
        outbox=OutboxConfig(
            queue_url=outbox_queue_url,
            region=aws_region,
        ) if outbox_queue_url else None,
    )
