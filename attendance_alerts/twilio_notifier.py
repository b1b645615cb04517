"""Twilio SMS push transport."""

import logging
from typing import Optional

from twilio.rest import Client

from .config import TwilioConfig
from .dispatcher import PushTransport
from .models import Notification

logger = logging.getLogger(__name__)

SMS_MAX_CHARS = 160


def build_sms_text(notification: Notification) -> str:
    text = f"{notification.title}: {notification.body}".strip()
    if len(text) > SMS_MAX_CHARS:
        text = text[:SMS_MAX_CHARS - 3] + "..."
    return text


class TwilioSmsTransport(PushTransport):
    """Sends each notification as one SMS to the configured number."""

    def __init__(self, config: TwilioConfig, client: Optional[Client] = None):
        self.config = config
        self.client = client or Client(config.account_sid, config.auth_token)

    def send(self, notification):
        """
        Send an SMS via Twilio.

        Raises:
            Exception: If SMS sending fails.
        """
        message = build_sms_text(notification)
        if not message:
            logger.info("Message is empty; not sending SMS.")
            return

        try:
            message_obj = self.client.messages.create(
                body=message,
                from_=self.config.from_number,
                to=self.config.to_number
            )
            logger.info(f"SMS sent successfully. SID: {message_obj.sid}")
            logger.debug(f"Message preview: {message[:50]}...")
        except Exception as e:
            error_str = str(e)
            if "20003" in error_str or "Authenticate" in error_str or "401" in error_str:
                logger.error(
                    "Twilio authentication failed (Error 20003). "
                    "Check TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN. "
                    f"Current Account SID (first 10 chars): {self.config.account_sid[:10]}..."
                )
            else:
                logger.error(f"Failed to send SMS: {e}")
            raise
