"""Tests for the dispatcher and the push transports."""

import json
import logging
from unittest.mock import Mock

import pytest
import requests
from botocore.exceptions import ClientError

from attendance_alerts.config import BackendConfig, OutboxConfig, TwilioConfig
from attendance_alerts.dispatcher import BackendPushTransport, Dispatcher, LoggingTransport
from attendance_alerts.models import Notification, Role
from attendance_alerts.outbox import SqsOutboxTransport
from attendance_alerts.twilio_notifier import SMS_MAX_CHARS, TwilioSmsTransport, build_sms_text


@pytest.fixture
def notification():
    return Notification(
        target_id="P-0001",
        role=Role.PARENT,
        title="Attendance Scan",
        body="Jamie scanned in.",
        metadata={"id": "a1", "alertType": "attendance_scan"},
    )


class TestDispatcher:
    """Tests for Dispatcher."""

    def test_dispatch_runs_transport(self, notification, caplog):
        transport = Mock()
        dispatcher = Dispatcher(transport, max_workers=2)

        with caplog.at_level(logging.INFO, logger="attendance_alerts.dispatcher"):
            future = dispatcher.dispatch(notification)
            dispatcher.shutdown(wait=True)

        assert future.exception() is None
        transport.send.assert_called_once_with(notification)
        assert "Push sent for alert a1" in caplog.text

    def test_failure_is_logged_not_raised(self, notification, caplog):
        transport = Mock()
        transport.send.side_effect = RuntimeError("boom")
        dispatcher = Dispatcher(transport)

        with caplog.at_level(logging.ERROR, logger="attendance_alerts.dispatcher"):
            future = dispatcher.dispatch(notification)
            dispatcher.shutdown(wait=True)

        assert isinstance(future.exception(), RuntimeError)
        assert "Failed to send push for alert a1: boom" in caplog.text

    def test_logging_transport(self, notification, caplog):
        with caplog.at_level(logging.INFO, logger="attendance_alerts.dispatcher"):
            LoggingTransport().send(notification)
        assert "[parent:P-0001] Attendance Scan - Jamie scanned in." in caplog.text


class TestBackendPushTransport:
    """Tests for BackendPushTransport."""

    def test_posts_alert_payload(self, notification):
        session = Mock()
        transport = BackendPushTransport(
            BackendConfig(base_url="https://api.example.com/", timeout_seconds=5.0), session
        )

        transport.send(notification)

        session.post.assert_called_once_with(
            "https://api.example.com/notifications/alert-push",
            json={
                "alert": {"id": "a1", "alertType": "attendance_scan"},
                "userId": "P-0001",
                "role": "parent",
                "title": "Attendance Scan",
                "body": "Jamie scanned in.",
            },
            timeout=5.0,
        )
        session.post.return_value.raise_for_status.assert_called_once()

    def test_http_error_is_raised(self, notification):
        session = Mock()
        session.post.return_value.raise_for_status.side_effect = requests.HTTPError("500")
        transport = BackendPushTransport(BackendConfig(base_url="https://api.example.com"), session)

        with pytest.raises(requests.HTTPError):
            transport.send(notification)


class TestTwilioSmsTransport:
    """Tests for TwilioSmsTransport."""

    config = TwilioConfig(
        account_sid="ACxxxxxxxxxxxxxxxx",
        auth_token="token",
        from_number="+15550000000",
        to_number="+15551111111",
    )

    def test_sends_title_and_body(self, notification):
        client = Mock()
        TwilioSmsTransport(self.config, client).send(notification)

        client.messages.create.assert_called_once_with(
            body="Attendance Scan: Jamie scanned in.",
            from_="+15550000000",
            to="+15551111111",
        )

    def test_long_text_is_truncated(self, notification):
        notification.body = "x" * 500
        text = build_sms_text(notification)
        assert len(text) == SMS_MAX_CHARS
        assert text.endswith("...")

    def test_errors_are_raised(self, notification):
        client = Mock()
        client.messages.create.side_effect = Exception("HTTP 401 error: Authenticate")

        with pytest.raises(Exception, match="Authenticate"):
            TwilioSmsTransport(self.config, client).send(notification)


class TestSqsOutboxTransport:
    """Tests for SqsOutboxTransport."""

    config = OutboxConfig(queue_url="https://sqs.us-east-1.amazonaws.com/123/alerts")

    def test_enqueues_notification(self, notification):
        sqs = Mock()
        sqs.send_message.return_value = {"MessageId": "m-1"}

        SqsOutboxTransport(self.config, sqs).send(notification)

        kwargs = sqs.send_message.call_args.kwargs
        assert kwargs["QueueUrl"] == self.config.queue_url
        assert json.loads(kwargs["MessageBody"]) == {
            "targetId": "P-0001",
            "role": "parent",
            "title": "Attendance Scan",
            "body": "Jamie scanned in.",
            "metadata": {"id": "a1", "alertType": "attendance_scan"},
        }

    def test_client_error_is_raised(self, notification):
        sqs = Mock()
        sqs.send_message.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "SendMessage"
        )

        with pytest.raises(ClientError):
            SqsOutboxTransport(self.config, sqs).send(notification)
