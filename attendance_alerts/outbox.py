"""SQS outbox transport: notifications are queued for the deliver lambda."""

import json
import logging
from typing import Any, Optional

import boto3
from botocore.exceptions import ClientError

from .config import OutboxConfig
from .dispatcher import PushTransport
from .models import Notification

logger = logging.getLogger(__name__)


class SqsOutboxTransport(PushTransport):
    """
    Enqueues notifications on an SQS queue.

    The queue's redrive policy bounds how often the deliver lambda
    retries a failing message.
    """

    def __init__(self, config: OutboxConfig, sqs: Optional[Any] = None):
        self.config = config
        self.sqs = sqs or boto3.client("sqs", region_name=config.region)

    def send(self, notification):
        body = json.dumps(notification.to_dict(), default=str)
        try:
            response = self.sqs.send_message(
                QueueUrl=self.config.queue_url,
                MessageBody=body,
            )
        except ClientError as e:
            logger.error(f"Error queueing notification for {notification.target_id}: {e}")
            raise
        logger.debug(f"Queued notification {response.get('MessageId')} for {notification.target_id}")
