"""
Lambda function to deliver queued alert notifications.
Triggered by the SQS outbox queue that SqsOutboxTransport writes to.
Failed records are reported back as batch item failures so SQS retries
them until the queue's redrive policy moves them to the dead-letter queue.
"""

import json
import os
import logging
from datetime import datetime
from typing import Dict, Any, Optional
import boto3
import httpx
from botocore.exceptions import ClientError

# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)

# Initialize AWS clients
AWS_REGION = os.environ.get('AWS_REGION', 'us-east-1')
dynamodb = boto3.resource('dynamodb', region_name=AWS_REGION)
users_table = dynamodb.Table(os.environ.get('DYNAMODB_TABLE_USERS', 'users'))
deliveries_table = dynamodb.Table(os.environ.get('DYNAMODB_TABLE_DELIVERIES', 'alert_deliveries'))

# Configuration
EXPO_PUSH_URL = os.environ.get('EXPO_PUSH_URL', 'https://exp.host/--/api/v2/push/send')
EXPO_PUSH_KEY = os.environ.get('EXPO_PUSH_KEY', '')
TWILIO_ACCOUNT_SID = os.environ.get('TWILIO_ACCOUNT_SID', '')
TWILIO_AUTH_TOKEN = os.environ.get('TWILIO_AUTH_TOKEN', '')
TWILIO_FROM_NUMBER = os.environ.get('TWILIO_FROM_NUMBER', '')
SMS_MAX_CHARS = 160


def send_push_via_expo(push_token: str, title: str, body: str, data: Dict[str, Any]) -> bool:
    """Send a push notification via the Expo push API."""
    headers = {'Content-Type': 'application/json', 'Accept': 'application/json'}
    if EXPO_PUSH_KEY:
        headers['Authorization'] = f"Bearer {EXPO_PUSH_KEY}"
    try:
        response = httpx.post(
            EXPO_PUSH_URL,
            headers=headers,
            json={
                'to': push_token,
                'title': title,
                'body': body,
                'data': data,
                'sound': 'default',
                'priority': 'high',
                'channelId': 'default',
            },
            timeout=30.0
        )
        if response.status_code != 200:
            logger.error(f"Expo push error: {response.status_code} - {response.text}")
            return False
        ticket = response.json().get('data', {})
        if isinstance(ticket, dict) and ticket.get('status') == 'error':
            logger.error(f"Expo push rejected: {ticket.get('message')}")
            return False
        logger.info(f"Push sent to {push_token[:20]}...")
        return True
    except Exception as e:
        logger.error(f"Error sending push: {e}")
        return False


def send_sms_via_twilio(to_number: str, title: str, body: str) -> bool:
    """Text an alert as "<title>: <body>", cut to one SMS segment."""
    to_number = str(to_number or '').strip()
    if not to_number:
        logger.warning("No phone number to text")
        return False
    if not TWILIO_ACCOUNT_SID:
        logger.warning("Twilio is not configured, skipping SMS")
        return False

    text = f"{title}: {body}" if title else body
    try:
        response = httpx.post(
            f"https://api.twilio.com/2010-04-01/Accounts/{TWILIO_ACCOUNT_SID}/Messages.json",
            auth=(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN),
            data={'From': TWILIO_FROM_NUMBER, 'To': to_number, 'Body': text[:SMS_MAX_CHARS]},
            timeout=30.0
        )
    except httpx.HTTPError as e:
        logger.error(f"Error texting alert to {to_number}: {e}")
        return False

    if response.status_code != 201:
        logger.error(f"Twilio rejected alert SMS: {response.status_code} - {response.text}")
        return False
    logger.info(f"Alert texted to {to_number}")
    return True


def get_user(target_id: str) -> Optional[Dict[str, Any]]:
    """Look up the push token / phone of a notification target."""
    response = users_table.get_item(Key={'user_id': target_id})
    return response.get('Item')


def deliver(notification: Dict[str, Any]) -> Optional[str]:
    """
    Deliver one notification.

    Returns:
        The delivery method used, or None if nothing could be sent.
    """
    target_id = notification.get('targetId')
    title = notification.get('title') or 'New Alert'
    body = notification.get('body') or 'You have a new alert.'
    metadata = notification.get('metadata') or {}

    user = get_user(target_id)
    if not user:
        logger.warning(f"Target {target_id} not found")
        return None

    # Only users with a role matching the alert's record may receive it
    if str(user.get('role', '')).lower() != str(notification.get('role', '')).lower():
        logger.warning(f"Skipping {target_id}: role {user.get('role')} != {notification.get('role')}")
        return None

    push_token = user.get('push_token') or user.get('fcmToken')
    if push_token and send_push_via_expo(push_token, title, body, {
        'type': 'alert',
        'alertId': metadata.get('id', ''),
        'alertType': metadata.get('alertType', ''),
    }):
        return 'push'

    phone = user.get('notification_phone') or user.get('phone')
    if phone and send_sms_via_twilio(phone, title, body):
        return 'sms'

    return None


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Deliver queued notifications.
    Triggered by SQS with ReportBatchItemFailures enabled.
    """
    failures = []
    records = event.get('Records', [])

    for record in records:
        message_id = record.get('messageId')
        try:
            notification = json.loads(record['body'])
            if not notification.get('targetId'):
                logger.warning("Missing targetId in SQS message; dropping")
                continue

            method = deliver(notification)
            if method is None:
                failures.append({'itemIdentifier': message_id})
                continue

            alert_id = (notification.get('metadata') or {}).get('id', '')
            try:
                deliveries_table.put_item(Item={
                    'target_id': notification['targetId'],
                    'alert_id': str(alert_id or message_id),
                    'delivered_at': datetime.utcnow().isoformat() + 'Z',
                    'delivery_method': method,
                })
            except ClientError as e:
                # already delivered; a failed log write must not trigger a resend
                logger.error(f"Error recording delivery: {e}")

            logger.info(f"Alert {alert_id} delivered to {notification['targetId']} via {method}")

        except json.JSONDecodeError as e:
            logger.error(f"Malformed SQS message {message_id}: {e}")
        except Exception as e:
            logger.error(f"Error processing SQS record {message_id}: {e}", exc_info=True)
            failures.append({'itemIdentifier': message_id})

    logger.info(f"Delivery complete: {len(records) - len(failures)}/{len(records)} succeeded")
    return {'batchItemFailures': failures}
