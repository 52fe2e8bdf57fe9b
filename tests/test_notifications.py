"""
Tests for Real-Time Developer Notification parsing and push envelope decoding.
"""

import base64
import json

import pytest

from playsubs.exceptions import NotificationDecodeError
from playsubs.models.notifications import DeveloperNotification, NotificationType
from playsubs.services.notification_dispatcher import decode_push_envelope


def push_body(notification: dict, message_id: str = "msg-1") -> bytes:
    data = base64.b64encode(json.dumps(notification).encode()).decode()
    return json.dumps(
        {
            "message": {"data": data, "messageId": message_id},
            "subscription": "projects/example/subscriptions/play-rtdn",
        }
    ).encode()


SUBSCRIPTION_NOTIFICATION = {
    "version": "1.0",
    "packageName": "com.example.subscriptions",
    "eventTimeMillis": "1792281600000",
    "subscriptionNotification": {
        "version": "1.0",
        "notificationType": 2,
        "purchaseToken": "token-123",
        "subscriptionId": "premium_monthly",
    },
}


class TestDeveloperNotification:
    def test_subscription_notification(self):
        notification = DeveloperNotification.from_json(SUBSCRIPTION_NOTIFICATION)

        assert notification.package_name == "com.example.subscriptions"
        assert notification.event_time_millis == 1792281600000
        assert notification.subscription_notification is not None
        assert (
            notification.subscription_notification.notification_type
            == NotificationType.SUBSCRIPTION_RENEWED
        )
        assert notification.subscription_notification.purchase_token == "token-123"
        assert notification.subscription_notification.subscription_id == "premium_monthly"
        assert notification.test_notification is None

    def test_test_notification(self):
        notification = DeveloperNotification.from_json(
            {
                "version": "1.0",
                "packageName": "com.example.subscriptions",
                "eventTimeMillis": "1",
                "testNotification": {"version": "1.0"},
            }
        )

        assert notification.test_notification is not None
        assert notification.subscription_notification is None

    def test_one_time_product_notification(self):
        notification = DeveloperNotification.from_json(
            {
                "packageName": "com.example.subscriptions",
                "oneTimeProductNotification": {
                    "version": "1.0",
                    "notificationType": 1,
                    "purchaseToken": "token-456",
                    "sku": "coins_100",
                },
            }
        )

        assert notification.one_time_product_notification is not None
        assert notification.one_time_product_notification.sku == "coins_100"

    def test_incomplete_subscription_notification_raises(self):
        with pytest.raises(KeyError):
            DeveloperNotification.from_json(
                {"subscriptionNotification": {"notificationType": 2}}
            )


class TestDecodePushEnvelope:
    def test_decodes_message(self):
        message_id, notification = decode_push_envelope(
            push_body(SUBSCRIPTION_NOTIFICATION, message_id="msg-42")
        )

        assert message_id == "msg-42"
        assert notification.subscription_notification is not None
        assert notification.subscription_notification.purchase_token == "token-123"

    def test_invalid_json(self):
        with pytest.raises(NotificationDecodeError, match="Invalid JSON"):
            decode_push_envelope(b"not json")

    def test_missing_data(self):
        with pytest.raises(NotificationDecodeError, match="No message data"):
            decode_push_envelope(json.dumps({"message": {"messageId": "1"}}).encode())

    def test_data_not_base64_json(self):
        body = json.dumps({"message": {"data": "!!!not-base64!!!"}}).encode()
        with pytest.raises(NotificationDecodeError):
            decode_push_envelope(body)

    def test_malformed_notification(self):
        body = push_body({"subscriptionNotification": {"notificationType": "x"}})
        with pytest.raises(NotificationDecodeError, match="Malformed"):
            decode_push_envelope(body)
