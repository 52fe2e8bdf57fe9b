"""
Real-Time Developer Notification models.

NO DICTIONARIES - Parsed envelopes are immutable dataclasses.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import IntEnum
from typing import Any


class NotificationType(IntEnum):
    """subscriptionNotification.notificationType codes."""

    SUBSCRIPTION_RECOVERED = 1
    SUBSCRIPTION_RENEWED = 2
    SUBSCRIPTION_CANCELED = 3
    SUBSCRIPTION_PURCHASED = 4
    SUBSCRIPTION_ON_HOLD = 5
    SUBSCRIPTION_IN_GRACE_PERIOD = 6
    SUBSCRIPTION_RESTARTED = 7
    SUBSCRIPTION_PRICE_CHANGE_CONFIRMED = 8
    SUBSCRIPTION_DEFERRED = 9
    SUBSCRIPTION_PAUSED = 10
    SUBSCRIPTION_PAUSE_SCHEDULE_CHANGED = 11
    SUBSCRIPTION_REVOKED = 12
    SUBSCRIPTION_EXPIRED = 13


class OneTimeProductNotificationType(IntEnum):
    """oneTimeProductNotification.notificationType codes."""

    ONE_TIME_PRODUCT_PURCHASED = 1
    ONE_TIME_PRODUCT_CANCELED = 2


@dataclass(frozen=True)
class SubscriptionNotification:
    """Lifecycle event of a recurring subscription."""

    version: str
    notification_type: int
    purchase_token: str
    subscription_id: str


@dataclass(frozen=True)
class OneTimeProductNotification:
    """Lifecycle event of a one-time product."""

    version: str
    notification_type: int
    purchase_token: str
    sku: str


@dataclass(frozen=True)
class TestNotification:
    """Sent from the Play Console to check the setup; carries no purchase."""

    version: str


@dataclass(frozen=True)
class DeveloperNotification:
    """Decoded payload of a Real-Time Developer Notification."""

    version: str
    package_name: str
    event_time_millis: int
    subscription_notification: SubscriptionNotification | None = None
    one_time_product_notification: OneTimeProductNotification | None = None
    test_notification: TestNotification | None = None

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "DeveloperNotification":
        """
        Parse the JSON object published by Google Play.

        Raises:
            KeyError / ValueError / TypeError: if a present sub-notification
            lacks required fields
        """
        subscription = data.get("subscriptionNotification")
        one_time = data.get("oneTimeProductNotification")
        test = data.get("testNotification")

        return cls(
            version=str(data.get("version", "")),
            package_name=str(data.get("packageName", "")),
            event_time_millis=int(data.get("eventTimeMillis", 0)),
            subscription_notification=(
                SubscriptionNotification(
                    version=str(subscription.get("version", "")),
                    notification_type=int(subscription["notificationType"]),
                    purchase_token=str(subscription["purchaseToken"]),
                    subscription_id=str(subscription["subscriptionId"]),
                )
                if subscription
                else None
            ),
            one_time_product_notification=(
                OneTimeProductNotification(
                    version=str(one_time.get("version", "")),
                    notification_type=int(one_time["notificationType"]),
                    purchase_token=str(one_time["purchaseToken"]),
                    sku=str(one_time["sku"]),
                )
                if one_time
                else None
            ),
            test_notification=(
                TestNotification(version=str(test.get("version", ""))) if test else None
            ),
        )
