"""
Notification Dispatcher - Pub/Sub push delivery of Real-Time Developer Notifications.

Decodes the push envelope, applies the notification through the
PurchaseManager and pushes the owner's refreshed subscription status to their
devices. Delivery is always acknowledged; failures are logged, never raised.
"""

import base64
import binascii
import json
from typing import Callable

from structlog import get_logger

from playsubs.exceptions import NotificationDecodeError
from playsubs.models.api import SubscriptionStatus, SubscriptionsResponse
from playsubs.models.notifications import DeveloperNotification
from playsubs.models.purchases import SubscriptionPurchase, is_real_user_id
from playsubs.observability.logging import log_context
from playsubs.observability.metrics import metrics
from playsubs.services.device_registry import DeviceRegistry
from playsubs.services.purchase_interpreter import (
    DEFAULT_POLICY,
    GracePeriodPolicy,
    current_millis,
)
from playsubs.services.purchase_manager import PurchaseManager
from playsubs.services.push_sender import PushSender
from playsubs.services.user_manager import UserManager

logger = get_logger(__name__)


def decode_push_envelope(payload: bytes) -> tuple[str, DeveloperNotification]:
    """
    Decode a Pub/Sub push request body.

    Returns:
        (message_id, notification)

    Raises:
        NotificationDecodeError: Body is not a Pub/Sub envelope carrying a
            developer notification
    """
    try:
        envelope = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise NotificationDecodeError("Invalid JSON payload") from exc

    message = envelope.get("message") if isinstance(envelope, dict) else None
    if not isinstance(message, dict) or not message.get("data"):
        raise NotificationDecodeError("No message data in push envelope")

    try:
        decoded = base64.b64decode(message["data"]).decode("utf-8")
        data = json.loads(decoded)
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise NotificationDecodeError(f"Undecodable message data: {exc}") from exc

    if not isinstance(data, dict):
        raise NotificationDecodeError("Message data is not a JSON object")

    try:
        notification = DeveloperNotification.from_json(data)
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise NotificationDecodeError(f"Malformed developer notification: {exc}") from exc

    return str(message.get("messageId", "")), notification


class NotificationDispatcher:
    """Entry point for Google Play Real-Time Developer Notifications."""

    def __init__(
        self,
        purchase_manager: PurchaseManager,
        user_manager: UserManager,
        device_registry: DeviceRegistry,
        push_sender: PushSender | None,
        package_name: str = "",
        clock: Callable[[], int] = current_millis,
        policy: GracePeriodPolicy = DEFAULT_POLICY,
    ) -> None:
        """
        Args:
            push_sender: None disables device fan-out
            package_name: Only notifications for this app are applied; empty
                accepts any package
        """
        self.purchase_manager = purchase_manager
        self.user_manager = user_manager
        self.device_registry = device_registry
        self.push_sender = push_sender
        self.package_name = package_name
        self.clock = clock
        self.policy = policy

    async def handle_push(self, payload: bytes) -> str:
        """
        Process one push delivery.

        Returns:
            "processed", "ignored" or "failed"
        """
        try:
            message_id, notification = decode_push_envelope(payload)
        except NotificationDecodeError as exc:
            logger.warning("developer_notification_undecodable", error=exc.message)
            metrics.record_error("NotificationDecodeError", "handle_push")
            return "failed"

        if self.package_name and notification.package_name != self.package_name:
            logger.warning(
                "developer_notification_foreign_package",
                package_name=notification.package_name,
            )
            return "ignored"

        with log_context(message_id=message_id, package_name=notification.package_name):
            try:
                purchase = await self.purchase_manager.process_developer_notification(
                    notification.package_name, notification
                )
                if purchase is None:
                    return "ignored"

                await self._notify_owner(purchase)
            except Exception as exc:
                logger.exception("developer_notification_failed")
                metrics.record_error(type(exc).__name__, "handle_push")
                return "failed"

        return "processed"

    async def _notify_owner(self, purchase: SubscriptionPurchase) -> None:
        """Push the owner's current subscription status to each of their devices."""
        user_id = purchase.user_id
        if user_id is None or not is_real_user_id(user_id) or self.push_sender is None:
            return

        tokens = await self.device_registry.get_device_tokens(user_id)
        if not tokens:
            logger.debug("notification_owner_has_no_devices", user_id=user_id)
            return

        subscriptions = await self.user_manager.query_current_subscriptions(user_id)
        now = self.clock()
        status = SubscriptionsResponse(
            subscriptions=[
                SubscriptionStatus.from_purchase(subscription, now, self.policy)
                for subscription in subscriptions
            ]
        )
        data = {
            "currentStatus": status.model_dump_json(by_alias=True),
            "notificationType": str(purchase.latest_notification_type or ""),
        }

        results = await self.push_sender.send_data_message(tokens, data)
        for result in results:
            if result.is_invalid_token:
                await self.device_registry.unregister_device_token(user_id, result.token)
                logger.info("stale_device_token_removed", user_id=user_id)
