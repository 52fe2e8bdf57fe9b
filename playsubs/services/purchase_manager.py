"""
Purchase Manager - Verification, linkage and replacement-chain bookkeeping.

Every query goes to the Play Developer API first and merges the answer into
the purchase record store:
- platform-sourced fields always take the fresh values
- user_id and replaced_by_another_purchase only ever come from the store
"""

from dataclasses import replace
from typing import Callable, Protocol

from structlog import get_logger

from playsubs.exceptions import (
    InvalidTokenError,
    PurchaseConflictError,
    PurchaseNotFoundError,
    PurchaseStoreError,
    SubscriptionError,
)
from playsubs.models.google_play import (
    PurchaseKey,
    RawOneTimePurchase,
    RawPurchase,
    RawSubscriptionPurchase,
    SkuType,
)
from playsubs.models.notifications import DeveloperNotification, NotificationType
from playsubs.models.purchases import (
    REPLACED_PURCHASE_USER_ID_PLACEHOLDER,
    OneTimeProductPurchase,
    Purchase,
    SubscriptionPurchase,
    is_real_user_id,
)
from playsubs.observability.metrics import metrics
from playsubs.observability.tracing import trace_operation
from playsubs.services.purchase_interpreter import (
    DEFAULT_POLICY,
    GracePeriodPolicy,
    current_millis,
)
from playsubs.services.purchase_store import PurchaseRecordStore

logger = get_logger(__name__)


class PurchaseVerifier(Protocol):
    """Source of truth for purchase facts (the Play Developer API)."""

    async def verify(
        self,
        package_name: str,
        sku: str,
        purchase_token: str,
        sku_type: SkuType,
    ) -> RawPurchase: ...


def notification_type_label(notification_type: int) -> str:
    """Metric/log label for a notification code, tolerant of unknown codes."""
    try:
        return NotificationType(notification_type).name.lower()
    except ValueError:
        return f"unknown_{notification_type}"


class PurchaseManager:
    """
    Reconciles Google Play purchases with the purchase record store.

    Args:
        store: Purchase record persistence
        verifier: Play Developer API client
        clock: Current time in epoch milliseconds
        policy: Grace period / account hold classification
    """

    def __init__(
        self,
        store: PurchaseRecordStore,
        verifier: PurchaseVerifier,
        clock: Callable[[], int] = current_millis,
        policy: GracePeriodPolicy = DEFAULT_POLICY,
    ) -> None:
        self.store = store
        self.verifier = verifier
        self.clock = clock
        self.policy = policy

    async def query_purchase(
        self,
        package_name: str,
        sku: str,
        purchase_token: str,
        sku_type: SkuType,
    ) -> Purchase:
        """
        Verify a purchase with Google Play and merge it into the store.

        Raises:
            PurchaseNotFoundError: Google Play does not know the token
            PlatformUnavailableError: Google Play could not be queried
            PurchaseStoreError: Reading or writing the record failed
        """
        if sku_type is SkuType.SUBS:
            return await self.query_subscription_purchase(package_name, sku, purchase_token)
        return await self.query_one_time_product_purchase(package_name, sku, purchase_token)

    async def query_one_time_product_purchase(
        self,
        package_name: str,
        sku: str,
        purchase_token: str,
    ) -> OneTimeProductPurchase:
        key = PurchaseKey(package_name=package_name, sku=sku, purchase_token=purchase_token)

        with trace_operation("query_one_time_product_purchase", sku=sku):
            raw = await self.verifier.verify(package_name, sku, purchase_token, SkuType.ONE_TIME)
            if not isinstance(raw, RawOneTimePurchase):
                raise TypeError(f"Expected a one-time purchase, got {type(raw).__name__}")

            fresh = OneTimeProductPurchase.from_raw(raw, key, verified_at=self.clock())
            existing = await self._create_or_load(fresh)
            if existing is None:
                return fresh

            merged = replace(fresh, user_id=existing.user_id)
            await self.store.update_platform_fields(merged)
            return merged

    async def query_subscription_purchase(
        self,
        package_name: str,
        sku: str,
        purchase_token: str,
        trigger_notification_type: int | None = None,
    ) -> SubscriptionPurchase:
        """
        Verify a subscription and merge it into the store.

        A subscription seen for the first time that carries a
        linked_purchase_token replaces the purchase it links to; the whole
        chain of predecessors is invalidated.

        Args:
            trigger_notification_type: Notification code that caused this
                query, recorded as latest_notification_type
        """
        key = PurchaseKey(package_name=package_name, sku=sku, purchase_token=purchase_token)

        with trace_operation("query_subscription_purchase", sku=sku):
            raw = await self.verifier.verify(package_name, sku, purchase_token, SkuType.SUBS)
            if not isinstance(raw, RawSubscriptionPurchase):
                raise TypeError(f"Expected a subscription purchase, got {type(raw).__name__}")

            fresh = SubscriptionPurchase.from_raw(raw, key, verified_at=self.clock())
            if trigger_notification_type is not None:
                fresh = replace(fresh, latest_notification_type=trigger_notification_type)

            existing = await self._create_or_load(fresh)
            if existing is None:
                logger.info(
                    "subscription_purchase_recorded",
                    sku=sku,
                    package_name=package_name,
                    has_linked_purchase=fresh.linked_purchase_token is not None,
                )
                if fresh.linked_purchase_token:
                    await self._disable_replaced_subscription(
                        package_name, sku, fresh.linked_purchase_token
                    )
                return fresh

            merged = self._merge_subscription(fresh, existing)
            await self.store.update_platform_fields(merged)
            return merged

    async def register_to_user_account(
        self,
        package_name: str,
        sku: str,
        purchase_token: str,
        sku_type: SkuType,
        user_id: str,
    ) -> Purchase:
        """
        Link a purchase to a user.

        Registering the same purchase to the same user again is a no-op.

        Raises:
            InvalidTokenError: Token unknown to Google Play, or not registerable
            PurchaseConflictError: Purchase already belongs to another user
            PlatformUnavailableError: Google Play could not be queried
            PurchaseStoreError: The record could not be read or written
        """
        if not is_real_user_id(user_id):
            raise InvalidTokenError(purchase_token, "user id is reserved")

        try:
            purchase = await self.query_purchase(package_name, sku, purchase_token, sku_type)
        except PurchaseNotFoundError as exc:
            logger.info("purchase_registration_token_unknown", sku=sku, sku_type=sku_type.value)
            metrics.record_registration(sku_type.value, "invalid_token")
            raise InvalidTokenError(purchase_token, str(exc)) from exc
        except SubscriptionError:
            metrics.record_registration(sku_type.value, "error")
            raise

        if not purchase.is_registerable():
            metrics.record_registration(sku_type.value, "invalid_token")
            raise InvalidTokenError(purchase_token, "purchase is not registerable")

        if purchase.user_id == user_id:
            metrics.record_registration(sku_type.value, "already_registered")
            logger.info("purchase_already_registered", sku=sku, user_id=user_id)
            return purchase

        if is_real_user_id(purchase.user_id):
            metrics.record_registration(sku_type.value, "conflict")
            logger.warning(
                "purchase_registration_conflict",
                sku=sku,
                user_id=user_id,
                owner_user_id=purchase.user_id,
            )
            raise PurchaseConflictError(purchase_token)

        assigned = await self.store.assign_user(purchase_token, user_id, only_if_unowned=True)
        if not assigned:
            # Another user registered the token between the query and the write
            metrics.record_registration(sku_type.value, "conflict")
            logger.warning("purchase_registration_race_lost", sku=sku, user_id=user_id)
            raise PurchaseConflictError(purchase_token)

        metrics.record_registration(sku_type.value, "registered")
        logger.info("purchase_registered", sku=sku, sku_type=sku_type.value, user_id=user_id)
        return replace(purchase, user_id=user_id)

    async def transfer_to_user_account(
        self,
        package_name: str,
        sku: str,
        purchase_token: str,
        sku_type: SkuType,
        user_id: str,
    ) -> Purchase:
        """
        Force-link a purchase to a user, overriding any current owner.

        Raises:
            InvalidTokenError: Token unknown to Google Play
            PlatformUnavailableError: Google Play could not be queried
            PurchaseStoreError: The record could not be read or written
        """
        if not is_real_user_id(user_id):
            raise InvalidTokenError(purchase_token, "user id is reserved")

        try:
            purchase = await self.query_purchase(package_name, sku, purchase_token, sku_type)
        except PurchaseNotFoundError as exc:
            logger.info("purchase_transfer_token_unknown", sku=sku, user_id=user_id)
            raise InvalidTokenError(purchase_token, str(exc)) from exc

        await self.store.assign_user(purchase_token, user_id, only_if_unowned=False)

        logger.info(
            "purchase_transferred",
            sku=sku,
            user_id=user_id,
            previous_user_id=purchase.user_id,
        )
        return replace(purchase, user_id=user_id)

    async def process_developer_notification(
        self,
        package_name: str,
        notification: DeveloperNotification,
    ) -> SubscriptionPurchase | None:
        """
        Apply a Real-Time Developer Notification.

        Returns:
            The refreshed subscription, or None when the notification carries
            nothing to apply (test, one-time product, SUBSCRIPTION_PURCHASED)
        """
        if notification.test_notification is not None:
            logger.info("test_notification_received", package_name=package_name)
            metrics.record_notification("test", "ignored")
            return None

        subscription = notification.subscription_notification
        if subscription is None:
            if notification.one_time_product_notification is not None:
                logger.info(
                    "one_time_product_notification_ignored",
                    sku=notification.one_time_product_notification.sku,
                )
                metrics.record_notification("one_time_product", "ignored")
            else:
                logger.warning("developer_notification_empty", package_name=package_name)
                metrics.record_notification("empty", "ignored")
            return None

        label = notification_type_label(subscription.notification_type)

        # Purchases are recorded when the client registers them
        if subscription.notification_type == NotificationType.SUBSCRIPTION_PURCHASED:
            metrics.record_notification(label, "ignored")
            return None

        purchase = await self.query_subscription_purchase(
            package_name,
            subscription.subscription_id,
            subscription.purchase_token,
            trigger_notification_type=subscription.notification_type,
        )
        metrics.record_notification(label, "processed")
        logger.info(
            "subscription_notification_processed",
            notification_type=label,
            sku=subscription.subscription_id,
            is_active=purchase.is_entitlement_active(self.clock(), self.policy),
        )
        return purchase

    async def _create_or_load(self, fresh: Purchase) -> Purchase | None:
        """
        Insert a never-seen purchase, or load the stored one.

        Returns:
            None if fresh was inserted, else the record as previously stored
        """
        existing = await self.store.get(fresh.purchase_token)
        if existing is not None:
            return existing

        if await self.store.create(fresh):
            return None

        # Inserted concurrently by another request
        existing = await self.store.get(fresh.purchase_token)
        if existing is None:
            raise PurchaseStoreError(f"Purchase record vanished after insert conflict: {fresh.sku}")
        return existing

    @staticmethod
    def _merge_subscription(
        fresh: SubscriptionPurchase, existing: Purchase
    ) -> SubscriptionPurchase:
        """Fresh platform facts combined with the stored library-owned fields."""
        replaced = isinstance(existing, SubscriptionPurchase) and (
            existing.replaced_by_another_purchase
        )
        latest_notification_type = fresh.latest_notification_type
        if latest_notification_type is None and isinstance(existing, SubscriptionPurchase):
            latest_notification_type = existing.latest_notification_type

        return replace(
            fresh,
            user_id=existing.user_id,
            replaced_by_another_purchase=replaced,
            is_mutable=fresh.is_mutable and not replaced,
            latest_notification_type=latest_notification_type,
        )

    async def _disable_replaced_subscription(
        self,
        package_name: str,
        sku: str,
        replaced_token: str,
    ) -> None:
        """
        Invalidate the purchase chain that a new subscription replaced.

        Walks linked_purchase_token links until it reaches a stored record.
        Unknown predecessors are backfilled from Google Play and stored as
        already replaced. Stops at the first record that is already
        invalidated, or when a backfill fails.
        """
        token: str | None = replaced_token
        visited: set[str] = set()

        while token and token not in visited:
            visited.add(token)

            stored = await self.store.get(token)
            if stored is not None:
                if isinstance(stored, SubscriptionPurchase) and stored.replaced_by_another_purchase:
                    logger.debug("replaced_purchase_already_disabled", sku=stored.sku)
                    return
                if await self.store.mark_replaced(token):
                    metrics.replaced_purchases_total.inc()
                    logger.info(
                        "replaced_purchase_disabled",
                        sku=stored.sku,
                        previous_user_id=stored.user_id,
                    )
                return

            try:
                raw = await self.verifier.verify(package_name, sku, token, SkuType.SUBS)
            except SubscriptionError as exc:
                logger.warning(
                    "replaced_purchase_backfill_failed",
                    sku=sku,
                    package_name=package_name,
                    error=str(exc),
                )
                return
            if not isinstance(raw, RawSubscriptionPurchase):
                return

            key = PurchaseKey(package_name=package_name, sku=sku, purchase_token=token)
            backfilled = replace(
                SubscriptionPurchase.from_raw(raw, key, verified_at=self.clock()),
                user_id=REPLACED_PURCHASE_USER_ID_PLACEHOLDER,
                replaced_by_another_purchase=True,
                is_mutable=False,
            )
            if not await self.store.create(backfilled):
                # Recorded concurrently; invalidate whatever landed
                await self.store.mark_replaced(token)
            metrics.replaced_purchases_total.inc()
            logger.info("replaced_purchase_backfilled", sku=sku)

            token = raw.linked_purchase_token
