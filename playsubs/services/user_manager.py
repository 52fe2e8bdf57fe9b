"""
User Manager - What a user currently owns.
"""

from typing import Callable

from structlog import get_logger

from playsubs.exceptions import SubscriptionError
from playsubs.models.purchases import SubscriptionPurchase, is_real_user_id
from playsubs.services.purchase_interpreter import (
    DEFAULT_POLICY,
    GracePeriodPolicy,
    current_millis,
)
from playsubs.services.purchase_manager import PurchaseManager
from playsubs.services.purchase_store import PurchaseRecordStore

logger = get_logger(__name__)


class UserManager:
    """Serves a user's current subscriptions from the store, refreshing stale records."""

    def __init__(
        self,
        store: PurchaseRecordStore,
        purchase_manager: PurchaseManager,
        clock: Callable[[], int] = current_millis,
        policy: GracePeriodPolicy = DEFAULT_POLICY,
    ) -> None:
        self.store = store
        self.purchase_manager = purchase_manager
        self.clock = clock
        self.policy = policy

    async def query_current_subscriptions(
        self,
        user_id: str,
        sku: str | None = None,
        package_name: str | None = None,
    ) -> list[SubscriptionPurchase]:
        """
        Subscriptions that are entitlement-active or in account hold.

        Records that look lapsed are re-verified with Google Play first, since
        a renewal may not have been notified yet. A record that fails to
        refresh is left out.

        Raises:
            PurchaseStoreError: The store could not be read
        """
        if not is_real_user_id(user_id):
            return []

        candidates = await self.store.find_current_subscriptions(
            user_id, sku=sku, package_name=package_name
        )
        now = self.clock()

        current: list[SubscriptionPurchase] = []
        for purchase in candidates:
            if not self._is_current(purchase, now):
                try:
                    purchase = await self.purchase_manager.query_subscription_purchase(
                        purchase.package_name, purchase.sku, purchase.purchase_token
                    )
                except SubscriptionError as exc:
                    logger.warning(
                        "subscription_refresh_failed",
                        sku=purchase.sku,
                        user_id=user_id,
                        error=str(exc),
                    )
                    continue

            if purchase.user_id == user_id and self._is_current(purchase, now):
                current.append(purchase)

        logger.debug(
            "current_subscriptions_queried",
            user_id=user_id,
            candidates=len(candidates),
            current=len(current),
        )
        return current

    def _is_current(self, purchase: SubscriptionPurchase, now: int) -> bool:
        return purchase.is_entitlement_active(now, self.policy) or purchase.is_account_hold(
            now, self.policy
        )
