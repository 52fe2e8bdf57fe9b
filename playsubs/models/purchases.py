"""
Purchase Domain Models - Platform facts merged with library-owned fields.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.

Library-owned fields (user_id, replaced_by_another_purchase) are never taken
from a platform response; they only come from the purchase record store.
"""

from dataclasses import dataclass, fields

from playsubs.models.google_play import (
    PurchaseKey,
    RawOneTimePurchase,
    RawSubscriptionPurchase,
    SkuType,
)
from playsubs.services import purchase_interpreter as interpreter
from playsubs.services.purchase_interpreter import DEFAULT_POLICY, GracePeriodPolicy

# user_id of a purchase invalidated because a newer purchase replaced it.
# Never a valid user id.
REPLACED_PURCHASE_USER_ID_PLACEHOLDER = "invalid"


def is_real_user_id(user_id: str | None) -> bool:
    """True for a concrete user id (not unset, not the replacement placeholder)."""
    return bool(user_id) and user_id != REPLACED_PURCHASE_USER_ID_PLACEHOLDER


@dataclass(frozen=True, kw_only=True)
class SubscriptionPurchase(RawSubscriptionPurchase):
    """A recurring subscription purchase as seen by the library."""

    package_name: str
    purchase_token: str
    sku: str
    verified_at: int  # epoch ms of the last Play Developer API query
    user_id: str | None = None
    replaced_by_another_purchase: bool = False
    is_mutable: bool = True
    latest_notification_type: int | None = None

    sku_type = SkuType.SUBS

    @classmethod
    def from_raw(
        cls,
        raw: RawSubscriptionPurchase,
        key: PurchaseKey,
        verified_at: int,
    ) -> "SubscriptionPurchase":
        """Build an unlinked purchase from a fresh platform verification."""
        return cls(
            **_raw_fields(raw, RawSubscriptionPurchase),
            package_name=key.package_name,
            purchase_token=key.purchase_token,
            sku=key.sku,
            verified_at=verified_at,
            is_mutable=interpreter.is_subscription_mutable(raw, verified_at),
        )

    @property
    def key(self) -> PurchaseKey:
        return PurchaseKey(
            package_name=self.package_name, sku=self.sku, purchase_token=self.purchase_token
        )

    def is_registerable(self) -> bool:
        return interpreter.is_subscription_registerable(self.replaced_by_another_purchase)

    def is_entitlement_active(
        self, now: int | None = None, policy: GracePeriodPolicy = DEFAULT_POLICY
    ) -> bool:
        """Replaced purchases never grant entitlement."""
        if self.replaced_by_another_purchase:
            return False
        return interpreter.is_entitlement_active(self, _now(now), policy)

    def will_renew(self) -> bool:
        return interpreter.will_renew(self)

    def is_test_purchase(self) -> bool:
        return interpreter.is_test_purchase(self)

    def is_free_trial(self) -> bool:
        return interpreter.is_free_trial(self)

    def is_grace_period(
        self, now: int | None = None, policy: GracePeriodPolicy = DEFAULT_POLICY
    ) -> bool:
        if self.replaced_by_another_purchase:
            return False
        return interpreter.is_grace_period(self, _now(now), policy)

    def is_account_hold(
        self, now: int | None = None, policy: GracePeriodPolicy = DEFAULT_POLICY
    ) -> bool:
        if self.replaced_by_another_purchase:
            return False
        return interpreter.is_account_hold(self, _now(now), policy)

    def active_until(self) -> int:
        return self.expiry_time_millis


@dataclass(frozen=True, kw_only=True)
class OneTimeProductPurchase(RawOneTimePurchase):
    """A one-time (in-app) product purchase as seen by the library."""

    package_name: str
    purchase_token: str
    sku: str
    verified_at: int
    user_id: str | None = None

    sku_type = SkuType.ONE_TIME

    @classmethod
    def from_raw(
        cls,
        raw: RawOneTimePurchase,
        key: PurchaseKey,
        verified_at: int,
    ) -> "OneTimeProductPurchase":
        """Build an unlinked purchase from a fresh platform verification."""
        return cls(
            **_raw_fields(raw, RawOneTimePurchase),
            package_name=key.package_name,
            purchase_token=key.purchase_token,
            sku=key.sku,
            verified_at=verified_at,
        )

    @property
    def key(self) -> PurchaseKey:
        return PurchaseKey(
            package_name=self.package_name, sku=self.sku, purchase_token=self.purchase_token
        )

    @property
    def is_mutable(self) -> bool:
        return interpreter.is_one_time_mutable(self)

    def is_registerable(self) -> bool:
        return interpreter.is_one_time_registerable(self)

    def is_test_purchase(self) -> bool:
        return interpreter.is_test_purchase(self)


Purchase = SubscriptionPurchase | OneTimeProductPurchase


def _raw_fields(raw: object, raw_type: type) -> dict[str, object]:
    """Platform field values of raw, for building a subclass instance."""
    return {field.name: getattr(raw, field.name) for field in fields(raw_type)}


def _now(now: int | None) -> int:
    return interpreter.current_millis() if now is None else now
