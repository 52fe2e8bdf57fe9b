"""
Purchase Interpreter - Pure classification of raw Google Play purchases.

Every function is deterministic in its arguments: a raw purchase, the as-of
instant in epoch milliseconds and, where it matters, a GracePeriodPolicy.
Nothing here touches storage or the network.
"""

import time
from enum import Enum

from playsubs.models.google_play import (
    PaymentState,
    PurchaseState,
    PurchaseType,
    RawOneTimePurchase,
    RawSubscriptionPurchase,
)


class GracePeriodPolicy(str, Enum):
    """How grace period and account hold are told apart."""

    # Past expiry: pending payment is grace (entitled), failed payment is hold.
    PAYMENT_STATE = "payment_state"
    # Platform extends expiry through grace: pending before expiry is grace,
    # anything unpaid at or after expiry is hold.
    EXPIRY_EXTENSION = "expiry_extension"


DEFAULT_POLICY = GracePeriodPolicy.EXPIRY_EXTENSION

_UNPAID_STATES = (PaymentState.PENDING, PaymentState.PENDING_DEFERRED)


def current_millis() -> int:
    """Wall clock in epoch milliseconds."""
    return int(time.time() * 1000)


def is_expired(purchase: RawSubscriptionPurchase, now: int) -> bool:
    """True once the as-of instant reaches the platform expiry time."""
    return now >= purchase.expiry_time_millis


def is_grace_period(
    purchase: RawSubscriptionPurchase,
    now: int,
    policy: GracePeriodPolicy = DEFAULT_POLICY,
) -> bool:
    """Payment retry in progress while the user keeps access."""
    if not purchase.auto_renewing:
        return False

    if policy is GracePeriodPolicy.EXPIRY_EXTENSION:
        return purchase.payment_state == PaymentState.PENDING and not is_expired(purchase, now)

    return is_expired(purchase, now) and purchase.payment_state in _UNPAID_STATES


def is_account_hold(
    purchase: RawSubscriptionPurchase,
    now: int,
    policy: GracePeriodPolicy = DEFAULT_POLICY,
) -> bool:
    """Payment retry failed; access suspended but the subscription is recoverable."""
    if not purchase.auto_renewing or not is_expired(purchase, now):
        return False

    if policy is GracePeriodPolicy.EXPIRY_EXTENSION:
        return purchase.payment_state in (PaymentState.PENDING, PaymentState.FAILED)

    return purchase.payment_state == PaymentState.FAILED


def is_entitlement_active(
    purchase: RawSubscriptionPurchase,
    now: int,
    policy: GracePeriodPolicy = DEFAULT_POLICY,
) -> bool:
    """
    Whether the user is entitled to the content right now.

    Active strictly before expiry. At or after expiry, active only while the
    subscription is in grace period.
    """
    if not is_expired(purchase, now):
        return True
    return is_grace_period(purchase, now, policy)


def will_renew(purchase: RawSubscriptionPurchase) -> bool:
    return purchase.auto_renewing


def is_free_trial(purchase: RawSubscriptionPurchase) -> bool:
    return purchase.payment_state == PaymentState.FREE_TRIAL


def is_test_purchase(purchase: RawSubscriptionPurchase | RawOneTimePurchase) -> bool:
    """Purchases made by license testers carry purchaseType=0."""
    return purchase.purchase_type == PurchaseType.TEST


def active_until(purchase: RawSubscriptionPurchase | RawOneTimePurchase) -> int | None:
    """Expiry for subscriptions, undefined for one-time products."""
    if isinstance(purchase, RawSubscriptionPurchase):
        return purchase.expiry_time_millis
    return None


def is_subscription_mutable(
    purchase: RawSubscriptionPurchase,
    now: int,
    replaced: bool = False,
) -> bool:
    """
    Whether the platform may still change this purchase.

    A replaced purchase is terminal. Otherwise it can change while it
    auto-renews or has not yet expired.
    """
    if replaced:
        return False
    return purchase.auto_renewing or not is_expired(purchase, now)


def is_subscription_registerable(replaced: bool) -> bool:
    return not replaced


def is_one_time_registerable(purchase: RawOneTimePurchase) -> bool:
    return purchase.purchase_state == PurchaseState.PURCHASED


def is_one_time_mutable(purchase: RawOneTimePurchase) -> bool:
    """Pending purchases may still complete or be canceled."""
    return purchase.purchase_state == PurchaseState.PENDING
