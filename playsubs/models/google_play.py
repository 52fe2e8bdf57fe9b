"""
Google Play domain models - Immutable dataclasses for raw platform facts.

NO DICTIONARIES - All data uses strongly typed models.
The Play Developer API returns int64 fields as strings; parsers convert them.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any

GOOGLE_PLAY_FORM_OF_PAYMENT = "GOOGLE_PLAY"


class SkuType(str, Enum):
    """Type of a purchasable product."""

    ONE_TIME = "inapp"
    SUBS = "subs"


class PaymentState(IntEnum):
    """Subscription payment state."""

    PENDING = 0
    RECEIVED = 1
    FREE_TRIAL = 2
    PENDING_DEFERRED = 3
    # Not emitted by purchases.subscriptions.get; recorded when the platform
    # reports that payment retry failed (account hold).
    FAILED = 4


class PurchaseState(IntEnum):
    """One-time product purchase state."""

    PURCHASED = 0
    CANCELED = 1
    PENDING = 2


class PurchaseType(IntEnum):
    """Origin marker; absent for real purchases."""

    TEST = 0
    PROMO = 1
    REWARDED = 2


def _optional_int(value: Any) -> int | None:
    """Convert an int64-as-string API field, keeping None."""
    if value is None or value == "":
        return None
    return int(value)


@dataclass(frozen=True)
class PurchaseKey:
    """Validated identity of a purchase on the platform."""

    package_name: str
    sku: str
    purchase_token: str

    def __post_init__(self) -> None:
        """Validate purchase key fields."""
        if not self.purchase_token:
            raise ValueError("Purchase token required")
        if not self.sku:
            raise ValueError("SKU required")
        if not self.package_name:
            raise ValueError("Package name required")


@dataclass(frozen=True, kw_only=True)
class RawSubscriptionPurchase:
    """Result of purchases.subscriptions.get."""

    start_time_millis: int
    expiry_time_millis: int
    auto_renewing: bool = False
    price_currency_code: str | None = None
    price_amount_micros: int | None = None
    country_code: str | None = None
    payment_state: int | None = None  # see PaymentState
    cancel_reason: int | None = None  # 0: user, 1: system, 2: replaced, 3: developer
    user_cancellation_time_millis: int | None = None
    order_id: str | None = None
    linked_purchase_token: str | None = None
    purchase_type: int | None = None  # None: real, 0: test, 1: promo
    developer_payload: str | None = None

    @classmethod
    def from_api_response(cls, data: Mapping[str, Any]) -> "RawSubscriptionPurchase":
        """Parse a Play Developer API SubscriptionPurchase resource."""
        return cls(
            start_time_millis=int(data["startTimeMillis"]),
            expiry_time_millis=int(data["expiryTimeMillis"]),
            auto_renewing=bool(data.get("autoRenewing", False)),
            price_currency_code=data.get("priceCurrencyCode"),
            price_amount_micros=_optional_int(data.get("priceAmountMicros")),
            country_code=data.get("countryCode"),
            payment_state=_optional_int(data.get("paymentState")),
            cancel_reason=_optional_int(data.get("cancelReason")),
            user_cancellation_time_millis=_optional_int(data.get("userCancellationTimeMillis")),
            order_id=data.get("orderId"),
            linked_purchase_token=data.get("linkedPurchaseToken") or None,
            purchase_type=_optional_int(data.get("purchaseType")),
            developer_payload=data.get("developerPayload") or None,
        )


@dataclass(frozen=True, kw_only=True)
class RawOneTimePurchase:
    """Result of purchases.products.get."""

    purchase_time_millis: int
    purchase_state: int  # see PurchaseState
    consumption_state: int = 0  # 0: not consumed, 1: consumed
    acknowledgement_state: int = 0  # 0: not acknowledged, 1: acknowledged
    order_id: str | None = None
    purchase_type: int | None = None
    developer_payload: str | None = None

    @classmethod
    def from_api_response(cls, data: Mapping[str, Any]) -> "RawOneTimePurchase":
        """Parse a Play Developer API ProductPurchase resource."""
        return cls(
            purchase_time_millis=int(data["purchaseTimeMillis"]),
            purchase_state=int(data["purchaseState"]),
            consumption_state=int(data.get("consumptionState", 0)),
            acknowledgement_state=int(data.get("acknowledgementState", 0)),
            order_id=data.get("orderId"),
            purchase_type=_optional_int(data.get("purchaseType")),
            developer_payload=data.get("developerPayload") or None,
        )


RawPurchase = RawSubscriptionPurchase | RawOneTimePurchase
