"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from playsubs.models.purchases import SubscriptionPurchase
from playsubs.services.purchase_interpreter import DEFAULT_POLICY, GracePeriodPolicy

# ============================================================================
# Subscription Models
# ============================================================================


class RegisterSubscriptionRequest(BaseModel):
    """POST /v1/subscriptions/register and /transfer request body."""

    sku: str = Field(..., min_length=1, max_length=255)
    token: str = Field(..., min_length=1, max_length=4096, description="Play purchase token")


class SubscriptionStatus(BaseModel):
    """Client-facing status of one subscription, computed at read time."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    sku: str
    purchase_token: str
    is_entitlement_active: bool
    will_renew: bool
    active_until_millisec: int
    is_free_trial: bool
    is_grace_period: bool
    is_account_hold: bool

    @classmethod
    def from_purchase(
        cls,
        purchase: SubscriptionPurchase,
        now: int,
        policy: GracePeriodPolicy = DEFAULT_POLICY,
    ) -> "SubscriptionStatus":
        return cls(
            sku=purchase.sku,
            purchase_token=purchase.purchase_token,
            is_entitlement_active=purchase.is_entitlement_active(now, policy),
            will_renew=purchase.will_renew(),
            active_until_millisec=purchase.active_until(),
            is_free_trial=purchase.is_free_trial(),
            is_grace_period=purchase.is_grace_period(now, policy),
            is_account_hold=purchase.is_account_hold(now, policy),
        )


class SubscriptionsResponse(BaseModel):
    """Current subscriptions of the authenticated user."""

    subscriptions: list[SubscriptionStatus]


# ============================================================================
# Device Models
# ============================================================================


class DeviceTokenRequest(BaseModel):
    """POST /v1/devices/register and /unregister request body."""

    token: str = Field(..., min_length=1, max_length=4096, description="FCM registration token")


class EmptyResponse(BaseModel):
    """Acknowledgement with no payload."""

    pass


# ============================================================================
# Notification / Health Models
# ============================================================================


class NotificationAckResponse(BaseModel):
    """POST /v1/notifications/play response; Pub/Sub only checks the status code."""

    status: Literal["processed", "ignored", "failed"]


class HealthResponse(BaseModel):
    """GET /health response."""

    status: Literal["healthy", "unhealthy"]
    database: Literal["connected", "disconnected"]
    timestamp: str
