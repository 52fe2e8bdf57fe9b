"""
API Routes - FastAPI endpoints for subscription reconciliation.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from playsubs.api.dependencies import (
    UserIdentity,
    get_container,
    get_current_user,
    get_device_registry,
    get_notification_dispatcher,
    get_purchase_manager,
    get_user_manager,
)
from playsubs.db.session import get_db
from playsubs.exceptions import InvalidTokenError, PurchaseConflictError, SubscriptionError
from playsubs.models.api import (
    DeviceTokenRequest,
    EmptyResponse,
    HealthResponse,
    NotificationAckResponse,
    RegisterSubscriptionRequest,
    SubscriptionsResponse,
    SubscriptionStatus,
)
from playsubs.models.google_play import SkuType
from playsubs.observability.metrics import metrics
from playsubs.services.container import ServiceContainer
from playsubs.services.device_registry import DeviceRegistry
from playsubs.services.notification_dispatcher import NotificationDispatcher
from playsubs.services.purchase_manager import PurchaseManager
from playsubs.services.user_manager import UserManager

logger = get_logger(__name__)

router = APIRouter()

# Protocol status strings carried in error details
STATUS_ALREADY_EXISTS = "already-exists"
STATUS_NOT_FOUND = "not-found"
STATUS_INTERNAL = "internal"


def _http_error(exc: Exception, operation: str) -> HTTPException:
    """Map a failure to the client-facing HTTP error."""
    if isinstance(exc, PurchaseConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=STATUS_ALREADY_EXISTS)
    if isinstance(exc, InvalidTokenError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=STATUS_NOT_FOUND)

    metrics.record_error(type(exc).__name__, operation)
    if isinstance(exc, SubscriptionError):
        logger.error(f"{operation}_failed", error=str(exc))
    else:
        logger.exception(f"{operation}_unexpected_error")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=STATUS_INTERNAL
    )


async def _current_status(
    user_manager: UserManager,
    container: ServiceContainer,
    user_id: str,
) -> SubscriptionsResponse:
    subscriptions = await user_manager.query_current_subscriptions(user_id)
    now = container.clock()
    return SubscriptionsResponse(
        subscriptions=[
            SubscriptionStatus.from_purchase(subscription, now, container.policy)
            for subscription in subscriptions
        ]
    )


# ============================================================================
# Subscription Endpoints
# ============================================================================


@router.post("/v1/subscriptions/register", response_model=SubscriptionsResponse)
async def register_subscription(
    request: RegisterSubscriptionRequest,
    user: UserIdentity = Depends(get_current_user),
    purchase_manager: PurchaseManager = Depends(get_purchase_manager),
    user_manager: UserManager = Depends(get_user_manager),
    container: ServiceContainer = Depends(get_container),
) -> SubscriptionsResponse:
    """
    Link a subscription purchase to the authenticated user.

    Auth: Bearer {google_id_token}

    Errors:
        409 already-exists: purchase belongs to another user
        404 not-found: token unknown to Google Play or not registerable
    """
    try:
        await purchase_manager.register_to_user_account(
            container.package_name,
            request.sku,
            request.token,
            SkuType.SUBS,
            user.user_id,
        )
        return await _current_status(user_manager, container, user.user_id)
    except Exception as exc:
        raise _http_error(exc, "subscription_registration") from exc


@router.post("/v1/subscriptions/transfer", response_model=SubscriptionsResponse)
async def transfer_subscription(
    request: RegisterSubscriptionRequest,
    user: UserIdentity = Depends(get_current_user),
    purchase_manager: PurchaseManager = Depends(get_purchase_manager),
    user_manager: UserManager = Depends(get_user_manager),
    container: ServiceContainer = Depends(get_container),
) -> SubscriptionsResponse:
    """
    Move a subscription purchase to the authenticated user, whoever owned it.

    Auth: Bearer {google_id_token}
    """
    try:
        await purchase_manager.transfer_to_user_account(
            container.package_name,
            request.sku,
            request.token,
            SkuType.SUBS,
            user.user_id,
        )
        return await _current_status(user_manager, container, user.user_id)
    except Exception as exc:
        raise _http_error(exc, "subscription_transfer") from exc


@router.get("/v1/subscriptions/status", response_model=SubscriptionsResponse)
async def subscription_status(
    user: UserIdentity = Depends(get_current_user),
    user_manager: UserManager = Depends(get_user_manager),
    container: ServiceContainer = Depends(get_container),
) -> SubscriptionsResponse:
    """Current subscriptions of the authenticated user."""
    try:
        return await _current_status(user_manager, container, user.user_id)
    except Exception as exc:
        raise _http_error(exc, "subscription_status") from exc


# ============================================================================
# Device Endpoints
# ============================================================================


@router.post("/v1/devices/register", response_model=EmptyResponse)
async def register_device(
    request: DeviceTokenRequest,
    user: UserIdentity = Depends(get_current_user),
    device_registry: DeviceRegistry = Depends(get_device_registry),
) -> EmptyResponse:
    """Register an FCM token to receive subscription status pushes."""
    try:
        await device_registry.register_device_token(user.user_id, request.token)
    except Exception as exc:
        raise _http_error(exc, "device_registration") from exc
    return EmptyResponse()


@router.post("/v1/devices/unregister", response_model=EmptyResponse)
async def unregister_device(
    request: DeviceTokenRequest,
    user: UserIdentity = Depends(get_current_user),
    device_registry: DeviceRegistry = Depends(get_device_registry),
) -> EmptyResponse:
    try:
        await device_registry.unregister_device_token(user.user_id, request.token)
    except Exception as exc:
        raise _http_error(exc, "device_unregistration") from exc
    return EmptyResponse()


# ============================================================================
# Real-Time Developer Notifications
# ============================================================================


@router.post("/v1/notifications/play", response_model=NotificationAckResponse)
async def play_notification(
    request: Request,
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> NotificationAckResponse:
    """
    Pub/Sub push endpoint for Google Play Real-Time Developer Notifications.

    Always answers 200 so Pub/Sub does not redeliver; failures are logged.
    """
    payload = await request.body()
    outcome = await dispatcher.handle_push(payload)
    return NotificationAckResponse(status=outcome)  # type: ignore[arg-type]


# ============================================================================
# Health
# ============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """
    Health check for load balancer.

    Verifies database connectivity.
    """
    try:
        await db.execute(text("SELECT 1"))

        return HealthResponse(
            status="healthy",
            database="connected",
            timestamp=datetime.now(UTC).isoformat(),
        )

    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "unhealthy",
                "database": "disconnected",
                "error": str(exc),
                "timestamp": datetime.now(UTC).isoformat(),
            },
        ) from exc
