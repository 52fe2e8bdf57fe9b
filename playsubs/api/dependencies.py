"""
FastAPI Dependencies - Authentication and service wiring.

NO DICTIONARIES - All dependencies return typed objects.
"""

import asyncio
import time
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from playsubs.config import settings
from playsubs.db.session import get_db
from playsubs.models.purchases import is_real_user_id
from playsubs.services.container import ServiceContainer
from playsubs.services.device_registry import DeviceRegistry
from playsubs.services.notification_dispatcher import NotificationDispatcher
from playsubs.services.purchase_manager import PurchaseManager
from playsubs.services.user_manager import UserManager

logger = get_logger(__name__)

# ============================================================================
# User Authentication (Google ID tokens from Android clients)
# ============================================================================


@dataclass
class UserIdentity:
    """Authenticated user identity from a Google ID token."""

    user_id: str  # Google user ID (sub claim)
    email: str | None = None


# Bearer token scheme
bearer_scheme = HTTPBearer(auto_error=False)

# Cache for verified Google ID tokens: token -> (user_id, email, expiry_timestamp)
_google_token_cache: dict[str, tuple[str, str | None, float]] = {}
_MAX_CACHE_SIZE = 10000


def _cleanup_google_token_cache() -> None:
    """Remove expired entries once the cache is full."""
    if len(_google_token_cache) < _MAX_CACHE_SIZE:
        return

    now = time.time()
    expired = [k for k, (_, _, exp) in _google_token_cache.items() if exp < now]
    for k in expired:
        del _google_token_cache[k]


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> UserIdentity:
    """
    FastAPI dependency validating the Google ID token in the Authorization header.

    Accepts: Authorization: Bearer {google_id_token}
    Verifies: signature against Google's public keys, expiry, issuer, and an
    audience listed in GOOGLE_CLIENT_IDS

    Raises:
        HTTPException 401 if no token or invalid token
    """
    if credentials is None:
        raise _unauthorized("Authorization header required")

    token = credentials.credentials

    # Check cache first (avoids network call to Google)
    cached = _google_token_cache.get(token)
    if cached is not None:
        user_id, email, expiry = cached
        if time.time() < expiry:
            return UserIdentity(user_id=user_id, email=email)
        del _google_token_cache[token]

    valid_client_ids = settings.valid_google_client_ids
    if not valid_client_ids:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server misconfiguration: no Google client IDs configured",
        )

    # Android tokens carry the web client ID as audience; try each accepted ID
    last_error: str | None = None
    for client_id in valid_client_ids:
        try:
            idinfo = await asyncio.to_thread(
                id_token.verify_oauth2_token,  # type: ignore[arg-type]
                token,
                google_requests.Request(),  # type: ignore[no-untyped-call]
                client_id,
            )
        except ValueError as exc:
            last_error = str(exc)
            if "audience" in last_error.lower():
                continue
            break

        user_id = idinfo.get("sub")
        if not user_id or not is_real_user_id(user_id):
            raise _unauthorized("Invalid token: missing user ID")

        email = idinfo.get("email")
        # Cache until expiry with 60s buffer
        expiry = idinfo.get("exp", time.time() + 3600) - 60
        _cleanup_google_token_cache()
        _google_token_cache[token] = (user_id, email, expiry)
        return UserIdentity(user_id=user_id, email=email)

    logger.warning("google_token_validation_failed", error=last_error)
    if last_error and "audience" in last_error.lower():
        raise _unauthorized("Invalid token audience. Token not issued for this application.")
    raise _unauthorized("Invalid or expired token")


# ============================================================================
# Service Providers
# ============================================================================


def get_container(request: Request) -> ServiceContainer:
    """The ServiceContainer built at startup (see main.lifespan)."""
    container: ServiceContainer = request.app.state.container
    return container


def get_purchase_manager(
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
) -> PurchaseManager:
    return container.purchase_manager(db)


def get_user_manager(
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
) -> UserManager:
    return container.user_manager(db)


def get_device_registry(
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
) -> DeviceRegistry:
    return container.device_registry(db)


def get_notification_dispatcher(
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
) -> NotificationDispatcher:
    return container.notification_dispatcher(db)
