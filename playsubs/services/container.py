"""
Service Container - Explicit wiring of the reconciliation services.

Process-wide clients (Play Developer API, FCM) are built once at startup.
Session-bound services are built per request around that request's
AsyncSession.
"""

from dataclasses import dataclass, field
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from playsubs.config import Settings
from playsubs.exceptions import PlatformUnavailableError
from playsubs.models.google_play import RawPurchase, SkuType
from playsubs.services.device_registry import DeviceRegistry
from playsubs.services.notification_dispatcher import NotificationDispatcher
from playsubs.services.play_developer_client import PlayDeveloperClient
from playsubs.services.purchase_interpreter import (
    DEFAULT_POLICY,
    GracePeriodPolicy,
    current_millis,
)
from playsubs.services.purchase_manager import PurchaseManager, PurchaseVerifier
from playsubs.services.purchase_store import SqlPurchaseRecordStore
from playsubs.services.push_sender import PushSender, ServiceAccountTokenProvider
from playsubs.services.user_manager import UserManager

logger = get_logger(__name__)


class UnconfiguredVerifier:
    """Stands in for the Play client when no service account is configured."""

    async def verify(
        self,
        package_name: str,
        sku: str,
        purchase_token: str,
        sku_type: SkuType,
    ) -> RawPurchase:
        raise PlatformUnavailableError("Google Play service account not configured")


@dataclass
class ServiceContainer:
    """Holds process-wide clients and builds request-scoped services."""

    verifier: PurchaseVerifier
    push_sender: PushSender | None = None
    package_name: str = ""
    policy: GracePeriodPolicy = DEFAULT_POLICY
    clock: Callable[[], int] = field(default=current_millis)

    def purchase_manager(self, db: AsyncSession) -> PurchaseManager:
        return PurchaseManager(
            SqlPurchaseRecordStore(db), self.verifier, clock=self.clock, policy=self.policy
        )

    def user_manager(self, db: AsyncSession) -> UserManager:
        store = SqlPurchaseRecordStore(db)
        return UserManager(
            store,
            PurchaseManager(store, self.verifier, clock=self.clock, policy=self.policy),
            clock=self.clock,
            policy=self.policy,
        )

    def device_registry(self, db: AsyncSession) -> DeviceRegistry:
        return DeviceRegistry(db)

    def notification_dispatcher(self, db: AsyncSession) -> NotificationDispatcher:
        store = SqlPurchaseRecordStore(db)
        purchase_manager = PurchaseManager(
            store, self.verifier, clock=self.clock, policy=self.policy
        )
        return NotificationDispatcher(
            purchase_manager=purchase_manager,
            user_manager=UserManager(
                store, purchase_manager, clock=self.clock, policy=self.policy
            ),
            device_registry=DeviceRegistry(db),
            push_sender=self.push_sender,
            package_name=self.package_name,
            clock=self.clock,
            policy=self.policy,
        )

    async def close(self) -> None:
        if self.push_sender is not None:
            await self.push_sender.close()


def build_container(settings: Settings) -> ServiceContainer:
    """Build the container from settings. Missing credentials disable the affected client."""
    verifier: PurchaseVerifier
    if settings.PLAY_SERVICE_ACCOUNT:
        verifier = PlayDeveloperClient.from_service_account(settings.PLAY_SERVICE_ACCOUNT)
    else:
        logger.warning("play_service_account_not_configured")
        verifier = UnconfiguredVerifier()

    push_sender: PushSender | None = None
    if settings.FCM_PROJECT_ID and settings.fcm_service_account:
        push_sender = PushSender(
            project_id=settings.FCM_PROJECT_ID,
            token_provider=ServiceAccountTokenProvider(settings.fcm_service_account),
            timeout_seconds=settings.fcm_timeout_seconds,
        )
    else:
        logger.warning("fcm_not_configured")

    return ServiceContainer(
        verifier=verifier,
        push_sender=push_sender,
        package_name=settings.ANDROID_PACKAGE_NAME,
        policy=GracePeriodPolicy(settings.GRACE_PERIOD_POLICY),
    )
