"""
Device Registry - Push device tokens registered per user.
"""

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from playsubs.db.models import UserDevice
from playsubs.exceptions import PurchaseStoreError

logger = get_logger(__name__)


class DeviceRegistry:
    """Per-user set of FCM registration tokens."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def register_device_token(self, user_id: str, token: str) -> None:
        """Add a device token to a user. Registering a known pair is a no-op."""
        try:
            existing = await self.db.execute(
                select(UserDevice.id).where(
                    UserDevice.user_id == user_id,
                    UserDevice.device_token == token,
                )
            )
            if existing.scalar_one_or_none() is not None:
                return

            self.db.add(UserDevice(user_id=user_id, device_token=token))
            await self.db.commit()
        except IntegrityError:
            # Registered concurrently
            await self.db.rollback()
            return
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PurchaseStoreError(f"Failed to register device token: {exc}") from exc

        logger.info("device_token_registered", user_id=user_id)

    async def unregister_device_token(self, user_id: str, token: str) -> None:
        """Remove a device token from a user. Unknown tokens are logged, not raised."""
        try:
            result = await self.db.execute(
                delete(UserDevice).where(
                    UserDevice.user_id == user_id,
                    UserDevice.device_token == token,
                )
            )
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PurchaseStoreError(f"Failed to unregister device token: {exc}") from exc

        if not result.rowcount:
            logger.warning("device_token_not_registered", user_id=user_id)
            return

        logger.info("device_token_unregistered", user_id=user_id)

    async def get_device_tokens(self, user_id: str) -> list[str]:
        try:
            result = await self.db.execute(
                select(UserDevice.device_token)
                .where(UserDevice.user_id == user_id)
                .order_by(UserDevice.id)
            )
        except SQLAlchemyError as exc:
            raise PurchaseStoreError(f"Failed to load device tokens: {exc}") from exc

        return list(result.scalars().all())
