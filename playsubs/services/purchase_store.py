"""
Purchase Record Store - Durable purchase records keyed by purchase token.

The PurchaseRecordStore protocol is the only persistence seam the
reconciliation core depends on. SqlPurchaseRecordStore implements it on the
purchase_records table.
"""

from typing import Protocol

from sqlalchemy import case, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from playsubs.db.models import PurchaseRecord
from playsubs.exceptions import PurchaseStoreError
from playsubs.models.google_play import GOOGLE_PLAY_FORM_OF_PAYMENT, SkuType
from playsubs.models.purchases import (
    REPLACED_PURCHASE_USER_ID_PLACEHOLDER,
    OneTimeProductPurchase,
    Purchase,
    SubscriptionPurchase,
)

logger = get_logger(__name__)


class PurchaseRecordStore(Protocol):
    """
    Purchase record persistence.

    Implementations raise PurchaseStoreError for any storage failure.
    """

    async def get(self, purchase_token: str) -> Purchase | None:
        """Load the stored purchase for a token, or None if never seen."""
        ...

    async def create(self, purchase: Purchase) -> bool:
        """
        Insert a brand-new record.

        Returns:
            False if a record for the token already exists (nothing written)
        """
        ...

    async def update_platform_fields(self, purchase: Purchase) -> None:
        """Overwrite platform-sourced fields; library-owned fields stay untouched."""
        ...

    async def mark_replaced(self, purchase_token: str) -> bool:
        """
        Invalidate a purchase superseded by a newer one.

        Returns:
            True if this call performed the invalidation, False if it was
            already invalidated or does not exist
        """
        ...

    async def assign_user(self, purchase_token: str, user_id: str, only_if_unowned: bool) -> bool:
        """
        Link a purchase to a user.

        With only_if_unowned the write lands only while user_id is unset or
        already equal to the target user.

        Returns:
            True if the record now belongs to user_id
        """
        ...

    async def find_current_subscriptions(
        self,
        user_id: str,
        sku: str | None = None,
        package_name: str | None = None,
    ) -> list[SubscriptionPurchase]:
        """Mutable Google Play subscription records linked to a user."""
        ...


def _platform_columns(purchase: Purchase) -> dict[str, object]:
    """Columns sourced from the Play Developer API plus verification bookkeeping."""
    values: dict[str, object] = {
        "package_name": purchase.package_name,
        "sku": purchase.sku,
        "verified_at": purchase.verified_at,
        "order_id": purchase.order_id,
        "purchase_type": purchase.purchase_type,
        "developer_payload": purchase.developer_payload,
    }
    if isinstance(purchase, SubscriptionPurchase):
        values.update(
            start_time_millis=purchase.start_time_millis,
            expiry_time_millis=purchase.expiry_time_millis,
            auto_renewing=purchase.auto_renewing,
            price_currency_code=purchase.price_currency_code,
            price_amount_micros=purchase.price_amount_micros,
            country_code=purchase.country_code,
            payment_state=purchase.payment_state,
            cancel_reason=purchase.cancel_reason,
            user_cancellation_time_millis=purchase.user_cancellation_time_millis,
            linked_purchase_token=purchase.linked_purchase_token,
            is_mutable=purchase.is_mutable,
        )
        if purchase.latest_notification_type is not None:
            values["latest_notification_type"] = purchase.latest_notification_type
    else:
        values.update(
            purchase_time_millis=purchase.purchase_time_millis,
            purchase_state=purchase.purchase_state,
            consumption_state=purchase.consumption_state,
            acknowledgement_state=purchase.acknowledgement_state,
            is_mutable=purchase.is_mutable,
        )
    return values


def record_to_purchase(record: PurchaseRecord) -> Purchase:
    """Convert an ORM row to its domain purchase."""
    if record.sku_type == SkuType.SUBS.value:
        return SubscriptionPurchase(
            package_name=record.package_name,
            purchase_token=record.purchase_token,
            sku=record.sku,
            verified_at=record.verified_at,
            user_id=record.user_id,
            replaced_by_another_purchase=record.replaced_by_another_purchase,
            is_mutable=record.is_mutable,
            latest_notification_type=record.latest_notification_type,
            start_time_millis=record.start_time_millis or 0,
            expiry_time_millis=record.expiry_time_millis or 0,
            auto_renewing=bool(record.auto_renewing),
            price_currency_code=record.price_currency_code,
            price_amount_micros=record.price_amount_micros,
            country_code=record.country_code,
            payment_state=record.payment_state,
            cancel_reason=record.cancel_reason,
            user_cancellation_time_millis=record.user_cancellation_time_millis,
            order_id=record.order_id,
            linked_purchase_token=record.linked_purchase_token,
            purchase_type=record.purchase_type,
            developer_payload=record.developer_payload,
        )

    return OneTimeProductPurchase(
        package_name=record.package_name,
        purchase_token=record.purchase_token,
        sku=record.sku,
        verified_at=record.verified_at,
        user_id=record.user_id,
        purchase_time_millis=record.purchase_time_millis or 0,
        purchase_state=record.purchase_state or 0,
        consumption_state=record.consumption_state or 0,
        acknowledgement_state=record.acknowledgement_state or 0,
        order_id=record.order_id,
        purchase_type=record.purchase_type,
        developer_payload=record.developer_payload,
    )


class SqlPurchaseRecordStore:
    """PurchaseRecordStore backed by the purchase_records table."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize store with database session."""
        self.session = session

    async def get(self, purchase_token: str) -> Purchase | None:
        try:
            record = await self.session.get(PurchaseRecord, purchase_token)
        except SQLAlchemyError as exc:
            raise PurchaseStoreError(f"Failed to load purchase record: {exc}") from exc

        if record is None:
            return None
        return record_to_purchase(record)

    async def create(self, purchase: Purchase) -> bool:
        user_id = purchase.user_id
        replaced = isinstance(purchase, SubscriptionPurchase) and (
            purchase.replaced_by_another_purchase
        )
        record = PurchaseRecord(
            purchase_token=purchase.purchase_token,
            sku_type=purchase.sku_type.value,
            form_of_payment=GOOGLE_PLAY_FORM_OF_PAYMENT,
            user_id=user_id,
            replaced_by_another_purchase=replaced,
            **_platform_columns(purchase),
        )
        self.session.add(record)

        try:
            await self.session.flush()
            await self.session.commit()
        except IntegrityError as exc:
            # Created concurrently by another request
            logger.info("purchase_record_create_raced", error=str(exc.orig))
            await self.session.rollback()
            return False
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PurchaseStoreError(f"Failed to create purchase record: {exc}") from exc

        return True

    async def update_platform_fields(self, purchase: Purchase) -> None:
        values = _platform_columns(purchase)
        # A replaced record stays immutable whatever the platform says
        values["is_mutable"] = case(
            (PurchaseRecord.replaced_by_another_purchase.is_(True), False),
            else_=purchase.is_mutable,
        )
        stmt = (
            update(PurchaseRecord)
            .where(PurchaseRecord.purchase_token == purchase.purchase_token)
            .values(**values)
        )
        await self._execute_write(stmt, "update purchase record")

    async def mark_replaced(self, purchase_token: str) -> bool:
        stmt = (
            update(PurchaseRecord)
            .where(PurchaseRecord.purchase_token == purchase_token)
            .where(PurchaseRecord.replaced_by_another_purchase.is_(False))
            .values(
                replaced_by_another_purchase=True,
                user_id=REPLACED_PURCHASE_USER_ID_PLACEHOLDER,
                is_mutable=False,
            )
        )
        rowcount = await self._execute_write(stmt, "invalidate replaced purchase")
        return rowcount > 0

    async def assign_user(self, purchase_token: str, user_id: str, only_if_unowned: bool) -> bool:
        stmt = update(PurchaseRecord).where(PurchaseRecord.purchase_token == purchase_token)
        if only_if_unowned:
            stmt = stmt.where(
                or_(PurchaseRecord.user_id.is_(None), PurchaseRecord.user_id == user_id)
            )
        rowcount = await self._execute_write(stmt.values(user_id=user_id), "assign purchase")
        return rowcount > 0

    async def find_current_subscriptions(
        self,
        user_id: str,
        sku: str | None = None,
        package_name: str | None = None,
    ) -> list[SubscriptionPurchase]:
        stmt = select(PurchaseRecord).where(
            PurchaseRecord.form_of_payment == GOOGLE_PLAY_FORM_OF_PAYMENT,
            PurchaseRecord.sku_type == SkuType.SUBS.value,
            PurchaseRecord.user_id == user_id,
            PurchaseRecord.is_mutable.is_(True),
        )
        if sku:
            stmt = stmt.where(PurchaseRecord.sku == sku)
        if package_name:
            stmt = stmt.where(PurchaseRecord.package_name == package_name)

        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            raise PurchaseStoreError(f"Failed to query purchase records: {exc}") from exc

        purchases: list[SubscriptionPurchase] = []
        for record in result.scalars().all():
            purchase = record_to_purchase(record)
            if isinstance(purchase, SubscriptionPurchase):
                purchases.append(purchase)
        return purchases

    async def _execute_write(self, stmt: object, action: str) -> int:
        """Execute an UPDATE, commit, and return the affected row count."""
        try:
            result = await self.session.execute(stmt)  # type: ignore[call-overload]
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PurchaseStoreError(f"Failed to {action}: {exc}") from exc
        return int(result.rowcount or 0)
