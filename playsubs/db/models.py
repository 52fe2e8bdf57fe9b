"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class PurchaseRecord(Base):
    """
    ORM model for purchase_records table.

    One row per purchase token. Caches the latest Play Developer API response
    and links the purchase to a user. Rows are never deleted.
    """

    __tablename__ = "purchase_records"

    # Primary Key
    purchase_token: Mapped[str] = mapped_column(String(4096), primary_key=True)

    # Identity
    package_name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[str] = mapped_column(String(255), nullable=False)
    sku_type: Mapped[str] = mapped_column(String(10), nullable=False)
    form_of_payment: Mapped[str] = mapped_column(String(50), nullable=False)

    # Library-owned fields
    user_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    replaced_by_another_purchase: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    is_mutable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    latest_notification_type: Mapped[int | None] = mapped_column(Integer, nullable=True)
    verified_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Shared platform fields
    order_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    purchase_type: Mapped[int | None] = mapped_column(Integer, nullable=True)
    developer_payload: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Subscription platform fields
    start_time_millis: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    expiry_time_millis: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    auto_renewing: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    price_currency_code: Mapped[str | None] = mapped_column(String(3), nullable=True)
    price_amount_micros: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    country_code: Mapped[str | None] = mapped_column(String(2), nullable=True)
    payment_state: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cancel_reason: Mapped[int | None] = mapped_column(Integer, nullable=True)
    user_cancellation_time_millis: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    linked_purchase_token: Mapped[str | None] = mapped_column(String(4096), nullable=True)

    # One-time product platform fields
    purchase_time_millis: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    purchase_state: Mapped[int | None] = mapped_column(Integer, nullable=True)
    consumption_state: Mapped[int | None] = mapped_column(Integer, nullable=True)
    acknowledgement_state: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("sku_type IN ('inapp', 'subs')", name="ck_purchase_records_sku_type"),
        Index(
            "idx_purchase_records_user_current",
            "user_id",
            "form_of_payment",
            "sku_type",
            "is_mutable",
        ),
        Index("idx_purchase_records_linked_token", "linked_purchase_token"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<PurchaseRecord(sku={self.sku}, sku_type={self.sku_type}, "
            f"user_id={self.user_id}, replaced={self.replaced_by_another_purchase})>"
        )


class UserDevice(Base):
    """
    ORM model for user_devices table.

    Push device tokens registered to a user.
    """

    __tablename__ = "user_devices"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    device_token: Mapped[str] = mapped_column(String(4096), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        UniqueConstraint("user_id", "device_token", name="uq_user_devices_user_token"),
        Index("idx_user_devices_user_id", "user_id"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<UserDevice(id={self.id}, user_id={self.user_id})>"
