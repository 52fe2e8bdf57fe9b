"""
Tests for DeviceRegistry.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from playsubs.db.models import UserDevice
from playsubs.exceptions import PurchaseStoreError
from playsubs.services.device_registry import DeviceRegistry

from tests.fakes import USER_A


class TestRegisterDeviceToken:
    async def test_adds_new_token(self, db_session: AsyncMock):
        registry = DeviceRegistry(db_session)

        await registry.register_device_token(USER_A, "fcm-token-1")

        device = db_session.add.call_args.args[0]
        assert isinstance(device, UserDevice)
        assert device.user_id == USER_A
        assert device.device_token == "fcm-token-1"
        db_session.commit.assert_awaited_once()

    async def test_known_token_is_noop(self, db_session: AsyncMock):
        existing = MagicMock()
        existing.scalar_one_or_none = MagicMock(return_value=7)
        db_session.execute = AsyncMock(return_value=existing)
        registry = DeviceRegistry(db_session)

        await registry.register_device_token(USER_A, "fcm-token-1")

        db_session.add.assert_not_called()
        db_session.commit.assert_not_awaited()

    async def test_concurrent_registration_is_noop(self, db_session: AsyncMock):
        db_session.commit = AsyncMock(
            side_effect=IntegrityError("INSERT", {}, Exception("duplicate key"))
        )
        registry = DeviceRegistry(db_session)

        await registry.register_device_token(USER_A, "fcm-token-1")

        db_session.rollback.assert_awaited_once()

    async def test_database_error_wrapped(self, db_session: AsyncMock):
        db_session.execute = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("down")))
        registry = DeviceRegistry(db_session)

        with pytest.raises(PurchaseStoreError, match="register device token"):
            await registry.register_device_token(USER_A, "fcm-token-1")


class TestUnregisterDeviceToken:
    async def test_removes_token(self, db_session: AsyncMock):
        result = MagicMock()
        result.rowcount = 1
        db_session.execute = AsyncMock(return_value=result)
        registry = DeviceRegistry(db_session)

        await registry.unregister_device_token(USER_A, "fcm-token-1")

        sql = str(db_session.execute.call_args.args[0])
        assert sql.startswith("DELETE FROM user_devices")
        db_session.commit.assert_awaited_once()

    async def test_unknown_token_does_not_raise(self, db_session: AsyncMock):
        registry = DeviceRegistry(db_session)
        await registry.unregister_device_token(USER_A, "never-registered")

    async def test_database_error_wrapped(self, db_session: AsyncMock):
        db_session.execute = AsyncMock(side_effect=OperationalError("DELETE", {}, Exception("down")))
        registry = DeviceRegistry(db_session)

        with pytest.raises(PurchaseStoreError):
            await registry.unregister_device_token(USER_A, "fcm-token-1")
        db_session.rollback.assert_awaited_once()


class TestGetDeviceTokens:
    async def test_returns_tokens(self, db_session: AsyncMock):
        result = MagicMock()
        result.scalars = MagicMock(
            return_value=MagicMock(all=MagicMock(return_value=["fcm-token-1", "fcm-token-2"]))
        )
        db_session.execute = AsyncMock(return_value=result)
        registry = DeviceRegistry(db_session)

        assert await registry.get_device_tokens(USER_A) == ["fcm-token-1", "fcm-token-2"]

    async def test_no_devices(self, db_session: AsyncMock):
        registry = DeviceRegistry(db_session)
        assert await registry.get_device_tokens(USER_A) == []
