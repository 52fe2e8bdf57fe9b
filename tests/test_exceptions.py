"""
Tests for exception classes.

Covers the hierarchy and string representations.
"""

import pytest

from playsubs.exceptions import (
    InvalidTokenError,
    NotificationDecodeError,
    PlatformUnavailableError,
    PurchaseConflictError,
    PurchaseNotFoundError,
    PurchaseStoreError,
    PushDeliveryError,
    SubscriptionError,
)


class TestSubscriptionError:
    @pytest.mark.parametrize(
        "error",
        [
            PurchaseNotFoundError("token-1"),
            PlatformUnavailableError("quota"),
            PurchaseStoreError("db down"),
            InvalidTokenError("token-1", "unknown token"),
            PurchaseConflictError("token-1"),
            NotificationDecodeError("bad json"),
            PushDeliveryError("unauthorized"),
        ],
    )
    def test_all_errors_are_subscription_errors(self, error):
        assert isinstance(error, SubscriptionError)


class TestPurchaseNotFoundError:
    def test_attributes(self):
        error = PurchaseNotFoundError("token-1")

        assert error.purchase_token == "token-1"
        assert str(error) == "Purchase not found: Purchase not found"

    def test_custom_message(self):
        error = PurchaseNotFoundError("token-1", "Token expired")
        assert "Token expired" in str(error)


class TestInvalidTokenError:
    def test_attributes(self):
        error = InvalidTokenError("token-1", "purchase not registerable")

        assert error.purchase_token == "token-1"
        assert error.reason == "purchase not registerable"
        assert str(error) == "Invalid purchase token: purchase not registerable"


class TestPurchaseConflictError:
    def test_message_does_not_leak_owner(self):
        error = PurchaseConflictError("token-1")

        assert error.purchase_token == "token-1"
        assert str(error) == "Purchase has been registered to another user"


class TestMessageErrors:
    @pytest.mark.parametrize(
        ("error_class", "prefix"),
        [
            (PlatformUnavailableError, "Billing platform error"),
            (PurchaseStoreError, "Purchase store error"),
            (NotificationDecodeError, "Notification decode error"),
            (PushDeliveryError, "Push delivery error"),
        ],
    )
    def test_message_and_prefix(self, error_class, prefix):
        error = error_class("something broke")

        assert error.message == "something broke"
        assert str(error) == f"{prefix}: something broke"
