"""
Exception Classes - Strongly typed exception hierarchy.

Two families that callers must be able to tell apart:
- the token itself is bad (InvalidTokenError, PurchaseConflictError,
  PurchaseNotFoundError): permanent, client-visible, never retried
- bookkeeping could not complete (PurchaseStoreError,
  PlatformUnavailableError): internal, safe to retry
"""


class SubscriptionError(Exception):
    """Base exception for all subscription reconciliation errors."""

    pass


class PurchaseNotFoundError(SubscriptionError):
    """Raised when the billing platform does not know the purchase token."""

    def __init__(self, purchase_token: str, message: str = "Purchase not found") -> None:
        self.purchase_token = purchase_token
        self.message = message
        super().__init__(f"Purchase not found: {message}")


class PlatformUnavailableError(SubscriptionError):
    """Raised when the billing platform call fails for reasons unrelated to the token."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Billing platform error: {message}")


class PurchaseStoreError(SubscriptionError):
    """Raised when reading or writing purchase records fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Purchase store error: {message}")


class InvalidTokenError(SubscriptionError):
    """Raised when a purchase token cannot be linked (unknown, terminal or replaced)."""

    def __init__(self, purchase_token: str, reason: str) -> None:
        self.purchase_token = purchase_token
        self.reason = reason
        super().__init__(f"Invalid purchase token: {reason}")


class PurchaseConflictError(SubscriptionError):
    """Raised when a purchase is already registered to a different user."""

    def __init__(self, purchase_token: str) -> None:
        self.purchase_token = purchase_token
        super().__init__("Purchase has been registered to another user")


class NotificationDecodeError(SubscriptionError):
    """Raised when a push-delivered notification envelope cannot be decoded."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Notification decode error: {message}")


class PushDeliveryError(SubscriptionError):
    """Raised when the push transport rejects a whole send request."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Push delivery error: {message}")
