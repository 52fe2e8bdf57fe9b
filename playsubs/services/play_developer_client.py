"""
Google Play Developer API client.

NO DICTIONARIES - API responses are parsed into typed raw purchase models.
"""

import asyncio
import json
from typing import Any

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from structlog import get_logger

from playsubs.exceptions import PlatformUnavailableError, PurchaseNotFoundError
from playsubs.models.google_play import (
    PurchaseKey,
    RawOneTimePurchase,
    RawPurchase,
    RawSubscriptionPurchase,
    SkuType,
)
from playsubs.observability.metrics import metrics, track_duration

logger = get_logger(__name__)

ANDROID_PUBLISHER_SCOPE = "https://www.googleapis.com/auth/androidpublisher"

# Statuses meaning the token is unknown to Google Play
_NOT_FOUND_STATUSES = (404, 410)


def load_service_account_credentials(
    service_account_json: str | dict[str, str],
    scopes: list[str],
) -> service_account.Credentials:
    """
    Load service account credentials.

    Args:
        service_account_json: Path to a key file, the key file's JSON text,
            or the already-parsed key
        scopes: OAuth scopes to request
    """
    if isinstance(service_account_json, str) and service_account_json.lstrip().startswith("{"):
        service_account_json = json.loads(service_account_json)

    if isinstance(service_account_json, str):
        return service_account.Credentials.from_service_account_file(  # type: ignore[no-untyped-call]
            service_account_json,
            scopes=scopes,
        )
    return service_account.Credentials.from_service_account_info(  # type: ignore[no-untyped-call]
        service_account_json,
        scopes=scopes,
    )


class PlayDeveloperClient:
    """
    Read-only access to purchases.subscriptions.get and purchases.products.get.

    The discovery client is blocking; every request runs in a worker thread.
    """

    def __init__(self, service: Any) -> None:
        """
        Initialize the client.

        Args:
            service: androidpublisher v3 discovery resource
        """
        self.service = service

    @classmethod
    def from_service_account(
        cls, service_account_json: str | dict[str, str]
    ) -> "PlayDeveloperClient":
        """Build a client authorized with a service account key."""
        credentials = load_service_account_credentials(
            service_account_json, [ANDROID_PUBLISHER_SCOPE]
        )
        service = build("androidpublisher", "v3", credentials=credentials, cache_discovery=False)
        logger.info("play_developer_client_initialized")
        return cls(service)

    async def verify(
        self,
        package_name: str,
        sku: str,
        purchase_token: str,
        sku_type: SkuType,
    ) -> RawPurchase:
        """
        Fetch the current platform state of a purchase.

        Args:
            package_name: Android package name
            sku: Product or subscription ID
            purchase_token: Token issued to the device at purchase time
            sku_type: Selects the subscriptions or products endpoint

        Returns:
            RawSubscriptionPurchase for subscriptions, RawOneTimePurchase otherwise

        Raises:
            PurchaseNotFoundError: Google Play does not know the token
            PlatformUnavailableError: Any other failure (auth, network, quota)
        """
        key = PurchaseKey(package_name=package_name, sku=sku, purchase_token=purchase_token)
        purchases = self.service.purchases()
        if sku_type is SkuType.SUBS:
            request = purchases.subscriptions().get(
                packageName=key.package_name,
                subscriptionId=key.sku,
                token=key.purchase_token,
            )
        else:
            request = purchases.products().get(
                packageName=key.package_name,
                productId=key.sku,
                token=key.purchase_token,
            )

        with track_duration() as timer:
            try:
                result = await asyncio.to_thread(request.execute)
            except HttpError as exc:
                status = exc.resp.status
                error_content = exc.content.decode("utf-8") if exc.content else str(exc)
                if status in _NOT_FOUND_STATUSES:
                    logger.info(
                        "play_purchase_not_found",
                        sku=key.sku,
                        sku_type=sku_type.value,
                        status=status,
                    )
                    metrics.record_verification(sku_type.value, "not_found", timer.elapsed)
                    raise PurchaseNotFoundError(key.purchase_token) from exc

                logger.error(
                    "play_developer_api_error",
                    sku=key.sku,
                    sku_type=sku_type.value,
                    status=status,
                    error=error_content,
                )
                metrics.record_verification(sku_type.value, "error", timer.elapsed)
                raise PlatformUnavailableError(
                    f"Google Play API error ({status}): {error_content}"
                ) from exc
            except Exception as exc:
                logger.exception("play_developer_api_unexpected_error", sku=key.sku)
                metrics.record_verification(sku_type.value, "error", timer.elapsed)
                raise PlatformUnavailableError(f"Verification failed: {exc}") from exc

        try:
            raw: RawPurchase
            if sku_type is SkuType.SUBS:
                raw = RawSubscriptionPurchase.from_api_response(result)
            else:
                raw = RawOneTimePurchase.from_api_response(result)
        except (KeyError, TypeError, ValueError) as exc:
            metrics.record_verification(sku_type.value, "error", timer.elapsed)
            raise PlatformUnavailableError(f"Malformed Google Play response: {exc}") from exc

        metrics.record_verification(sku_type.value, "found", timer.elapsed)
        logger.info(
            "play_purchase_fetched",
            sku=key.sku,
            sku_type=sku_type.value,
            order_id=raw.order_id,
            purchase_type=raw.purchase_type,
        )
        return raw
