"""
Push Sender - Firebase Cloud Messaging HTTP v1 data messages.

NO DICTIONARIES - Per-token outcomes are returned as typed results.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from google.auth.transport import requests as google_requests
from structlog import get_logger

from playsubs.exceptions import PushDeliveryError
from playsubs.observability.metrics import metrics
from playsubs.services.play_developer_client import load_service_account_credentials

logger = get_logger(__name__)

FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"
FCM_SEND_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"

# INVALID_ARGUMENT also covers bad payloads; it only condemns the token when
# the error names the message.token field
UNREGISTERED = "UNREGISTERED"
INVALID_ARGUMENT = "INVALID_ARGUMENT"
TOKEN_FIELD = "message.token"


@dataclass(frozen=True)
class PushResult:
    """Outcome of sending one message to one device token."""

    token: str
    success: bool
    error_code: str | None = None
    token_rejected: bool = False

    @property
    def is_invalid_token(self) -> bool:
        """The registration token will never work again."""
        if self.error_code == UNREGISTERED:
            return True
        return self.error_code == INVALID_ARGUMENT and self.token_rejected


class AccessTokenProvider(Protocol):
    async def get_access_token(self) -> str: ...


class ServiceAccountTokenProvider:
    """OAuth access tokens for FCM from a service account key."""

    def __init__(self, service_account_json: str | dict[str, str]) -> None:
        self.credentials = load_service_account_credentials(service_account_json, [FCM_SCOPE])

    async def get_access_token(self) -> str:
        if not self.credentials.valid:
            # Token refresh is a blocking HTTP call
            await asyncio.to_thread(
                self.credentials.refresh,
                google_requests.Request(),  # type: ignore[no-untyped-call]
            )
        return str(self.credentials.token)


class PushSender:
    """Sends FCM data messages to individual device tokens."""

    def __init__(
        self,
        project_id: str,
        token_provider: AccessTokenProvider,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
    ):
        self.project_id = project_id
        self.token_provider = token_provider
        self.timeout_seconds = timeout_seconds
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._http_client

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def send_data_message(
        self,
        device_tokens: list[str],
        data: dict[str, str],
    ) -> list[PushResult]:
        """
        Send the same data message to every device token.

        A failure for one token never fails the others.

        Returns:
            One PushResult per device token, in input order

        Raises:
            PushDeliveryError: No access token could be obtained for FCM
        """
        if not device_tokens:
            return []

        try:
            access_token = await self.token_provider.get_access_token()
        except Exception as exc:
            logger.error("fcm_access_token_failed", error=str(exc))
            raise PushDeliveryError(f"Could not authorize with FCM: {exc}") from exc

        url = FCM_SEND_URL.format(project_id=self.project_id)
        headers = {"Authorization": f"Bearer {access_token}"}

        results = await asyncio.gather(
            *(self._send_one(url, headers, token, data) for token in device_tokens)
        )

        sent = sum(1 for result in results if result.success)
        metrics.record_push("sent", sent)
        metrics.record_push("failed", len(results) - sent)
        logger.info(
            "fcm_messages_sent",
            total=len(results),
            sent=sent,
            invalid_tokens=sum(1 for result in results if result.is_invalid_token),
        )
        return list(results)

    async def _send_one(
        self,
        url: str,
        headers: dict[str, str],
        token: str,
        data: dict[str, str],
    ) -> PushResult:
        body = {"message": {"token": token, "data": data}}
        try:
            response = await self.http_client.post(url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("fcm_send_transport_error", error=str(exc))
            return PushResult(token=token, success=False, error_code="UNAVAILABLE")

        if response.is_success:
            return PushResult(token=token, success=True)

        error_code = _fcm_error_code(response)
        token_rejected = _fcm_rejects_token(response)
        logger.warning(
            "fcm_send_failed",
            status=response.status_code,
            error_code=error_code,
            token_rejected=token_rejected,
        )
        return PushResult(
            token=token, success=False, error_code=error_code, token_rejected=token_rejected
        )


def _fcm_error_details(response: httpx.Response) -> dict[str, Any]:
    try:
        payload: Any = response.json()
    except ValueError:
        return {}
    if not isinstance(payload, dict) or not isinstance(payload.get("error"), dict):
        return {}
    return payload["error"]


def _fcm_error_code(response: httpx.Response) -> str:
    """
    Extract the FCM error code from an error response.

    FCM reports UNREGISTERED in error.details[].errorCode and the canonical
    status (e.g. INVALID_ARGUMENT) in error.status.
    """
    error = _fcm_error_details(response)
    for detail in error.get("details", []):
        if isinstance(detail, dict) and detail.get("errorCode"):
            return str(detail["errorCode"])
    if error.get("status"):
        return str(error["status"])
    return f"HTTP_{response.status_code}"


def _fcm_rejects_token(response: httpx.Response) -> bool:
    """True when a google.rpc.BadRequest detail blames the registration token field."""
    error = _fcm_error_details(response)
    for detail in error.get("details", []):
        if not isinstance(detail, dict):
            continue
        for violation in detail.get("fieldViolations", []):
            if isinstance(violation, dict) and violation.get("field") == TOKEN_FIELD:
                return True
    return False
