"""
OneSignalClient — Push delivery via the OneSignal REST API.

Used by the notification center to deliver every push this service sends.
The vendor answers HTTP 200 even for most rejected requests and reports
problems in a JSON `errors` field, which is either a list of messages or
an object keyed by problem kind. Any `errors` value becomes a DeliveryError.

Graceful degradation: if ONESIGNAL_API_KEY is not set, sends are skipped
with a logged warning so local development works without vendor access.
"""

import logging
from typing import Any, Optional

import httpx

from autonomy.core.config import settings
from autonomy.core.errors import DeliveryError
from autonomy.models.notification import NotificationRequest

logger = logging.getLogger(__name__)

NOTIFICATIONS_PATH = "/api/v1/notifications"

ERR_ALL_PLAYERS_NOT_SUBSCRIBED = "All included players are not subscribed"


def is_all_players_not_subscribed(exc: DeliveryError) -> bool:
    """True when the vendor's only complaint is that nobody is subscribed."""
    errors = exc.errors
    return isinstance(errors, list) and errors == [ERR_ALL_PLAYERS_NOT_SUBSCRIBED]


class OneSignalClient:
    """
    Thin async wrapper around POST /api/v1/notifications.

    `transport` is passed straight to httpx.AsyncClient; tests use it to
    plug in an httpx.MockTransport.
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        app_id: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_url = (api_url or settings.onesignal_api_url).rstrip("/")
        self.app_id = app_id if app_id is not None else settings.onesignal_app_id
        self.api_key = api_key if api_key is not None else settings.onesignal_api_key
        self.timeout = timeout or settings.onesignal_timeout_seconds
        self.transport = transport
        self.enabled = bool(self.api_key)

        if not self.enabled:
            logger.warning(
                "ONESIGNAL_API_KEY not set — push delivery disabled. "
                "Notifications will be logged and dropped."
            )

    async def send_notification(self, request: NotificationRequest) -> dict[str, Any]:
        """
        Send one notification request.

        Returns:
            The decoded vendor response ({} when delivery is disabled).

        Raises:
            DeliveryError: transport failure, undecodable response, or a
                response carrying `errors`.
        """
        body = request.model_dump(exclude_none=True)
        if not self.enabled:
            logger.info("Push delivery disabled, dropping notification data=%s", body.get("data"))
            return {}

        logger.debug("Request to onesignal body=%s", body)
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(
                    f"{self.api_url}{NOTIFICATIONS_PATH}",
                    headers={
                        "Authorization": f"Basic {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=body,
                )
            except httpx.HTTPError as exc:
                raise DeliveryError(f"onesignal request failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            raise DeliveryError(
                f"onesignal returned {response.status_code}: {response.text[:200]}"
            )
        logger.debug("Response from onesignal status=%s body=%s", response.status_code, payload)

        errors = payload.get("errors") if isinstance(payload, dict) else None
        if errors:
            if isinstance(errors, list) and len(errors) == 1 and isinstance(errors[0], str):
                raise DeliveryError(errors[0], errors=errors)
            raise DeliveryError(f"onesignal errors: {errors}", errors=errors)

        if response.status_code >= 400:
            raise DeliveryError(f"onesignal returned {response.status_code}", errors=payload)
        return payload


# Module-level singleton
onesignal_client = OneSignalClient()
