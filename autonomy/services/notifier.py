"""
notifier.py — Notification center: recipients + message → vendor requests.

The vendor addresses devices by tag filters, so a recipient list becomes an
OR-joined filter over the `account_number` tag:

  [ {"field": "tag", "key": "account_number", "relation": "=", "value": "a1"},
    {"operator": "OR"},
    {"field": "tag", "key": "account_number", "relation": "=", "value": "a2"} ]

Recipients are sent in chunks of CHUNK_SIZE accounts, one request per chunk.
A failed chunk does not stop the remaining ones; the first failure is raised
after every chunk has been attempted.
"""

import logging
from typing import Any, Iterable, Optional

from autonomy.core.config import settings
from autonomy.core.errors import DeliveryError
from autonomy.external.onesignal import OneSignalClient, is_all_players_not_subscribed
from autonomy.models.notification import NotificationRequest

logger = logging.getLogger(__name__)

CHUNK_SIZE = 100


def account_filter(account_number: str) -> dict[str, str]:
    return {"field": "tag", "key": "account_number", "relation": "=", "value": account_number}


def build_filters(accounts: list[str]) -> list[dict[str, str]]:
    filters: list[dict[str, str]] = []
    for i, account_number in enumerate(accounts):
        if i:
            filters.append({"operator": "OR"})
        filters.append(account_filter(account_number))
    return filters


def chunked(items: list[str], size: int = CHUNK_SIZE) -> list[list[str]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class NotificationCenter:
    def __init__(self, client: OneSignalClient, app_id: Optional[str] = None) -> None:
        self.client = client
        self.app_id = app_id if app_id is not None else (client.app_id or settings.onesignal_app_id)

    async def _send(self, request: NotificationRequest) -> None:
        try:
            await self.client.send_notification(request)
        except DeliveryError as exc:
            if is_all_players_not_subscribed(exc):
                logger.info("No subscribed device for filters=%s", request.filters)
                return
            raise

    async def notify_accounts(
        self, recipients: Iterable[str], template_id: str, payload: dict[str, Any],
    ) -> None:
        """Send a template notification to every recipient, CHUNK_SIZE at a time."""
        accounts = list(dict.fromkeys(r for r in recipients if r))
        if not accounts:
            logger.warning("No recipients for template=%s", template_id)
            return

        first_error: Optional[DeliveryError] = None
        for chunk in chunked(accounts):
            request = NotificationRequest(
                app_id=self.app_id,
                template_id=template_id,
                filters=build_filters(chunk),
                data=payload,
            )
            try:
                await self._send(request)
            except DeliveryError as exc:
                logger.error(
                    "Fail to deliver chunk template=%s size=%d error=%s", template_id, len(chunk), exc,
                )
                if first_error is None:
                    first_error = exc

        if first_error is not None:
            raise first_error
        logger.info("Template notification sent template=%s recipients=%d", template_id, len(accounts))

    async def notify_account_text(
        self,
        recipient: str,
        headings: dict[str, str],
        contents: dict[str, str],
        payload: dict[str, Any],
    ) -> None:
        """Send a literal (already localized) message to one account."""
        request = NotificationRequest(
            app_id=self.app_id,
            headings=headings,
            contents=contents,
            filters=[account_filter(recipient)],
            data=payload,
        )
        await self._send(request)
        logger.info(
            "Text notification sent account=%s type=%s", recipient, payload.get("notification_type"),
        )
