"""
Help request activities: the cohort broadcast, the accepted notice to the
requester and the expiry sweep.

Both notifications are template sends; the mobile client loads the request
by the `help_id` in the payload.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from autonomy.core.config import settings
from autonomy.core.geo import utc_now
from autonomy.models.notification import NotificationType
from autonomy.services.helps import HelpService
from autonomy.services.notifier import NotificationCenter

logger = logging.getLogger(__name__)

BROADCAST_NEW_HELP = "BroadcastNewHelpActivity"
NOTIFY_HELP_ACCEPTED = "NotifyHelpAcceptedActivity"
EXPIRE_HELP_REQUESTS = "ExpireHelpRequestsActivity"


class HelpActivities:
    def __init__(
        self,
        db,
        notifier: NotificationCenter,
        service: Optional[HelpService] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.notifier = notifier
        self.service = service or HelpService(db, clock=clock)

    async def broadcast_new_help(self, help_id: str, accounts: list[str]) -> None:
        await self.notifier.notify_accounts(accounts, settings.onesignal_template_broadcast_new_help, {
            "notification_type": NotificationType.BROADCAST_NEW_HELP.value,
            "help_id": help_id,
        })

    async def notify_help_accepted(self, help_id: str, requester: str) -> None:
        await self.notifier.notify_accounts([requester], settings.onesignal_template_notify_help_accepted, {
            "notification_type": NotificationType.NOTIFY_HELP_ACCEPTED.value,
            "help_id": help_id,
        })

    async def expire_help_requests(self) -> int:
        return await self.service.expire()
