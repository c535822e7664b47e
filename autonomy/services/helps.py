"""
helps.py — Help requests: ask the cohort, list nearby requests, answer one.

A request is PENDING until another account answers it (RESPONDED) or it
grows older than `settings.help_expiry_hours` (EXPIRED). Requests past
their cutoff are treated as expired everywhere, even before the expiry
loop has rewritten their state.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from pymongo.errors import DuplicateKeyError

from autonomy.core.config import settings
from autonomy.core.database import HELP_COLLECTION
from autonomy.core.errors import ConflictError, InvalidInputError, NotFoundError
from autonomy.core.geo import distance_m, utc_now
from autonomy.models.help import HelpCreate, HelpNearby, HelpRequest, HelpState
from autonomy.services.spatial import SpatialAggregator
from autonomy.services.state_store import StateStore

logger = logging.getLogger(__name__)


class HelpService:
    def __init__(
        self,
        db,
        store: Optional[StateStore] = None,
        aggregator: Optional[SpatialAggregator] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.db = db
        self.store = store or StateStore(db)
        self.aggregator = aggregator or SpatialAggregator(db)
        self.clock = clock

    @property
    def helps(self):
        return self.db[HELP_COLLECTION]

    def cutoff(self) -> int:
        """Requests created before this timestamp are expired."""
        return int((self.clock() - timedelta(hours=settings.help_expiry_hours)).timestamp())

    # ── Ask ───────────────────────────────────────────────────────────────────

    async def ask(self, account_number: str, payload: HelpCreate) -> tuple[HelpRequest, list[str]]:
        """
        Store a new PENDING request at the requester's last known location.

        Returns the request and the accounts to broadcast it to: every
        profile within the cohort radius except the requester.
        """
        profile = await self.store.require_profile(account_number)
        if profile.location is None:
            raise InvalidInputError(f"no known location for {account_number}")

        await self.expire(requester=account_number)
        if await self.helps.find_one({"requester": account_number, "state": HelpState.PENDING.value}):
            raise ConflictError(f"{account_number} already has a pending help request")

        doc = {
            "_id": uuid.uuid4().hex,
            "requester": account_number,
            "helper": "",
            "subject": payload.subject,
            "exact_needs": payload.exact_needs,
            "meeting_location": payload.meeting_location,
            "contact_info": payload.contact_info,
            "state": HelpState.PENDING.value,
            "location": profile.location.to_geojson(),
            "created_at": int(self.clock().timestamp()),
        }
        try:
            await self.helps.insert_one(doc)
        except DuplicateKeyError:
            raise ConflictError(f"{account_number} already has a pending help request")

        nearby = await self.aggregator.nearest_profiles(profile.location, radius_m=settings.cohort_radius_m)
        recipients = [a for a in nearby if a != account_number]
        logger.info("Help request created id=%s requester=%s recipients=%d", doc["_id"], account_number, len(recipients))
        return HelpRequest.from_document(doc), recipients

    # ── Read ──────────────────────────────────────────────────────────────────

    async def get(self, help_id: str) -> HelpRequest:
        doc = await self.helps.find_one({"_id": help_id})
        if doc is None:
            raise NotFoundError(f"help request {help_id} not found")
        return HelpRequest.from_document(doc)

    async def list_nearby(self, account_number: str) -> list[HelpNearby]:
        """Open requests of other accounts within the cohort radius, nearest first."""
        profile = await self.store.require_profile(account_number)
        if profile.location is None:
            raise InvalidInputError(f"no known location for {account_number}")

        cursor = self.helps.find({
            "state": HelpState.PENDING.value,
            "requester": {"$ne": account_number},
            "created_at": {"$gte": self.cutoff()},
        })
        listed = []
        async for doc in cursor:
            request = HelpRequest.from_document(doc)
            if request.location is None:
                continue
            distance = distance_m(profile.location, request.location)
            if distance <= settings.cohort_radius_m:
                listed.append(HelpNearby(**request.model_dump(), distance_m=distance))

        listed.sort(key=lambda h: h.distance_m)
        return listed[:settings.help_list_limit]

    # ── Answer ────────────────────────────────────────────────────────────────

    async def answer(self, help_id: str, helper: str) -> HelpRequest:
        """Mark an open request RESPONDED by *helper*; requesters cannot answer their own."""
        result = await self.helps.update_one(
            {
                "_id": help_id,
                "requester": {"$ne": helper},
                "state": HelpState.PENDING.value,
                "created_at": {"$gte": self.cutoff()},
            },
            {"$set": {"state": HelpState.RESPONDED.value, "helper": helper}},
        )
        if result.matched_count == 0:
            raise NotFoundError(f"no open help request {help_id} for {helper}")

        logger.info("Help request answered id=%s helper=%s", help_id, helper)
        return await self.get(help_id)

    # ── Expiry ────────────────────────────────────────────────────────────────

    async def expire(self, requester: Optional[str] = None) -> int:
        """Move PENDING requests past the cutoff to EXPIRED; returns how many."""
        query = {"state": HelpState.PENDING.value, "created_at": {"$lt": self.cutoff()}}
        if requester is not None:
            query["requester"] = requester
        result = await self.helps.update_many(query, {"$set": {"state": HelpState.EXPIRED.value}})
        if result.modified_count:
            logger.info("Help requests expired count=%d", result.modified_count)
        return result.modified_count
