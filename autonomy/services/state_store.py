"""
state_store.py — Authoritative per-account and per-POI metric records.

Writers are routed by workflow identity: `account-state-{acc}` is the only
writer of `profile.metric`, `poi-state-{poi}` the only writer of
`poi.metric` and of the per-profile POI snapshots. Metric updates are
whole-record replacements guarded by `last_update`, so a late write can
never move an entity's clock backwards.
"""

import logging
import uuid
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import DuplicateKeyError

from autonomy.core.database import POI_COLLECTION, PROFILE_COLLECTION
from autonomy.core.errors import ConflictError, InvalidInputError, NotFoundError
from autonomy.models.location import Location
from autonomy.models.metric import Metric
from autonomy.models.poi import POI, POIRefresh
from autonomy.models.profile import NudgeKind, Profile, ProfilePOI

logger = logging.getLogger(__name__)


def parse_poi_id(poi_id: str) -> ObjectId:
    try:
        return ObjectId(poi_id)
    except (InvalidId, TypeError):
        raise InvalidInputError(f"invalid poi id {poi_id!r}")


class StateStore:
    def __init__(self, db) -> None:
        self.db = db

    @property
    def profiles(self):
        return self.db[PROFILE_COLLECTION]

    @property
    def pois(self):
        return self.db[POI_COLLECTION]

    # ── Profiles ──────────────────────────────────────────────────────────────

    async def get_profile(self, account_number: str) -> Optional[Profile]:
        doc = await self.profiles.find_one({"account_number": account_number})
        return Profile.from_document(doc) if doc else None

    async def require_profile(self, account_number: str) -> Profile:
        profile = await self.get_profile(account_number)
        if profile is None:
            raise NotFoundError(f"profile {account_number} not found")
        return profile

    async def create_profile(
        self, account_number: str, timezone_name: str, location: Optional[Location] = None,
    ) -> Profile:
        if await self.profiles.find_one({"account_number": account_number}):
            raise ConflictError(f"profile {account_number} already exists")

        doc = {
            "id": uuid.uuid4().hex,
            "account_number": account_number,
            "timezone": timezone_name,
            "metric": Metric().model_dump(),
            "last_nudge": {},
            "points_of_interest": [],
        }
        if location is not None:
            doc["location"] = location.to_geojson()

        try:
            await self.profiles.insert_one(doc)
        except DuplicateKeyError:
            raise ConflictError(f"profile {account_number} already exists")
        logger.info("Profile created account=%s", account_number)
        return Profile.from_document(doc)

    async def update_location(self, account_number: str, location: Location) -> None:
        result = await self.profiles.update_one(
            {"account_number": account_number},
            {"$set": {"location": location.to_geojson()}},
        )
        if result.matched_count == 0:
            raise NotFoundError(f"profile {account_number} not found")

    async def update_profile_metric(self, account_number: str, metric: Metric) -> bool:
        """
        Replace the profile metric unless a newer one is already stored.

        Returns False (and writes nothing) for a stale metric.
        """
        result = await self.profiles.update_one(
            {
                "account_number": account_number,
                "$or": [
                    {"metric.last_update": {"$lte": metric.last_update}},
                    {"metric.last_update": {"$exists": False}},
                ],
            },
            {"$set": {"metric": metric.model_dump()}},
        )
        if result.matched_count:
            return True
        if await self.get_profile(account_number) is None:
            raise NotFoundError(f"profile {account_number} not found")
        logger.warning("Stale metric ignored account=%s last_update=%s", account_number, metric.last_update)
        return False

    async def update_profile_poi_metric(self, account_number: str, poi_id: str, metric: Metric) -> None:
        """Mirror a POI metric into one profile's snapshot of that POI."""
        await self.profiles.update_one(
            {"account_number": account_number, "points_of_interest.id": poi_id},
            {"$set": {
                "points_of_interest.$.score": metric.score,
                "points_of_interest.$.metric": metric.model_dump(),
            }},
        )

    async def record_nudge(self, account_number: str, kind: NudgeKind, ts: int) -> None:
        result = await self.profiles.update_one(
            {"account_number": account_number},
            {"$set": {f"last_nudge.{kind.value}": ts}},
        )
        if result.matched_count == 0:
            raise NotFoundError(f"profile {account_number} not found")

    async def list_account_numbers(self) -> list[str]:
        cursor = self.profiles.find({}, {"account_number": 1})
        return [doc["account_number"] async for doc in cursor]

    # ── POIs ──────────────────────────────────────────────────────────────────

    async def get_poi(self, poi_id: str) -> Optional[POI]:
        doc = await self.pois.find_one({"_id": parse_poi_id(poi_id)})
        return POI.from_document(doc) if doc else None

    async def add_poi(self, account_number: str, alias: str, address: str, location: Location) -> POI:
        """Create a POI and attach it to the account's profile."""
        profile = await self.require_profile(account_number)

        doc = {"location": location.to_geojson(), "address": address, "metric": Metric().model_dump()}
        result = await self.pois.insert_one(doc)
        poi_id = str(result.inserted_id)

        ref = ProfilePOI(id=poi_id, alias=alias, address=address)
        await self.profiles.update_one(
            {"account_number": profile.account_number},
            {"$push": {"points_of_interest": ref.model_dump()}},
        )
        logger.info("POI added account=%s poi=%s", account_number, poi_id)
        return POI(id=poi_id, location=location, address=address)

    async def update_poi_metric(self, poi_id: str, metric: Metric, refresh: Optional[POIRefresh] = None) -> bool:
        """
        Replace the POI metric unless a newer one is already stored.

        *refresh* is written in the same update as the metric.
        """
        update = {"metric": metric.model_dump()}
        if refresh is not None:
            update["last_refresh"] = refresh.model_dump()
        result = await self.pois.update_one(
            {
                "_id": parse_poi_id(poi_id),
                "$or": [
                    {"metric.last_update": {"$lte": metric.last_update}},
                    {"metric.last_update": {"$exists": False}},
                ],
            },
            {"$set": update},
        )
        if result.matched_count:
            return True
        if await self.get_poi(poi_id) is None:
            raise NotFoundError(f"poi {poi_id} not found")
        logger.warning("Stale metric ignored poi=%s last_update=%s", poi_id, metric.last_update)
        return False

    async def list_poi_ids(self) -> list[str]:
        cursor = self.pois.find({}, {"_id": 1})
        return [str(doc["_id"]) async for doc in cursor]
