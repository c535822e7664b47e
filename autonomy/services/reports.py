"""
reports.py — Self-report ingest.

Each save validates the payload, moves the profile's last known location to
the report's location, inserts the immutable report document and returns
who is affected by it: accounts and POIs close enough that their score
loops should refresh now instead of waiting for the next timer.

Symptom and behavior reports split their item ids into official and
customized lists. Customized symptoms are added to the `symptom` catalog
the first time anyone reports them.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from pymongo.errors import DuplicateKeyError

from autonomy.core.config import settings
from autonomy.core.database import SYMPTOM_COLLECTION
from autonomy.core.errors import ConflictError, InvalidInputError
from autonomy.core.geo import utc_now
from autonomy.models.catalog import (
    OFFICIAL_BEHAVIOR_WEIGHTS,
    OFFICIAL_SYMPTOM_WEIGHTS,
    SymptomSource,
    split_official,
)
from autonomy.models.location import Location
from autonomy.models.profile import Profile
from autonomy.models.report import ReportKind, ReportReceipt
from autonomy.services.spatial import SpatialAggregator
from autonomy.services.state_store import StateStore

logger = logging.getLogger(__name__)


class ReportService:
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

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _timestamp(self, ts: Optional[int]) -> int:
        now = int(self.clock().timestamp())
        if ts is None:
            return now
        if ts < 0:
            raise InvalidInputError(f"negative timestamp {ts}")
        return ts

    async def _insert(self, kind: ReportKind, profile: Profile, location: Location, ts: int, items: dict) -> str:
        collection = self.db[kind.collection]
        if await collection.find_one({"profile_id": profile.id, "ts": ts}):
            raise ConflictError(f"{kind.value} report at {ts} already exists")

        doc = {
            "profile_id": profile.id,
            "account_number": profile.account_number,
            **items,
            "location": location.to_geojson(),
            "ts": ts,
        }
        try:
            result = await collection.insert_one(doc)
        except DuplicateKeyError:
            raise ConflictError(f"{kind.value} report at {ts} already exists")
        return str(result.inserted_id)

    async def _receipt(self, report_id: str, ts: int, location: Location, radius_m: float) -> ReportReceipt:
        accounts = await self.aggregator.nearest_profiles(location, radius_m=radius_m)
        pois = await self.aggregator.nearest_pois(location, radius_m)
        return ReportReceipt(id=report_id, ts=ts, nearby_accounts=accounts, nearby_pois=pois)

    async def _register_customized_symptoms(self, ids: list[str]) -> None:
        for symptom_id in ids:
            await self.db[SYMPTOM_COLLECTION].update_one(
                {"_id": symptom_id},
                {"$setOnInsert": {
                    "name": symptom_id,
                    "desc": "",
                    "source": SymptomSource.CUSTOMIZED.value,
                    "weight": 1,
                }},
                upsert=True,
            )

    # ── Ingest ────────────────────────────────────────────────────────────────

    async def save_symptom_report(
        self, account_number: str, symptoms: list[str], location: Location, ts: Optional[int] = None,
    ) -> ReportReceipt:
        official, customized = split_official(symptoms, OFFICIAL_SYMPTOM_WEIGHTS)
        if not official and not customized:
            raise InvalidInputError("empty symptom list")

        profile = await self.store.require_profile(account_number)
        ts = self._timestamp(ts)
        await self.store.update_location(account_number, location)

        report_id = await self._insert(ReportKind.SYMPTOM, profile, location, ts, {
            "official_symptoms": official,
            "customized_symptoms": customized,
        })
        await self._register_customized_symptoms(customized)
        logger.info(
            "Symptom report saved account=%s official=%s customized=%s", account_number, official, customized,
        )
        return await self._receipt(report_id, ts, location, settings.nearby_radius_m)

    async def save_behavior_report(
        self, account_number: str, behaviors: list[str], location: Location, ts: Optional[int] = None,
    ) -> ReportReceipt:
        official, customized = split_official(behaviors, OFFICIAL_BEHAVIOR_WEIGHTS)
        if not official and not customized:
            raise InvalidInputError("empty behavior list")

        profile = await self.store.require_profile(account_number)
        ts = self._timestamp(ts)
        await self.store.update_location(account_number, location)

        report_id = await self._insert(ReportKind.BEHAVIOR, profile, location, ts, {
            "official_behaviors": official,
            "customized_behaviors": customized,
        })
        logger.info(
            "Behavior report saved account=%s official=%s customized=%s", account_number, official, customized,
        )
        # behaviors feed the cohort aggregate, so everyone in the cohort radius is affected
        return await self._receipt(report_id, ts, location, settings.cohort_radius_m)

    async def save_geographic(
        self, account_number: str, location: Location, ts: Optional[int] = None,
    ) -> ReportReceipt:
        profile = await self.store.require_profile(account_number)
        ts = self._timestamp(ts)
        await self.store.update_location(account_number, location)

        report_id = await self._insert(ReportKind.GEOGRAPHIC, profile, location, ts, {})
        logger.debug("Geographic ping saved account=%s", account_number)
        return ReportReceipt(id=report_id, ts=ts, nearby_accounts=[account_number])
