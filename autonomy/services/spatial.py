"""
spatial.py — Geo-proximity queries over report streams.

Every query starts with the same MongoDB pipeline head and does the
grouping in Python, which keeps the pipelines index-friendly and easy to
reason about:

  [ { "$geoNear": { near: <Point>, distanceField: "dist",
                    maxDistance: <metres>, spherical: true, key: "location" } },
    { "$match":   { ts: { $gte: t_from, $lt: t_to } } },
    { "$sort":    { ts: -1 } } ]

A report is "nearby" iff its great-circle distance is ≤ radius_m.
Community windows are UTC days; personal windows are days in the
profile's own timezone.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from autonomy.core.database import POI_COLLECTION, PROFILE_COLLECTION
from autonomy.core.errors import InvalidInputError
from autonomy.core.geo import account_timezone, consecutive_days, day_bounds
from autonomy.models.catalog import OFFICIAL_BEHAVIOR_WEIGHTS
from autonomy.models.location import Location
from autonomy.models.metric import BehaviorData, SymptomData
from autonomy.models.profile import Profile
from autonomy.models.report import ReportKind

logger = logging.getLogger(__name__)


# ── Pipeline stages ───────────────────────────────────────────────────────────

def geo_near_stage(center: Location, radius_m: Optional[float] = None) -> dict:
    stage = {
        "near": center.to_geojson(),
        "distanceField": "dist",
        "spherical": True,
        "key": "location",
    }
    if radius_m is not None:
        stage["maxDistance"] = radius_m
    return {"$geoNear": stage}


def reported_between_stage(t_from: int, t_to: int) -> dict:
    return {"$match": {"ts": {"$gte": t_from, "$lt": t_to}}}


def _check_radius(radius_m: Optional[float]) -> None:
    if radius_m is not None and radius_m < 0:
        raise InvalidInputError(f"negative radius {radius_m}")


def _check_window(t_from: int, t_to: int) -> None:
    if t_from >= t_to:
        raise InvalidInputError(f"empty window [{t_from}, {t_to})")


def _kind(kind: ReportKind | str) -> ReportKind:
    try:
        return ReportKind(kind)
    except ValueError:
        raise InvalidInputError(f"unknown report type {kind!r}")


class SpatialAggregator:
    """Read-only aggregate queries; one instance per database handle."""

    def __init__(self, db) -> None:
        self.db = db

    async def _nearby_reports(
        self, kind: ReportKind, center: Location, radius_m: float, t_from: int, t_to: int,
    ) -> list[dict]:
        _check_radius(radius_m)
        _check_window(t_from, t_to)
        pipeline = [
            geo_near_stage(center, radius_m),
            reported_between_stage(t_from, t_to),
            {"$sort": {"ts": -1}},
        ]
        return [doc async for doc in self.db[kind.collection].aggregate(pipeline)]

    # ── Contract ──────────────────────────────────────────────────────────────

    async def count_reports(
        self, kind: ReportKind | str, center: Location, radius_m: float, t_from: int, t_to: int,
    ) -> int:
        """Number of distinct profiles with at least one report in the window."""
        docs = await self._nearby_reports(_kind(kind), center, radius_m, t_from, t_to)
        return len({d["profile_id"] for d in docs})

    async def distribution(
        self, kind: ReportKind | str, center: Location, radius_m: float, t_from: int, t_to: int,
    ) -> dict[str, int]:
        """Item id → occurrences across every report in the window (no dedup)."""
        kind = _kind(kind)
        docs = await self._nearby_reports(kind, center, radius_m, t_from, t_to)
        counts: dict[str, int] = {}
        for doc in docs:
            for field in kind.item_fields:
                for item in doc.get(field) or []:
                    counts[item] = counts.get(item, 0) + 1
        return counts

    async def nearby_user_count(
        self, kind: ReportKind | str, center: Location, radius_m: float, day: datetime,
    ) -> int:
        """Distinct profiles reporting during the UTC day containing *day*."""
        t_from, t_to = day_bounds(day, timezone.utc)
        return await self.count_reports(kind, center, radius_m, t_from, t_to)

    async def nearest_profiles(
        self,
        center: Location,
        radius_m: Optional[float] = None,
        top_n: Optional[int] = None,
    ) -> list[str]:
        """Account numbers ordered by increasing distance from *center*."""
        if radius_m is None and top_n is None:
            raise InvalidInputError("either radius_m or top_n is required")
        _check_radius(radius_m)
        pipeline = [geo_near_stage(center, radius_m), {"$sort": {"dist": 1}}]
        if top_n is not None:
            pipeline.append({"$limit": top_n})
        return [doc["account_number"] async for doc in self.db[PROFILE_COLLECTION].aggregate(pipeline)]

    async def nearest_pois(self, center: Location, radius_m: float) -> list[str]:
        _check_radius(radius_m)
        pipeline = [geo_near_stage(center, radius_m), {"$sort": {"dist": 1}}]
        return [str(doc["_id"]) async for doc in self.db[POI_COLLECTION].aggregate(pipeline)]

    async def profiles_by_poi(self, poi_id: str) -> list[Profile]:
        cursor = self.db[PROFILE_COLLECTION].find({"points_of_interest.id": poi_id})
        return [Profile.from_document(doc) async for doc in cursor]

    # ── Scoring inputs ────────────────────────────────────────────────────────

    async def symptom_data(
        self, center: Location, radius_m: float, t_from: int, t_to: int,
    ) -> SymptomData:
        docs = await self._nearby_reports(ReportKind.SYMPTOM, center, radius_m, t_from, t_to)
        data = SymptomData(user_count=len({d["profile_id"] for d in docs}))
        for doc in docs:
            official = doc.get("official_symptoms") or []
            customized = doc.get("customized_symptoms") or []
            data.official_count += len(official)
            data.customized_count += len(customized)
            for item in official + customized:
                data.distribution[item] = data.distribution.get(item, 0) + 1
        return data

    async def behavior_data(
        self, center: Location, radius_m: float, t_from: int, t_to: int,
    ) -> BehaviorData:
        docs = await self._nearby_reports(ReportKind.BEHAVIOR, center, radius_m, t_from, t_to)
        data = BehaviorData(
            user_count=len({d["profile_id"] for d in docs}),
            report_count=len(docs),
        )
        for doc in docs:
            official = doc.get("official_behaviors") or []
            customized = doc.get("customized_behaviors") or []
            data.official_count += len(official)
            data.customized_count += len(customized)
            data.official_weight += sum(OFFICIAL_BEHAVIOR_WEIGHTS.get(b, 1) for b in official)
            data.customized_weight += len(customized)
        return data

    # ── Acknowledgement counts ────────────────────────────────────────────────

    async def personal_report_count(
        self, kind: ReportKind | str, account_number: str, now: Optional[datetime] = None,
    ) -> Optional[tuple[int, int]]:
        """
        (today, yesterday) report counts in the profile's local days.

        Returns None when the profile does not exist.
        """
        kind = _kind(kind)
        doc = await self.db[PROFILE_COLLECTION].find_one({"account_number": account_number})
        if doc is None:
            return None

        now = now or datetime.now(tz=timezone.utc)
        yesterday, today, tomorrow = consecutive_days(now, account_timezone(doc.get("timezone", "")))
        collection = self.db[kind.collection]
        count_today = await collection.count_documents(
            {"account_number": account_number, "ts": {"$gte": today, "$lt": tomorrow}}
        )
        count_yesterday = await collection.count_documents(
            {"account_number": account_number, "ts": {"$gte": yesterday, "$lt": today}}
        )
        return count_today, count_yesterday

    async def community_avg_report_count(
        self,
        kind: ReportKind | str,
        center: Location,
        radius_m: float,
        now: Optional[datetime] = None,
    ) -> tuple[float, float]:
        """Average reports per reporting profile nearby, (today, yesterday) in UTC."""
        kind = _kind(kind)
        now = now or datetime.now(tz=timezone.utc)
        yesterday, today, tomorrow = consecutive_days(now, timezone.utc)

        averages = []
        for t_from, t_to in ((today, tomorrow), (yesterday, today)):
            docs = await self._nearby_reports(kind, center, radius_m, t_from, t_to)
            per_profile: dict[str, int] = {}
            for doc in docs:
                per_profile[doc["profile_id"]] = per_profile.get(doc["profile_id"], 0) + 1
            averages.append(sum(per_profile.values()) / len(per_profile) if per_profile else 0.0)

        logger.debug("community avg report kind=%s today=%.2f yesterday=%.2f", kind.value, *averages)
        return averages[0], averages[1]

    async def last_report(self, kind: ReportKind | str, account_number: str) -> Optional[dict]:
        kind = _kind(kind)
        cursor = (
            self.db[kind.collection]
            .find({"account_number": account_number})
            .sort("ts", -1)
            .limit(1)
        )
        async for doc in cursor:
            return doc
        return None


def utc_windows(now: datetime) -> tuple[tuple[int, int], tuple[int, int]]:
    """((today_from, today_to), (yesterday_from, yesterday_to)) as UTC unix seconds."""
    yesterday, today, tomorrow = consecutive_days(now, timezone.utc)
    return (today, tomorrow), (yesterday, today)
