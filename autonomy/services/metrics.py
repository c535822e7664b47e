"""
metrics.py — Metric collection for one point on the map.

Gathers the raw inputs the scoring kernel needs:

  1. behavior aggregates around the point, today and yesterday (UTC)
  2. symptom aggregates around the point, today and yesterday (UTC)
  3. the confirmed-case daily series of the administrative area containing it

Confirmed cases come from per-country collections holding cumulative counts
per (country, state, county, report_ts); the daily series is their first
difference. A point outside every known boundary simply has no confirmed
series, which the kernel scores as 100.
"""

import logging
from datetime import datetime
from typing import Optional

from pymongo import DESCENDING

from autonomy.core.config import settings
from autonomy.core.database import BOUNDARY_COLLECTION
from autonomy.models.location import Boundary, Location
from autonomy.models.metric import Metric, RawMetric
from autonomy.services.scoring import CONFIRMED_WINDOW, calculate_metric
from autonomy.services.spatial import SpatialAggregator, utc_windows

logger = logging.getLogger(__name__)


class MetricCollector:
    def __init__(self, db, aggregator: Optional[SpatialAggregator] = None) -> None:
        self.db = db
        self.aggregator = aggregator or SpatialAggregator(db)

    # ── Coarse resolver ───────────────────────────────────────────────────────

    async def resolve_boundary(self, center: Location) -> Optional[Boundary]:
        doc = await self.db[BOUNDARY_COLLECTION].find_one(
            {"geometry": {"$geoIntersects": {"$geometry": center.to_geojson()}}}
        )
        if doc is None:
            return None
        return Boundary(
            country=doc.get("country") or "",
            state=doc.get("state") or "",
            county=doc.get("county") or "",
        )

    async def confirmed_daily_series(self, center: Location, days: int = CONFIRMED_WINDOW) -> list[float]:
        """Daily new cases for the last *days* reports, oldest first."""
        boundary = await self.resolve_boundary(center)
        if boundary is None:
            logger.debug("No boundary for lat=%s lng=%s", center.lat, center.lng)
            return []

        collection = settings.confirm_collections.get(boundary.country)
        if collection is None:
            logger.debug("No confirm collection for country=%s", boundary.country)
            return []

        query = {"country": boundary.country}
        if boundary.state:
            query["state"] = boundary.state
        if boundary.county:
            query["county"] = boundary.county

        # one extra cumulative point to difference the oldest day
        cursor = self.db[collection].find(query).sort("report_ts", DESCENDING).limit(days + 1)
        cumulative = [float(doc.get("cases") or 0) async for doc in cursor]
        cumulative.reverse()

        return [max(0.0, b - a) for a, b in zip(cumulative, cumulative[1:])]

    # ── Collection ────────────────────────────────────────────────────────────

    async def collect_raw_metric(self, center: Location, now: datetime) -> RawMetric:
        (today_from, today_to), (yesterday_from, yesterday_to) = utc_windows(now)
        radius = settings.cohort_radius_m

        raw = RawMetric(
            behavior_today=await self.aggregator.behavior_data(center, radius, today_from, today_to),
            behavior_yesterday=await self.aggregator.behavior_data(center, radius, yesterday_from, yesterday_to),
            symptom_today=await self.aggregator.symptom_data(center, radius, today_from, today_to),
            symptom_yesterday=await self.aggregator.symptom_data(center, radius, yesterday_from, yesterday_to),
            confirmed_daily=await self.confirmed_daily_series(center),
        )
        logger.debug(
            "Raw metric lat=%s lng=%s symptoms_today=%s behaviors_today=%s confirmed=%s",
            center.lat, center.lng,
            raw.symptom_today.distribution, raw.behavior_today.report_count, raw.confirmed_daily,
        )
        return raw

    async def calculate(self, center: Location, now: datetime) -> Metric:
        raw = await self.collect_raw_metric(center, now)
        return calculate_metric(raw, int(now.timestamp()), settings.symptom_spike_threshold)
