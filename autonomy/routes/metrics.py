"""
metrics.py — Report counts and persisted scores.

Routes:
  GET /api/metrics/{report_type}/personal   — requester's own report counts
  GET /api/metrics/{report_type}/community  — avg reports per reporter nearby
  GET /api/scores/account                   — requester's persisted Metric
  GET /api/scores/poi/{poi_id}              — a POI's persisted Metric

`report_type` is one of symptom | behavior | geographic. Personal counts use
the profile's local days; community averages use UTC days around the
Geo-Position header (or the profile's last known location).
"""

import logging

from fastapi import APIRouter, HTTPException

from autonomy.core.config import settings
from autonomy.core.errors import NotFoundError
from autonomy.models.metric import Metric
from autonomy.models.report import ReportCount
from autonomy.routes.deps import CurrentAccount, Database, GeoPosition
from autonomy.services.spatial import SpatialAggregator
from autonomy.services.state_store import StateStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["metrics"])


@router.get("/metrics/{report_type}/personal", response_model=ReportCount)
async def personal_report_count(report_type: str, account_number: CurrentAccount, db: Database):
    counts = await SpatialAggregator(db).personal_report_count(report_type, account_number)
    if counts is None:
        raise NotFoundError(f"profile {account_number} not found")
    return ReportCount(today=counts[0], yesterday=counts[1])


@router.get("/metrics/{report_type}/community", response_model=ReportCount)
async def community_report_count(
    report_type: str, account_number: CurrentAccount, db: Database, geo: GeoPosition,
):
    location = geo
    if location is None:
        location = (await StateStore(db).require_profile(account_number)).location
    if location is None:
        raise HTTPException(status_code=400, detail="location is required (Geo-Position header)")

    today, yesterday = await SpatialAggregator(db).community_avg_report_count(
        report_type, location, settings.nearby_radius_m,
    )
    return ReportCount(today=today, yesterday=yesterday)


@router.get("/scores/account", response_model=Metric)
async def account_score(account_number: CurrentAccount, db: Database):
    profile = await StateStore(db).require_profile(account_number)
    return profile.metric


@router.get("/scores/poi/{poi_id}", response_model=Metric)
async def poi_score(poi_id: str, account_number: CurrentAccount, db: Database):
    """The requester's snapshot of the POI when it follows it, else the shared metric."""
    profile = await StateStore(db).get_profile(account_number)
    snapshot = profile.poi(poi_id) if profile else None
    if snapshot is not None and snapshot.metric.last_update:
        return snapshot.metric

    poi = await StateStore(db).get_poi(poi_id)
    if poi is None:
        raise NotFoundError(f"poi {poi_id} not found")
    return poi.metric
