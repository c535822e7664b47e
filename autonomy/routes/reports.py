"""
reports.py — Self-report ingest routes.

Routes:
  POST /api/symptoms/report   — symptom report
  POST /api/behaviors/report  — protective behavior report
  POST /api/geographic        — location ping

The requester is the `sub` of the Bearer identity token. The location comes
from the body or, when omitted, from the `Geo-Position: lat;lng` header.

After a report is stored, the score loops of every account and POI close
to it are signalled so their metrics refresh within seconds instead of at
the next timer tick.
"""

import logging

from fastapi import APIRouter, Depends, Request

from autonomy.core.rate_limit import REPORT_RATE, limiter
from autonomy.models.report import BehaviorReportIn, GeographicIn, ReportReceipt, SymptomReportIn
from autonomy.routes.deps import CurrentAccount, Database, GeoPosition, resolve_location
from autonomy.services.reports import ReportService
from autonomy.workflows.registry import get_runtime
from autonomy.workflows.triggers import (
    trigger_account_update,
    trigger_high_risk_follow_up,
    trigger_poi_update,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["reports"])


async def _signal_loops(runtime, account_number: str, receipt: ReportReceipt) -> None:
    if runtime is None:
        logger.warning("Workflow runtime unavailable, loops not signalled account=%s", account_number)
        return
    await trigger_account_update(runtime, [account_number, *receipt.nearby_accounts])
    await trigger_poi_update(runtime, receipt.nearby_pois)


# ── Routes ────────────────────────────────────────────────────────────────────

@router.post("/symptoms/report", response_model=ReportReceipt, status_code=201)
@limiter.limit(REPORT_RATE)
async def report_symptoms(
    request: Request,
    payload: SymptomReportIn,
    account_number: CurrentAccount,
    db: Database,
    geo: GeoPosition,
    runtime=Depends(get_runtime),
):
    """Store a symptom report and start the self-reported high-risk follow-up."""
    location = resolve_location(payload.location, geo)
    receipt = await ReportService(db).save_symptom_report(account_number, payload.symptoms, location, payload.ts)

    await _signal_loops(runtime, account_number, receipt)
    if runtime is not None:
        await trigger_high_risk_follow_up(runtime, account_number)
    return receipt


@router.post("/behaviors/report", response_model=ReportReceipt, status_code=201)
@limiter.limit(REPORT_RATE)
async def report_behaviors(
    request: Request,
    payload: BehaviorReportIn,
    account_number: CurrentAccount,
    db: Database,
    geo: GeoPosition,
    runtime=Depends(get_runtime),
):
    location = resolve_location(payload.location, geo)
    receipt = await ReportService(db).save_behavior_report(account_number, payload.behaviors, location, payload.ts)

    await _signal_loops(runtime, account_number, receipt)
    return receipt


@router.post("/geographic", response_model=ReportReceipt, status_code=201)
@limiter.limit(REPORT_RATE)
async def report_geographic(
    request: Request,
    payload: GeographicIn,
    account_number: CurrentAccount,
    db: Database,
    geo: GeoPosition,
    runtime=Depends(get_runtime),
):
    location = resolve_location(payload.location, geo)
    receipt = await ReportService(db).save_geographic(account_number, location, payload.ts)

    await _signal_loops(runtime, account_number, receipt)
    return receipt
