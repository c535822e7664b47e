"""
accounts.py — Profile registration and places of interest.

Routes:
  POST /api/accounts  — create the requester's profile, start its loops
  POST /api/pois      — add a POI to the requester's profile, start its loop

Identity tokens are issued by the account service; the profile created here
is keyed by the token's account number, so a second registration is a 409.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from autonomy.core.geo import parse_timezone
from autonomy.models.poi import POICreate, POIOut
from autonomy.models.profile import Profile, ProfileCreate
from autonomy.routes.deps import CurrentAccount, Database, GeoPosition
from autonomy.services.state_store import StateStore
from autonomy.workflows.registry import get_runtime
from autonomy.workflows.triggers import start_account_loops, start_poi_loop

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["accounts"])


@router.post("/accounts", response_model=Profile, status_code=201)
async def register_account(
    payload: ProfileCreate,
    account_number: CurrentAccount,
    db: Database,
    geo: GeoPosition,
    runtime=Depends(get_runtime),
):
    if parse_timezone(payload.timezone) is None:
        raise HTTPException(status_code=400, detail=f"invalid timezone {payload.timezone!r}")

    profile = await StateStore(db).create_profile(account_number, payload.timezone, payload.location or geo)
    if runtime is not None:
        await start_account_loops(runtime, account_number)
    return profile


@router.post("/pois", response_model=POIOut, status_code=201)
async def add_poi(
    payload: POICreate,
    account_number: CurrentAccount,
    db: Database,
    runtime=Depends(get_runtime),
):
    poi = await StateStore(db).add_poi(account_number, payload.alias, payload.address, payload.location)
    if runtime is not None:
        await start_poi_loop(runtime, poi.id)
    return POIOut(id=poi.id, alias=payload.alias, address=payload.address, location=payload.location)
