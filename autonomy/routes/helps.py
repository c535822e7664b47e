"""
helps.py — Help request routes.

Routes:
  POST  /api/helps            — ask the cohort for help (409 while one is open)
  GET   /api/helps            — open requests nearby, nearest first
  GET   /api/helps/{help_id}  — one request
  PATCH /api/helps/{help_id}  — answer a request

Asking broadcasts the request to every profile within the cohort radius;
answering notifies the requester.
"""

import logging

from fastapi import APIRouter, Depends, Request

from autonomy.core.rate_limit import REPORT_RATE, limiter
from autonomy.models.help import HelpCreate, HelpNearby, HelpRequest
from autonomy.routes.deps import CurrentAccount, Database
from autonomy.services.helps import HelpService
from autonomy.workflows.registry import get_runtime
from autonomy.workflows.triggers import trigger_help_accepted, trigger_help_broadcast

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/helps", tags=["helps"])


@router.post("", response_model=HelpRequest, status_code=201)
@limiter.limit(REPORT_RATE)
async def ask_for_help(
    request: Request,
    payload: HelpCreate,
    account_number: CurrentAccount,
    db: Database,
    runtime=Depends(get_runtime),
):
    help_request, recipients = await HelpService(db).ask(account_number, payload)
    if runtime is None:
        logger.warning("Workflow runtime unavailable, help not broadcast id=%s", help_request.id)
    else:
        await trigger_help_broadcast(runtime, help_request.id, recipients)
    return help_request


@router.get("", response_model=list[HelpNearby])
async def list_helps(account_number: CurrentAccount, db: Database):
    return await HelpService(db).list_nearby(account_number)


@router.get("/{help_id}", response_model=HelpRequest)
async def get_help(help_id: str, account_number: CurrentAccount, db: Database):
    return await HelpService(db).get(help_id)


@router.patch("/{help_id}")
async def answer_help(
    help_id: str,
    account_number: CurrentAccount,
    db: Database,
    runtime=Depends(get_runtime),
):
    help_request = await HelpService(db).answer(help_id, account_number)
    if runtime is not None:
        await trigger_help_accepted(runtime, help_request.id, help_request.requester)
    return {"result": "OK"}
