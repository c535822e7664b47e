"""
Health check endpoint.

Used by:
  - Docker HEALTHCHECK instruction
  - Load balancers / orchestrators
  - The mobile clients' connectivity check

Returns status + DB connectivity so callers can distinguish between
"API down" and "API up but DB unreachable", plus how many loops the
in-process runtime is driving.
"""

import logging

from fastapi import APIRouter
from pydantic import BaseModel

from autonomy.core import database as db_module
from autonomy.core.config import settings
from autonomy.workflows import registry

logger = logging.getLogger(__name__)
router = APIRouter()


class HealthResponse(BaseModel):
    status: str  # Always "ok" if the API process is alive
    version: str
    database: str  # "connected" | "disconnected"
    environment: str
    workflows: int = 0


@router.get("", response_model=HealthResponse, summary="API health check")
async def health_check() -> HealthResponse:
    """
    The API is considered healthy (HTTP 200) even when the database is
    disconnected.
    """
    db_status = "disconnected"
    try:
        # Access via module reference so tests can patch db_module.db_client
        if db_module.db_client.client is not None:
            await db_module.db_client.client.admin.command("ping")
            db_status = "connected"
    except Exception as exc:
        logger.warning("DB ping failed: %s", exc)

    runtime = registry.runtime_client.runtime
    return HealthResponse(
        status="ok",
        version=settings.app_version,
        database=db_status,
        environment=settings.environment,
        workflows=len(runtime.running_ids()) if runtime else 0,
    )
