"""
Autonomy API — Application entry point.

Bootstraps FastAPI, wires up middleware, registers route groups, maps
domain errors to HTTP statuses and manages the MongoDB connection and the
in-process workflow runtime.

Extension points:
  - Add new route groups with app.include_router() below
  - Add new middleware in the middleware block
  - Change startup behaviour in the lifespan context manager
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from autonomy.core.config import settings
from autonomy.core.database import close_mongo_connection, connect_to_mongo, db_client
from autonomy.core.errors import ConflictError, InvalidInputError, NotFoundError
from autonomy.core.i18n import load_bundle
from autonomy.core.log_config import configure_logging
from autonomy.core.rate_limit import limiter
from autonomy.core.reporting import init_error_reporter
from autonomy.routes.accounts import router as accounts_router
from autonomy.routes.health import router as health_router
from autonomy.routes.helps import router as helps_router
from autonomy.routes.metrics import router as metrics_router
from autonomy.routes.reports import router as reports_router
from autonomy.services.state_store import StateStore
from autonomy.workflows.registry import build_runtime, runtime_client
from autonomy.workflows.triggers import bootstrap_loops

# ─── Logging ───────────────────────────────────────────────────────────────────
configure_logging()
logger = logging.getLogger(__name__)


# ─── Lifespan ──────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage startup and shutdown lifecycle.

    A FatalError from validate_required() aborts startup before the app
    accepts traffic.
    """
    settings.validate_required()
    logger.info("Starting Autonomy API (env: %s)", settings.environment)

    init_error_reporter()
    await connect_to_mongo()
    load_bundle(settings.i18n_dir)

    if db_client.db is not None and settings.workflows_enabled:
        runtime_client.runtime = build_runtime(db_client.db)
        await bootstrap_loops(runtime_client.runtime, StateStore(db_client.db))
    else:
        logger.warning("Workflow runtime not started — loops will not be signalled by this process")

    yield

    logger.info("Shutting down Autonomy API")
    if runtime_client.runtime is not None:
        await runtime_client.runtime.shutdown()
        runtime_client.runtime = None
    await close_mongo_connection()


# ─── App ───────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="Autonomy API",
    description="Community health reports, per-place risk scores and nudges.",
    version=settings.app_version,
    lifespan=lifespan,
    # Disable docs in production to reduce attack surface
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
)


# ─── Rate limiting ─────────────────────────────────────────────────────────────
# Attach the limiter to app state so slowapi can find it.
# Routes opt-in with @limiter.limit("N/minute") + request: Request parameter.
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# ─── Domain errors ─────────────────────────────────────────────────────────────
async def _invalid_input(request: Request, exc: InvalidInputError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


async def _conflict(request: Request, exc: ConflictError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


app.add_exception_handler(InvalidInputError, _invalid_input)
app.add_exception_handler(NotFoundError, _not_found)
app.add_exception_handler(ConflictError, _conflict)


# ─── Middleware ─────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Routes ────────────────────────────────────────────────────────────────────
app.include_router(health_router, prefix="/health", tags=["health"])
app.include_router(accounts_router)
app.include_router(reports_router)
app.include_router(metrics_router)
app.include_router(helps_router)


@app.get("/", tags=["root"])
async def root():
    """API root — basic metadata."""
    return {
        "name": "Autonomy API",
        "version": settings.app_version,
        "status": "running",
        "environment": settings.environment,
        "docs": "/docs",
    }
