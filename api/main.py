"""
api/main.py -- FastAPI application for ExpiryWatch.

Serves the web UI's JSON API under /api/v1 and runs the recurring sweep in
the background.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- browser origins from Settings.cors_origins
  2. SlowAPIMiddleware  -- per-route limits declared with api.limiter

The lifespan owns every long-lived service: both stores, the verifier, the
mailer and the AuditService, plus the scheduler task. Route handlers reach
them through request.app.state.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError

from api import errors
from api.limiter import limiter
from api.models import HealthResponse
from api.routes.v1 import auth as auth_routes
from api.routes.v1 import certificates, data, domains, sync, verify
from api.routes.v1 import settings as settings_routes
from auth.store import UserStore
from core.config import get_settings
from core.mailer import Mailer
from core.sweep import AuditService
from core.verifier import Verifier
from tracker.store import TrackerStore

API_VERSION = "1.0.0"
API_PREFIX = "/api/v1"

_settings = get_settings()

logging.basicConfig(
    level=getattr(logging, _settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("expirywatch.api")


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


async def _sweep_loop(app: FastAPI, interval: int) -> None:
    """Sweep every owner once per interval, forever.

    sweep_all() blocks on WHOIS, sockets, SMTP and SQLite, so it runs in a
    worker thread. A failed pass is logged and the next one is still
    scheduled. Cancellation on shutdown arrives through asyncio.sleep.
    """
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(app.state.audit.sweep_all)
        except Exception:
            logger.exception("Scheduled sweep failed")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    state = app.state
    state.store = TrackerStore(_settings.database_url)
    state.user_store = UserStore(_settings.database_url)
    state.verifier = Verifier(_settings)
    state.mailer = Mailer(timeout=_settings.smtp_timeout, sender_name=_settings.mail_sender_name)
    state.audit = AuditService(state.store, state.user_store, state.verifier, state.mailer, _settings)
    state.sweep_task = None
    if _settings.scheduler_enabled:
        state.sweep_task = asyncio.create_task(_sweep_loop(app, _settings.sweep_interval_seconds))
    logger.info(
        "ExpiryWatch API %s started (scheduler %s)",
        API_VERSION,
        f"every {_settings.sweep_interval_seconds}s" if state.sweep_task else "off",
    )

    yield

    if state.sweep_task is not None:
        state.sweep_task.cancel()
    state.store.close()
    state.user_store.close()
    logger.info("ExpiryWatch API stopped")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="ExpiryWatch API",
    description="Domain registration and TLS certificate expiry tracking with threshold alerts.",
    version=API_VERSION,
    debug=_settings.debug,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type"],
    max_age=3600,
)
app.add_middleware(SlowAPIMiddleware)
app.state.limiter = limiter

errors.install(app)

for module, tag in (
    (auth_routes, "Owners"),
    (verify, "Verification"),
    (sync, "Sweep"),
    (settings_routes, "Settings"),
    (domains, "Domains"),
    (certificates, "Certificates"),
    (data, "Data"),
):
    app.include_router(module.router, prefix=API_PREFIX, tags=[tag])


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "%s %s -> %d in %.1fms (%s)",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - started) * 1000,
        request.client.host if request.client else "-",
    )
    return response


# No rate limit here: monitoring probes must not be throttled.
@app.get(f"{API_PREFIX}/health", response_model=HealthResponse, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Liveness, a database round-trip, and when the last sweep finished."""
    try:
        db_ok = request.app.state.store.ping()
    except SQLAlchemyError:
        logger.exception("Health check database ping failed")
        db_ok = False
    return HealthResponse(
        status="healthy" if db_ok else "degraded",
        version=API_VERSION,
        components={"app": "ok", "database": "ok" if db_ok else "error"},
        last_sweep=request.app.state.audit.last_sweep,
    )
