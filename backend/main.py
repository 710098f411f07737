"""
BlackGem Backend API
====================

FastAPI service for the BlackGem fund operating platform.

Surfaces
--------
• Auth & onboarding
    - Organization + first fund + principal account in one registration.
    - JWT bearer sessions; the active fund travels in the ``X-Fund-Id`` header.

• Fund operations
    - Deal pipeline, LPs and commitments, capital calls, distributions,
      portfolio companies with valuations and KPIs.
    - Deal workspace: activities and timeline, notes, due diligence, tasks.
    - Document metadata with versions, LP communication log, notifications.
    - Every mutation is audited; deletes are soft.

• Administration & LP portal
    - Organization user management for admins.
    - Read-only dashboard, documents and reports for investor accounts.

• Reporting
    - Fund performance (DPI/RVPI/TVPI, IRR, waterfall), LP capital
      statements, dashboard, CSV exports and quarterly LP updates.

• AI copilot
    - Tool-using assistant over the active fund's data, with per-user rate
      limits, cost tracking and persisted conversations.

• Platform
    - ``/health`` and ``/status/summary`` for monitoring.
    - Tenant subdomains (``{fund}.blackgem.ai``) resolved per request.

Service modules raise ``core.errors.ServiceError`` subclasses; the handlers
below turn them into ``{"detail": message}`` responses with the matching
status code.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse

from backend.routes.audit import router as audit_router
from backend.routes.auth import router as auth_router
from backend.routes.billing import router as billing_router
from backend.routes.capital import router as capital_router
from backend.routes.communications import router as communications_router
from backend.routes.copilot import router as copilot_router
from backend.routes.deal_workspace import router as deal_workspace_router
from backend.routes.deals import router as deals_router
from backend.routes.documents import router as documents_router
from backend.routes.funds import router as funds_router
from backend.routes.investors import router as investors_router
from backend.routes.notifications import router as notifications_router
from backend.routes.portal import router as portal_router
from backend.routes.portfolio import router as portfolio_router
from backend.routes.reports import router as reports_router
from backend.routes.tasks import router as tasks_router
from backend.routes.users import router as users_router
from copilot.config import is_ai_enabled
from core.config import ROOT_DOMAIN
from core.errors import NotFoundError, RateLimitError, ServiceError
from core.health import system_health
from core.logging_config import setup_logging
from core.metadata import __version__, get_metadata
from core.tenant import extract_subdomain
from database.db_setup import init_db
from database.funds import resolve_tenant
from supabase_client.config import is_supabase_configured
from supabase_client.helpers import test_connection

setup_logging()
logger = logging.getLogger(__name__)


# --------------------------------------------------------------------------- #
# Lifespan
# --------------------------------------------------------------------------- #

@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("[Backend] ✅ Database ready.")

    # Connection sanity check (non-fatal)
    if is_supabase_configured():
        test_connection(debug=False)
    yield


# --------------------------------------------------------------------------- #
# FastAPI App
# --------------------------------------------------------------------------- #

app = FastAPI(
    title="BlackGem Backend API",
    version=__version__,
    description=(
        "Operating platform for search funds and lower mid-market PE.\n"
        "- Deals, LPs, capital calls & distributions, portfolio monitoring.\n"
        "- Fund performance, LP statements and quarterly updates.\n"
        "- AI copilot with fund-scoped tools."
    ),
    lifespan=lifespan,
)

app.include_router(auth_router, prefix="/auth")
app.include_router(funds_router, prefix="/funds")
app.include_router(deals_router, prefix="/deals")
app.include_router(deal_workspace_router, prefix="/deals")
app.include_router(tasks_router, prefix="/tasks")
app.include_router(documents_router, prefix="/documents")
app.include_router(investors_router)
app.include_router(communications_router)
app.include_router(capital_router)
app.include_router(portfolio_router, prefix="/portfolio")
app.include_router(reports_router)
app.include_router(portal_router, prefix="/portal")
app.include_router(copilot_router, prefix="/copilot")
app.include_router(billing_router, prefix="/billing")
app.include_router(audit_router, prefix="/audit")
app.include_router(users_router, prefix="/users")
app.include_router(notifications_router, prefix="/notifications")


# --------------------------------------------------------------------------- #
# Error handling
# --------------------------------------------------------------------------- #

@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    headers = {}
    if isinstance(exc, RateLimitError) and exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)
    if exc.status_code >= 500:
        logger.error(f"[Backend] ❌ {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message}, headers=headers)


# --------------------------------------------------------------------------- #
# Tenant resolution
# --------------------------------------------------------------------------- #

@app.middleware("http")
async def tenant_middleware(request: Request, call_next):
    """Expose the tenant subdomain (if any) as ``request.state.tenant_slug``."""
    request.state.tenant_slug = extract_subdomain(request.headers.get("host"), ROOT_DOMAIN)
    return await call_next(request)


# --------------------------------------------------------------------------- #
# Core Routes
# --------------------------------------------------------------------------- #

@app.get("/")
async def root():
    """
    Basic liveness check.
    """
    return {
        "status": "ok",
        "message": "BlackGem Backend is live.",
        "version": app.version,
        "supabase_enabled": is_supabase_configured(),
    }


@app.get("/health")
async def health():
    """
    System health endpoint.

    Delegates to core.health.system_health which checks the database,
    optionally Supabase, and reports process metrics.
    """
    return system_health()


@app.get("/status/summary")
async def status_summary():
    """
    High-level status summary for dashboards & agents.
    """
    return {
        "backend_version": app.version,
        "metadata": get_metadata(),
        "supabase_enabled": is_supabase_configured(),
        "ai_enabled": is_ai_enabled(),
        "routers": [route.path for route in app.routes if getattr(route, "include_in_schema", False)],
    }


@app.get("/tenant/resolve")
async def tenant_resolve(request: Request, slug: Optional[str] = Query(default=None)):
    """
    Resolve a tenant subdomain to its fund and organization.

    Uses ``?slug=`` when given, else the subdomain of the request host.
    """
    slug = slug or request.state.tenant_slug
    if not slug:
        raise NotFoundError("No tenant for this host")
    tenant = resolve_tenant(slug)
    if tenant is None:
        raise NotFoundError(f"Unknown tenant: {slug}")
    return tenant


# --------------------------------------------------------------------------- #
# End of File
# --------------------------------------------------------------------------- #
