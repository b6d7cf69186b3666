"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS, Sentry,
lifespan events for database and service initialization, and the v1 API
router.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.app.config import get_settings
from src.app.core.database import close_db, get_session, init_db
from src.app.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.app.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.app.api.v1.router import router as v1_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB, Sentry and services on startup, close on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()
    await init_db()

    # Initialize Sentry if DSN is configured
    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    # ── Service Initialization ──────────────────────────────────────────
    # Each service is wrapped in its own try/except so a single failure
    # leaves its endpoints answering 503 instead of stopping startup.

    try:
        from src.app.crm.repository import CrmRepository

        app.state.crm_repository = CrmRepository(session_factory=get_session)
        log.info("crm_repository_initialized")
    except Exception:
        log.warning("crm_repository_init_failed", exc_info=True)
        app.state.crm_repository = None

    try:
        from src.app.inbox.repository import InboxRepository

        app.state.inbox_repository = InboxRepository(session_factory=get_session)
        log.info("inbox_repository_initialized")
    except Exception:
        log.warning("inbox_repository_init_failed", exc_info=True)
        app.state.inbox_repository = None

    try:
        from src.app.admin.repository import AdminRepository

        app.state.admin_repository = AdminRepository(session_factory=get_session)
        log.info("admin_repository_initialized")
    except Exception:
        log.warning("admin_repository_init_failed", exc_info=True)
        app.state.admin_repository = None

    try:
        from src.app.inbox.drafter import EmailDrafter
        from src.app.services.llm import get_llm_service

        llm_service = get_llm_service()
        app.state.llm_service = llm_service
        app.state.email_drafter = EmailDrafter(llm_service=llm_service)
        log.info("email_drafter_initialized", llm_available=llm_service.available)
    except Exception:
        log.warning("email_drafter_init_failed", exc_info=True)
        app.state.llm_service = None
        app.state.email_drafter = None

    # Gmail services are built even without OAuth credentials; the routes
    # report "not configured" and sends fail with "Gmail not connected".
    try:
        from src.app.services.gsuite import GmailOAuthClient, GmailService, GSuiteAuthManager

        oauth_client = GmailOAuthClient(
            client_id=settings.GMAIL_CLIENT_ID,
            client_secret=settings.GMAIL_CLIENT_SECRET,
            redirect_uri=settings.GMAIL_REDIRECT_URI,
        )
        auth_manager = GSuiteAuthManager(
            oauth_client=oauth_client,
            inbox_repository=app.state.inbox_repository,
        )
        app.state.gmail_oauth = oauth_client if settings.gmail_configured() else None
        app.state.gmail_service = GmailService(auth_manager=auth_manager)
        log.info("gmail_service_initialized", configured=settings.gmail_configured())
    except Exception:
        log.warning("gmail_service_init_failed", exc_info=True)
        app.state.gmail_oauth = None
        app.state.gmail_service = None

    try:
        from src.app.crm.intake import LeadIntakeService

        if app.state.crm_repository is None:
            raise RuntimeError("CRM repository unavailable")
        app.state.intake_service = LeadIntakeService(crm_repository=app.state.crm_repository)
        log.info("intake_service_initialized")
    except Exception:
        log.warning("intake_service_init_failed", exc_info=True)
        app.state.intake_service = None

    try:
        from src.app.inbox.sync import GmailSyncService

        if app.state.gmail_service is None or app.state.intake_service is None:
            raise RuntimeError("Gmail service or lead intake unavailable")
        app.state.gmail_sync = GmailSyncService(
            inbox_repository=app.state.inbox_repository,
            gmail_service=app.state.gmail_service,
            intake_service=app.state.intake_service,
            drafter=app.state.email_drafter,
            label_filter=settings.GMAIL_LABEL_FILTER or None,
        )
        log.info("gmail_sync_initialized")
    except Exception:
        log.warning("gmail_sync_init_failed", exc_info=True)
        app.state.gmail_sync = None

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Sales CRM API",
        version="0.1.0",
        description="Sales pipeline CRM with Gmail lead intake, AI drafts and a customer admin console",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    # CORS middleware
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    # Include v1 API router (health, auth, CRM, inbox, admin)
    app.include_router(v1_router)

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
