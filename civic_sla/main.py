"""
Civic SLA - Main Application
============================

SLA and escalation service for civic issue reporting.

Modules:
- Issues: Reporting, L1 load balancing, officer workflow
- SLA Monitoring: Deadlines, escalation and reminder sweeps, metrics

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities, value objects, state machine
- Infrastructure: Database, policy file, Slack, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

# Configuration and Core
from civic_sla.config import settings
from civic_sla.core import ApplicationException, ConfigurationException, utc_now

# Infrastructure
from civic_sla.infrastructure.database import (
    init_database, close_database, create_tables, get_session_maker,
)
from civic_sla.issues.infrastructure import (
    SQLAlchemyIssueRepository,
    SQLAlchemyActivityLogRepository,
    SQLAlchemyCommentRepository,
)

# SLA Module
from civic_sla.sla.application import (
    EscalationSweeper, NotificationSweeper, ISLAAlertNotifier,
    ESCALATION_SWEEP, NOTIFICATION_SWEEP,
)
from civic_sla.sla.infrastructure import (
    SLAConfigManager, SlackClient, SLAScheduler, get_config_manager,
)

# Module Routers
from civic_sla.issues.interfaces import issues_router, profiles_router
from civic_sla.sla.interfaces import sla_router

# Middleware
from civic_sla.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    global_exception_handler,
)

# Logging
from civic_sla.shared.infrastructure.logging import setup_logging, get_logger

logger = get_logger(__name__)

# Global service instances
sla_scheduler: Optional[SLAScheduler] = None


def build_sweep_jobs(config_manager: SLAConfigManager, notifier: Optional[ISLAAlertNotifier]):
    """
    Background jobs for the scheduler.

    Each run builds its sweeper over fresh repositories. A failed run is
    logged; the next interval runs again.
    """
    def repositories():
        session_maker = get_session_maker()
        issue_repo = SQLAlchemyIssueRepository(session_maker)
        comment_repo = SQLAlchemyCommentRepository(session_maker, utc_now)
        return session_maker, issue_repo, comment_repo

    async def escalation_job():
        session_maker, issue_repo, comment_repo = repositories()
        sweeper = EscalationSweeper(
            issue_repo,
            SQLAlchemyActivityLogRepository(session_maker, utc_now),
            comment_repo,
            config_manager,
            utc_now,
            notifier,
            settings.system_actor_id,
        )
        try:
            await sweeper.run()
        except ApplicationException as e:
            logger.error(
                f"Scheduled escalation sweep failed: {e.message}",
                extra={"sweep": ESCALATION_SWEEP, "error_details": e.details}
            )

    async def notification_job():
        _, issue_repo, comment_repo = repositories()
        sweeper = NotificationSweeper(
            issue_repo,
            comment_repo,
            config_manager,
            utc_now,
            notifier,
            settings.system_actor_id,
        )
        try:
            await sweeper.run()
        except ApplicationException as e:
            logger.error(
                f"Scheduled notification sweep failed: {e.message}",
                extra={"sweep": NOTIFICATION_SWEEP, "error_details": e.details}
            )

    return escalation_job, notification_job


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database
    3. Create database tables
    4. Load SLA policy and watch it for changes
    5. Create Slack client
    6. Start SLA scheduler

    SHUTDOWN:
    1. Stop SLA scheduler
    2. Stop policy watcher
    3. Close Slack client
    4. Close database connections
    """
    global sla_scheduler

    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Civic SLA service", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database()

    # Tables are created for development; the service still starts without
    # a database and the storage-backed endpoints answer 503.
    logger.info("Creating database tables")
    try:
        await create_tables()
    except (SQLAlchemyError, OSError) as e:
        logger.warning(f"Database not available - running in degraded mode: {e}")

    logger.info("Loading SLA policy")
    config_manager = get_config_manager()
    try:
        config_manager.load(settings.sla_config_path)
    except ConfigurationException as e:
        logger.error(f"Invalid SLA policy, refusing to start: {e.message}")
        raise
    config_manager.start_watching()

    slack_client = SlackClient(
        settings.slack_webhook_url,
        settings.slack_channel,
        timeout_seconds=settings.slack_timeout_seconds,
    )
    app.state.slack_client = slack_client if slack_client.is_configured else None
    app.state.settings = settings

    escalation_job, notification_job = build_sweep_jobs(config_manager, app.state.slack_client)
    sla_scheduler = SLAScheduler()
    sla_scheduler.add_job(ESCALATION_SWEEP, escalation_job, settings.escalation_interval_seconds)
    sla_scheduler.add_job(NOTIFICATION_SWEEP, notification_job, settings.notification_interval_seconds)
    await sla_scheduler.start()

    logger.info("Civic SLA service started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Civic SLA service")

    if sla_scheduler:
        await sla_scheduler.stop()

    config_manager.stop_watching()

    await slack_client.close()

    await close_database()

    logger.info("Civic SLA service shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Civic SLA API",
    description="""
    ## Civic Issue SLA & Escalation Service

    Routes citizen-reported issues to officers, tracks SLA deadlines and
    escalates issues that breach them.

    ---

    ### Issues

    - `POST /issues` - Report an issue (auto-assigned to the least-loaded L1 officer)
    - `GET /issues/{id}` - Issue detail with SLA time remaining
    - `POST /issues/{id}/assign-l2`, `/start`, `/resolve`, `/close` - Officer workflow
    - `PATCH /issues/{id}` - Admin override

    ### SLA Monitoring

    - `POST /sla/escalate` - Escalate overdue issues
    - `POST /sla/notify` - Remind on issues nearing their deadline
    - `GET /sla/metrics` - Overdue and critical issue snapshot

    ---

    ### SLA Windows (hours, configurable in `sla_config.yaml`)

    | Priority | Window |
    |----------|--------|
    | Critical | 24     |
    | High     | 48     |
    | Medium   | 72     |
    | Low      | 120    |
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Custom Middleware (from shared) ===
app.add_middleware(LoggingMiddleware)
app.add_middleware(CorrelationIDMiddleware)
app.add_exception_handler(Exception, global_exception_handler)

# === Include Module Routers ===
app.include_router(issues_router)
app.include_router(profiles_router)
app.include_router(sla_router)


# === Health Check Endpoint ===

@app.get("/health", tags=["Health"], responses={
    200: {
        "description": "Service is healthy",
        "content": {
            "application/json": {
                "example": {
                    "status": "healthy",
                    "version": "1.0.0",
                    "environment": "development",
                    "checks": {
                        "sla_config": "loaded",
                        "sla_config_watch": "watching",
                        "sla_scheduler": "running",
                        "slack": "configured"
                    }
                }
            }
        }
    }
})
async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Returns service health status including:
    - SLA policy status
    - Scheduler state
    - Slack alert channel
    """
    config_manager = get_config_manager()
    try:
        config_manager.get_config()
        sla_config = "loaded"
    except RuntimeError:
        sla_config = "not_loaded"

    checks = {
        "sla_config": sla_config,
        "sla_config_watch": "watching" if config_manager.is_watching else "static",
        "sla_scheduler": "running" if sla_scheduler and sla_scheduler.is_running else "stopped",
        "slack": "configured" if getattr(request.app.state, "slack_client", None) else "not_configured"
    }

    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks,
        "timestamp": utc_now().isoformat()
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "issues": {"prefix": "/issues"},
            "profiles": {"prefix": "/profiles"},
            "sla": {"prefix": "/sla"}
        }
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "civic_sla.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
