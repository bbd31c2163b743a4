"""
SLA Controllers (API Routes)
=============================

FastAPI routes for SLA monitoring endpoints.

The sweep routes let an external scheduler (cron, queue consumer) drive
escalation and notification when the in-process scheduler is disabled.

Controllers are thin - they delegate to application services.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from civic_sla.config import settings
from civic_sla.core import ApplicationException, Clock
from civic_sla.issues.application import (
    IIssueRepository, IActivityLogRepository, ICommentRepository,
)
from civic_sla.issues.interfaces.controllers import (
    get_clock,
    get_issue_repository,
    get_activity_repository,
    get_comment_repository,
    get_sla_config_provider,
)
from civic_sla.shared.api.errors import to_http_exception
from civic_sla.shared.infrastructure.logging import get_logger
from civic_sla.sla.application import (
    EscalationSweeper, NotificationSweeper, SLAMonitorService, ISLAAlertNotifier,
    SweepSummaryResponse, SLAMetricsResponse,
)
from civic_sla.sla.domain import ISLAConfigProvider

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["SLA Monitoring"])


# ========== Example payloads for Swagger ==========

SWEEP_RESPONSE_EXAMPLE = {
    "message": "Successfully escalated 2 issue(s)",
    "count": 2,
    "ids": [
        "0b6f3c1e-9a52-4c1d-8f0e-2d7a5b4c3e21",
        "5e2d8a7b-1c4f-4b3a-9e6d-7f8a9b0c1d2e"
    ]
}

METRICS_RESPONSE_EXAMPLE = {
    "totalIssues": 12,
    "overdueIssues": 1,
    "criticalIssues": 1,
    "overdueList": [
        {
            "id": "0b6f3c1e-9a52-4c1d-8f0e-2d7a5b4c3e21",
            "title": "Streetlight out on 5th Avenue",
            "priority": "high",
            "sla_deadline": "2024-01-15T10:00:00Z",
            "hoursOverdue": 3
        }
    ],
    "criticalList": [
        {
            "id": "5e2d8a7b-1c4f-4b3a-9e6d-7f8a9b0c1d2e",
            "title": "Burst water main",
            "sla_deadline": "2024-01-15T20:00:00Z",
            "hoursRemaining": 7
        }
    ]
}


# ========== Dependencies ==========

def get_alert_notifier(request: Request) -> Optional[ISLAAlertNotifier]:
    """Slack client created at startup, if any."""
    return getattr(request.app.state, "slack_client", None)


def get_escalation_sweeper(
    issue_repo: IIssueRepository = Depends(get_issue_repository),
    activity_repo: IActivityLogRepository = Depends(get_activity_repository),
    comment_repo: ICommentRepository = Depends(get_comment_repository),
    config_provider: ISLAConfigProvider = Depends(get_sla_config_provider),
    clock: Clock = Depends(get_clock),
    notifier: Optional[ISLAAlertNotifier] = Depends(get_alert_notifier)
) -> EscalationSweeper:
    return EscalationSweeper(
        issue_repo, activity_repo, comment_repo, config_provider,
        clock, notifier, settings.system_actor_id
    )


def get_notification_sweeper(
    issue_repo: IIssueRepository = Depends(get_issue_repository),
    comment_repo: ICommentRepository = Depends(get_comment_repository),
    config_provider: ISLAConfigProvider = Depends(get_sla_config_provider),
    clock: Clock = Depends(get_clock),
    notifier: Optional[ISLAAlertNotifier] = Depends(get_alert_notifier)
) -> NotificationSweeper:
    return NotificationSweeper(
        issue_repo, comment_repo, config_provider,
        clock, notifier, settings.system_actor_id
    )


def get_monitor_service(
    issue_repo: IIssueRepository = Depends(get_issue_repository),
    config_provider: ISLAConfigProvider = Depends(get_sla_config_provider),
    clock: Clock = Depends(get_clock)
) -> SLAMonitorService:
    return SLAMonitorService(issue_repo, config_provider, clock)


# ========== Route Handlers ==========

@router.post(
    "/escalate",
    response_model=SweepSummaryResponse,
    summary="Run the escalation sweep",
    description="""
    Escalate every active issue whose SLA deadline has passed.

    Each escalated issue gets `status = escalated`, its `escalation_count`
    incremented, an `auto_escalated` activity entry and an internal system
    comment. Issues that are still overdue on the next run are escalated
    again.

    Returns `503` if the overdue scan fails or every issue in the batch fails.
    """,
    responses={200: {"content": {"application/json": {"example": SWEEP_RESPONSE_EXAMPLE}}}}
)
async def run_escalation(sweeper: EscalationSweeper = Depends(get_escalation_sweeper)):
    try:
        result = await sweeper.run()
    except ApplicationException as e:
        logger.error(f"Escalation sweep failed: {e.message}", extra={"error_details": e.details})
        raise to_http_exception(e) from e

    return SweepSummaryResponse.from_result(result)


@router.post(
    "/notify",
    response_model=SweepSummaryResponse,
    summary="Run the notification sweep",
    description="""
    Post an internal reminder comment on every active issue whose SLA
    deadline falls within the notification window. Overdue issues are
    left to the escalation sweep.
    """
)
async def run_notification(sweeper: NotificationSweeper = Depends(get_notification_sweeper)):
    try:
        result = await sweeper.run()
    except ApplicationException as e:
        logger.error(f"Notification sweep failed: {e.message}", extra={"error_details": e.details})
        raise to_http_exception(e) from e

    return SweepSummaryResponse.from_result(result)


@router.get(
    "/metrics",
    response_model=SLAMetricsResponse,
    summary="Current SLA metrics",
    description="Read-only snapshot: active issue count, overdue issues and critical issues due soon.",
    responses={200: {"content": {"application/json": {"example": METRICS_RESPONSE_EXAMPLE}}}}
)
async def get_metrics(service: SLAMonitorService = Depends(get_monitor_service)):
    try:
        metrics = await service.get_metrics()
    except ApplicationException as e:
        raise to_http_exception(e) from e

    return SLAMetricsResponse.from_domain(metrics)


# Export router for inclusion in main app
sla_router = router
