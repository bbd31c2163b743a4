"""
Issue Controllers (API Routes)
==============================

FastAPI routes for issue reporting, the officer workflow and role
management.

Controllers are thin - they delegate to application services. Callers
identify themselves with ``actor_id`` in the request body.
"""

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Query, status

from civic_sla.config import settings, IssueCategory, IssuePriority, UserRole
from civic_sla.core import ApplicationException, Clock, utc_now
from civic_sla.infrastructure.database import get_session_maker
from civic_sla.issues.application import (
    AssignmentBalancer, IssueService, IssueWorkflowService, ProfileService,
    IIssueRepository, IActivityLogRepository, ICommentRepository, IProfileRepository,
    IssueCreateRequest, ActorRequest, AssignOfficerRequest, ResolveIssueRequest,
    PriorityChangeRequest, AdminIssueUpdateRequest, RoleChangeRequest,
    IssueResponse, ActivityLogResponse, ActivityLogListResponse,
    CommentResponse, CommentListResponse, ProfileResponse,
)
from civic_sla.issues.domain import Issue
from civic_sla.issues.infrastructure import (
    SQLAlchemyIssueRepository,
    SQLAlchemyActivityLogRepository,
    SQLAlchemyCommentRepository,
    SQLAlchemyProfileRepository,
)
from civic_sla.shared.api.errors import to_http_exception
from civic_sla.shared.infrastructure.logging import get_logger
from civic_sla.sla.domain import ISLAConfigProvider, SLACalculator
from civic_sla.sla.infrastructure import get_config_manager

logger = get_logger(__name__)
router = APIRouter(prefix="/issues", tags=["Issues"])
profiles_router = APIRouter(prefix="/profiles", tags=["Profiles"])

# Serializes balancing across requests handled by this process
_balancer_lock = asyncio.Lock()


# ========== Example payloads for Swagger ==========

ISSUE_CREATE_EXAMPLE = {
    "reporter_id": "7d0c6a3e-55a4-4f6b-9d8e-0d9e3c1b2a10",
    "title": "Large pothole on Main Street",
    "description": "Deep pothole near the bus stop, cars swerving into the next lane.",
    "category": "pothole",
    "priority": "high",
    "address": "120 Main Street",
    "latitude": 12.9716,
    "longitude": 77.5946
}


# ========== Dependencies ==========

def get_clock() -> Clock:
    return utc_now


def get_issue_repository() -> IIssueRepository:
    return SQLAlchemyIssueRepository(get_session_maker())


def get_activity_repository(clock: Clock = Depends(get_clock)) -> IActivityLogRepository:
    return SQLAlchemyActivityLogRepository(get_session_maker(), clock)


def get_comment_repository(clock: Clock = Depends(get_clock)) -> ICommentRepository:
    return SQLAlchemyCommentRepository(get_session_maker(), clock)


def get_profile_repository() -> IProfileRepository:
    return SQLAlchemyProfileRepository(get_session_maker())


def get_sla_config_provider() -> ISLAConfigProvider:
    return get_config_manager()


def get_balancer(
    issue_repo: IIssueRepository = Depends(get_issue_repository),
    activity_repo: IActivityLogRepository = Depends(get_activity_repository),
    profile_repo: IProfileRepository = Depends(get_profile_repository),
    clock: Clock = Depends(get_clock)
) -> AssignmentBalancer:
    return AssignmentBalancer(issue_repo, activity_repo, profile_repo, clock, lock=_balancer_lock)


def get_issue_service(
    issue_repo: IIssueRepository = Depends(get_issue_repository),
    activity_repo: IActivityLogRepository = Depends(get_activity_repository),
    comment_repo: ICommentRepository = Depends(get_comment_repository),
    profile_repo: IProfileRepository = Depends(get_profile_repository),
    config_provider: ISLAConfigProvider = Depends(get_sla_config_provider),
    balancer: AssignmentBalancer = Depends(get_balancer),
    clock: Clock = Depends(get_clock)
) -> IssueService:
    return IssueService(
        issue_repo, activity_repo, comment_repo, profile_repo,
        config_provider, balancer, clock
    )


def get_workflow_service(
    issue_repo: IIssueRepository = Depends(get_issue_repository),
    activity_repo: IActivityLogRepository = Depends(get_activity_repository),
    comment_repo: ICommentRepository = Depends(get_comment_repository),
    profile_repo: IProfileRepository = Depends(get_profile_repository),
    clock: Clock = Depends(get_clock)
) -> IssueWorkflowService:
    return IssueWorkflowService(issue_repo, activity_repo, comment_repo, profile_repo, clock)


def get_profile_service(
    profile_repo: IProfileRepository = Depends(get_profile_repository)
) -> ProfileService:
    return ProfileService(profile_repo, max_admins=settings.max_admins)


def _to_response(issue: Issue, clock: Clock) -> IssueResponse:
    remaining = None
    if issue.sla_deadline is not None and issue.is_active:
        remaining = SLACalculator.time_remaining(issue.sla_deadline, clock())
    return IssueResponse.from_domain(issue, remaining)


# ========== Route Handlers ==========

@router.post(
    "",
    response_model=IssueResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Report an issue",
    description="""
    Record a citizen report. The SLA deadline is stamped from the issue's
    priority and the issue is routed to the least-loaded L1 officer.

    If no L1 officer is available the issue is still created and stays
    `submitted`.
    """,
    responses={201: {"content": {"application/json": {"example": ISSUE_CREATE_EXAMPLE}}}}
)
async def report_issue(
    request: IssueCreateRequest,
    service: IssueService = Depends(get_issue_service),
    clock: Clock = Depends(get_clock)
):
    try:
        issue = await service.report_issue(
            reporter_id=request.reporter_id,
            title=request.title,
            description=request.description,
            category=IssueCategory(request.category),
            priority=IssuePriority(request.priority),
            address=request.address,
            latitude=request.latitude,
            longitude=request.longitude,
        )
    except ApplicationException as e:
        raise to_http_exception(e) from e

    return _to_response(issue, clock)


@router.get(
    "/{issue_id}",
    response_model=IssueResponse,
    summary="Get issue with SLA time remaining"
)
async def get_issue(
    issue_id: str,
    service: IssueService = Depends(get_issue_service),
    clock: Clock = Depends(get_clock)
):
    try:
        issue = await service.get_issue(issue_id)
    except ApplicationException as e:
        raise to_http_exception(e) from e

    return _to_response(issue, clock)


@router.get(
    "/{issue_id}/activity",
    response_model=ActivityLogListResponse,
    summary="Activity log for an issue"
)
async def list_activity(
    issue_id: str,
    service: IssueService = Depends(get_issue_service)
):
    try:
        entries = await service.list_activity(issue_id)
    except ApplicationException as e:
        raise to_http_exception(e) from e

    return ActivityLogListResponse(entries=[ActivityLogResponse.from_domain(e) for e in entries])


@router.get(
    "/{issue_id}/comments",
    response_model=CommentListResponse,
    summary="Comments on an issue"
)
async def list_comments(
    issue_id: str,
    include_internal: bool = Query(True, description="Include internal (staff only) comments"),
    service: IssueService = Depends(get_issue_service)
):
    try:
        comments = await service.list_comments(issue_id, include_internal)
    except ApplicationException as e:
        raise to_http_exception(e) from e

    return CommentListResponse(comments=[CommentResponse.from_domain(c) for c in comments])


@router.post("/{issue_id}/assign-l1", response_model=IssueResponse, summary="Assign an L1 officer")
async def assign_l1(
    issue_id: str,
    request: AssignOfficerRequest,
    service: IssueWorkflowService = Depends(get_workflow_service),
    clock: Clock = Depends(get_clock)
):
    try:
        issue = await service.assign_l1(issue_id, request.actor_id, request.officer_id)
    except ApplicationException as e:
        raise to_http_exception(e) from e

    return _to_response(issue, clock)


@router.post("/{issue_id}/assign-l2", response_model=IssueResponse, summary="Hand off to an L2 officer")
async def assign_l2(
    issue_id: str,
    request: AssignOfficerRequest,
    service: IssueWorkflowService = Depends(get_workflow_service),
    clock: Clock = Depends(get_clock)
):
    try:
        issue = await service.assign_l2(issue_id, request.actor_id, request.officer_id)
    except ApplicationException as e:
        raise to_http_exception(e) from e

    return _to_response(issue, clock)


@router.post("/{issue_id}/start", response_model=IssueResponse, summary="Start work")
async def start_work(
    issue_id: str,
    request: ActorRequest,
    service: IssueWorkflowService = Depends(get_workflow_service),
    clock: Clock = Depends(get_clock)
):
    try:
        issue = await service.start_work(issue_id, request.actor_id)
    except ApplicationException as e:
        raise to_http_exception(e) from e

    return _to_response(issue, clock)


@router.post(
    "/{issue_id}/resolve",
    response_model=IssueResponse,
    summary="Resolve an issue",
    description="Requires a non-empty `resolution_note`, which is posted as a public comment."
)
async def resolve(
    issue_id: str,
    request: ResolveIssueRequest,
    service: IssueWorkflowService = Depends(get_workflow_service),
    clock: Clock = Depends(get_clock)
):
    try:
        issue = await service.resolve(issue_id, request.actor_id, request.resolution_note)
    except ApplicationException as e:
        raise to_http_exception(e) from e

    return _to_response(issue, clock)


@router.post("/{issue_id}/close", response_model=IssueResponse, summary="Close an issue")
async def close(
    issue_id: str,
    request: ActorRequest,
    service: IssueWorkflowService = Depends(get_workflow_service),
    clock: Clock = Depends(get_clock)
):
    try:
        issue = await service.close(issue_id, request.actor_id)
    except ApplicationException as e:
        raise to_http_exception(e) from e

    return _to_response(issue, clock)


@router.post(
    "/{issue_id}/priority",
    response_model=IssueResponse,
    summary="Change priority",
    description="For the issue's L1 officer or an admin. The SLA deadline is not recomputed."
)
async def change_priority(
    issue_id: str,
    request: PriorityChangeRequest,
    service: IssueWorkflowService = Depends(get_workflow_service),
    clock: Clock = Depends(get_clock)
):
    try:
        issue = await service.change_priority(issue_id, request.actor_id, request.priority)
    except ApplicationException as e:
        raise to_http_exception(e) from e

    return _to_response(issue, clock)


@router.patch(
    "/{issue_id}",
    response_model=IssueResponse,
    summary="Admin override",
    description="""
    Admin-only direct edit of status, priority and assignees. Status
    changes outside the normal workflow are applied and recorded as
    `admin_override` in the activity log.
    """
)
async def admin_update(
    issue_id: str,
    request: AdminIssueUpdateRequest,
    service: IssueWorkflowService = Depends(get_workflow_service),
    clock: Clock = Depends(get_clock)
):
    changes = request.changes()
    if not changes:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="No fields to update"
        )

    try:
        issue = await service.admin_update(issue_id, request.actor_id, changes)
    except ApplicationException as e:
        raise to_http_exception(e) from e

    return _to_response(issue, clock)


@profiles_router.patch(
    "/{profile_id}/role",
    response_model=ProfileResponse,
    summary="Change a profile's role",
    description="Admin only. Promotion to admin is refused once the admin cap is reached."
)
async def change_role(
    profile_id: str,
    request: RoleChangeRequest,
    service: ProfileService = Depends(get_profile_service)
):
    try:
        profile = await service.change_role(profile_id, request.actor_id, UserRole(request.role))
    except ApplicationException as e:
        raise to_http_exception(e) from e

    return ProfileResponse.from_domain(profile)


# Export routers
issues_router = router
