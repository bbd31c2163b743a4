"""
Issues Application Layer
========================

Application layer for the civic issue tracking module.

Contains:
- Services: Issue intake, L1 load balancing, officer workflow, role changes
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from civic_sla.issues.application.dto import (
    IssueCreateRequest,
    ActorRequest,
    AssignOfficerRequest,
    ResolveIssueRequest,
    PriorityChangeRequest,
    AdminIssueUpdateRequest,
    RoleChangeRequest,
    TimeRemainingResponse,
    IssueResponse,
    ActivityLogResponse,
    ActivityLogListResponse,
    CommentResponse,
    CommentListResponse,
    ProfileResponse,
)
from civic_sla.issues.application.services import (
    AssignmentBalancer,
    IssueService,
    IssueWorkflowService,
    ProfileService,
    IIssueRepository,
    IActivityLogRepository,
    ICommentRepository,
    IProfileRepository,
    select_least_loaded,
)

__all__ = [
    # DTOs
    "IssueCreateRequest",
    "ActorRequest",
    "AssignOfficerRequest",
    "ResolveIssueRequest",
    "PriorityChangeRequest",
    "AdminIssueUpdateRequest",
    "RoleChangeRequest",
    "TimeRemainingResponse",
    "IssueResponse",
    "ActivityLogResponse",
    "ActivityLogListResponse",
    "CommentResponse",
    "CommentListResponse",
    "ProfileResponse",
    # Services
    "AssignmentBalancer",
    "IssueService",
    "IssueWorkflowService",
    "ProfileService",
    "select_least_loaded",
    # Repository Interfaces
    "IIssueRepository",
    "IActivityLogRepository",
    "ICommentRepository",
    "IProfileRepository",
]
