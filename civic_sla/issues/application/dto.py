"""
Issues Application DTOs
=======================

Data Transfer Objects for the issues API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from civic_sla.issues.domain import Issue, ActivityLogEntry, IssueComment, Profile
from civic_sla.sla.domain import TimeRemaining


# ========== Type Aliases for Literals ==========
PriorityStr = Literal["critical", "high", "medium", "low"]
CategoryStr = Literal[
    "pothole", "streetlight", "garbage", "water_supply",
    "sewage", "traffic", "park", "other"
]
IssueStatusStr = Literal[
    "submitted", "assigned_l1", "assigned_l2", "in_progress",
    "resolved", "closed", "escalated"
]
RoleStr = Literal["citizen", "l1_officer", "l2_officer", "admin"]


# ========== Request DTOs ==========

class IssueCreateRequest(BaseModel):
    """Request model for reporting an issue."""
    reporter_id: str = Field(..., min_length=1, description="Reporting citizen's profile ID")
    title: str = Field(..., min_length=1, max_length=500, description="Short summary")
    description: str = Field(..., min_length=1, description="What is wrong and where")
    category: CategoryStr = Field(..., description="Issue category")
    priority: PriorityStr = Field(default="medium", description="Issue priority")
    address: Optional[str] = Field(None, description="Street address")
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class ActorRequest(BaseModel):
    """Body for actions that need only the acting profile."""
    actor_id: str = Field(..., min_length=1, description="Acting profile ID")


class AssignOfficerRequest(ActorRequest):
    """Body for L1/L2 assignment."""
    officer_id: str = Field(..., min_length=1, description="Officer receiving the issue")


class ResolveIssueRequest(ActorRequest):
    """Body for resolving an issue; the note is checked by the service."""
    resolution_note: str = Field(default="", description="What was done to fix the issue")


class PriorityChangeRequest(ActorRequest):
    """Body for an officer re-prioritizing an issue they own."""
    priority: PriorityStr


class AdminIssueUpdateRequest(ActorRequest):
    """
    Admin override. Omitted fields are left alone; an explicit null
    assignee clears the assignment.
    """
    status: Optional[IssueStatusStr] = None
    priority: Optional[PriorityStr] = None
    assigned_l1_id: Optional[str] = None
    assigned_l2_id: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        """Fields the caller actually sent, minus the actor."""
        return {
            name: getattr(self, name)
            for name in self.model_fields_set
            if name != "actor_id"
        }


class RoleChangeRequest(ActorRequest):
    role: RoleStr


# ========== Response DTOs ==========

class TimeRemainingResponse(BaseModel):
    text: str = Field(..., description="Human readable, e.g. '5h remaining' or '3h overdue'")
    is_overdue: bool
    amount: int
    unit: Literal["h", "d"]

    @classmethod
    def from_value(cls, value: TimeRemaining) -> "TimeRemainingResponse":
        return cls(text=value.text, is_overdue=value.is_overdue, amount=value.amount, unit=value.unit)


class IssueResponse(BaseModel):
    """Response model for an issue."""
    id: str
    title: str
    description: str
    category: CategoryStr
    priority: PriorityStr
    status: IssueStatusStr
    reporter_id: str
    assigned_l1_id: Optional[str] = None
    assigned_l1_at: Optional[datetime] = None
    assigned_l2_id: Optional[str] = None
    assigned_l2_at: Optional[datetime] = None
    sla_deadline: Optional[datetime] = None
    escalation_count: int = 0
    created_at: datetime
    updated_at: datetime
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    time_remaining: Optional[TimeRemainingResponse] = Field(
        None, description="SLA time remaining at response time"
    )

    @classmethod
    def from_domain(
        cls,
        issue: Issue,
        time_remaining: Optional[TimeRemaining] = None
    ) -> "IssueResponse":
        return cls(
            id=issue.id,
            title=issue.title,
            description=issue.description,
            category=issue.category.value,
            priority=issue.priority.value,
            status=issue.status.value,
            reporter_id=issue.reporter_id,
            assigned_l1_id=issue.assigned_l1_id,
            assigned_l1_at=issue.assigned_l1_at,
            assigned_l2_id=issue.assigned_l2_id,
            assigned_l2_at=issue.assigned_l2_at,
            sla_deadline=issue.sla_deadline,
            escalation_count=issue.escalation_count,
            created_at=issue.created_at,
            updated_at=issue.updated_at,
            resolved_at=issue.resolved_at,
            closed_at=issue.closed_at,
            address=issue.address,
            latitude=issue.latitude,
            longitude=issue.longitude,
            time_remaining=(
                TimeRemainingResponse.from_value(time_remaining) if time_remaining else None
            ),
        )


class ActivityLogResponse(BaseModel):
    id: str
    issue_id: str
    user_id: Optional[str] = None
    action: str
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @classmethod
    def from_domain(cls, entry: ActivityLogEntry) -> "ActivityLogResponse":
        return cls(
            id=entry.id,
            issue_id=entry.issue_id,
            user_id=entry.user_id,
            action=entry.action,
            details=entry.details,
            created_at=entry.created_at,
        )


class CommentResponse(BaseModel):
    id: str
    issue_id: str
    user_id: Optional[str] = None
    comment: str
    is_internal: bool
    created_at: datetime

    @classmethod
    def from_domain(cls, comment: IssueComment) -> "CommentResponse":
        return cls(
            id=comment.id,
            issue_id=comment.issue_id,
            user_id=comment.user_id,
            comment=comment.comment,
            is_internal=comment.is_internal,
            created_at=comment.created_at,
        )


class ProfileResponse(BaseModel):
    id: str
    email: str
    full_name: str
    role: RoleStr
    department: Optional[str] = None

    @classmethod
    def from_domain(cls, profile: Profile) -> "ProfileResponse":
        return cls(
            id=profile.id,
            email=profile.email,
            full_name=profile.full_name,
            role=profile.role.value,
            department=profile.department,
        )


class ActivityLogListResponse(BaseModel):
    entries: List[ActivityLogResponse]


class CommentListResponse(BaseModel):
    comments: List[CommentResponse]
