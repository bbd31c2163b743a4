"""
Issue Domain Entities
=====================

Pure Python domain entities for civic issue tracking.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from civic_sla.config import (
    IssueCategory, IssuePriority, IssueStatus, UserRole,
    TERMINAL_STATUSES,
)


@dataclass
class Issue:
    """
    Issue entity representing a reported civic problem.

    The issue store owns canonical state; instances are snapshots read
    at a point in time and are never cached between operations.
    """

    # Core attributes
    id: str
    title: str
    description: str
    category: IssueCategory
    priority: IssuePriority
    status: IssueStatus
    reporter_id: str

    # Timestamps
    created_at: datetime
    updated_at: datetime

    # SLA tracking
    sla_deadline: Optional[datetime] = None
    escalation_count: int = 0

    # Assignment
    assigned_l1_id: Optional[str] = None
    assigned_l1_at: Optional[datetime] = None
    assigned_l2_id: Optional[str] = None
    assigned_l2_at: Optional[datetime] = None

    # Terminal timestamps
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    # Location
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    def __post_init__(self):
        """Validate issue on initialization."""
        if self.escalation_count < 0:
            raise ValueError("escalation_count cannot be negative")

        if self.sla_deadline and self.sla_deadline < self.created_at:
            raise ValueError("sla_deadline cannot be before created_at")

    @property
    def is_active(self) -> bool:
        """Check if issue is still subject to SLA sweeps."""
        return self.status not in TERMINAL_STATUSES


@dataclass
class Profile:
    """A user profile; officers are profiles with an officer role."""

    id: str
    email: str
    full_name: str
    role: UserRole
    created_at: datetime
    department: Optional[str] = None
    phone: Optional[str] = None


@dataclass
class ActivityLogEntry:
    """
    Append-only audit record for an issue.

    Created once per automated or manual mutation, never updated.
    """

    id: str
    issue_id: str
    action: str
    created_at: datetime
    user_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class IssueComment:
    """A message attached to an issue; internal comments are hidden from the reporter."""

    id: str
    issue_id: str
    comment: str
    is_internal: bool
    created_at: datetime
    user_id: Optional[str] = None
