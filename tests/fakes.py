"""
In-memory implementations of the repository interfaces for tests.

Each fake can be told to fail so error paths can be exercised without a
database.
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Sequence, Set
from uuid import uuid4

from civic_sla.config import IssueCategory, IssuePriority, IssueStatus, UserRole
from civic_sla.core import ExternalServiceException, RepositoryException
from civic_sla.issues.application import (
    IIssueRepository, IActivityLogRepository, ICommentRepository, IProfileRepository,
)
from civic_sla.issues.domain import Issue, Profile, ActivityLogEntry, IssueComment, IssueQuery
from civic_sla.sla.application import ISLAAlertNotifier

T0 = datetime(2024, 6, 3, 9, 0, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_issue(
    issue_id: Optional[str] = None,
    status: IssueStatus = IssueStatus.SUBMITTED,
    priority: IssuePriority = IssuePriority.MEDIUM,
    created_at: datetime = T0,
    sla_deadline: Optional[datetime] = None,
    reporter_id: str = "citizen-1",
    **kwargs: Any
) -> Issue:
    return Issue(
        id=issue_id or str(uuid4()),
        title=kwargs.pop("title", "Broken streetlight"),
        description=kwargs.pop("description", "Light has been out for a week"),
        category=kwargs.pop("category", IssueCategory.STREETLIGHT),
        priority=priority,
        status=status,
        reporter_id=reporter_id,
        created_at=created_at,
        updated_at=created_at,
        sla_deadline=sla_deadline,
        **kwargs
    )


def make_profile(profile_id: str, role: UserRole, created_at: datetime = T0) -> Profile:
    return Profile(
        id=profile_id,
        email=f"{profile_id}@city.example",
        full_name=profile_id.replace("-", " ").title(),
        role=role,
        created_at=created_at,
    )


class InMemoryIssueRepository(IIssueRepository):
    """
    Dict-backed issue store.

    ``before_update`` runs ahead of every guarded write and may mutate
    the store, which is how tests stage a race between scan and write.
    """

    def __init__(self, issues: Sequence[Issue] = ()):
        self.issues: Dict[str, Issue] = {i.id: i for i in issues}
        self.fail_query = False
        self.fail_count = False
        self.fail_update_ids: Set[str] = set()
        self.before_update: Optional[Callable[[str], None]] = None
        self.update_calls: List[str] = []

    def add(self, issue: Issue) -> Issue:
        self.issues[issue.id] = issue
        return issue

    def set_fields(self, issue_id: str, **fields: Any) -> None:
        self.issues[issue_id] = replace(self.issues[issue_id], **fields)

    async def get_by_id(self, issue_id: str) -> Optional[Issue]:
        return self.issues.get(issue_id)

    async def create(self, issue: Issue) -> Issue:
        return self.add(issue)

    async def query(self, query: IssueQuery) -> List[Issue]:
        if self.fail_query:
            raise RepositoryException("query failed", {"operation": "query_issues"})

        matched = [i for i in self.issues.values() if query.matches(i)]
        if query.order_by_deadline:
            far_future = datetime.max.replace(tzinfo=timezone.utc)
            matched.sort(key=lambda i: (i.sla_deadline or far_future, i.id))
        else:
            matched.sort(key=lambda i: i.created_at, reverse=True)
        return matched

    async def update(
        self,
        issue_id: str,
        fields: Dict[str, Any],
        guard: Optional[IssueQuery] = None
    ) -> bool:
        self.update_calls.append(issue_id)
        if issue_id in self.fail_update_ids:
            raise RepositoryException("update failed", {"operation": "update_issue"})
        if self.before_update is not None:
            self.before_update(issue_id)

        issue = self.issues.get(issue_id)
        if issue is None:
            return False
        if guard is not None and not guard.matches(issue):
            return False

        self.issues[issue_id] = replace(issue, **fields)
        return True

    async def count_open_by_l1(
        self,
        officer_ids: Sequence[str],
        statuses: FrozenSet[IssueStatus]
    ) -> Dict[str, int]:
        if self.fail_count:
            raise RepositoryException("count failed", {"operation": "count_open_by_l1"})

        counts: Dict[str, int] = {}
        for issue in self.issues.values():
            if issue.assigned_l1_id in officer_ids and issue.status in statuses:
                counts[issue.assigned_l1_id] = counts.get(issue.assigned_l1_id, 0) + 1
        return counts


class InMemoryActivityLogRepository(IActivityLogRepository):

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.entries: List[ActivityLogEntry] = []
        self.fail = False
        self._clock = clock or FixedClock()

    async def append(
        self,
        issue_id: str,
        action: str,
        user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> ActivityLogEntry:
        if self.fail:
            raise RepositoryException("append failed", {"operation": "append_activity"})
        entry = ActivityLogEntry(
            id=str(uuid4()),
            issue_id=issue_id,
            action=action,
            created_at=self._clock(),
            user_id=user_id,
            details=details or {},
        )
        self.entries.append(entry)
        return entry

    async def list_for_issue(self, issue_id: str) -> List[ActivityLogEntry]:
        return [e for e in self.entries if e.issue_id == issue_id]

    def actions_for(self, issue_id: str) -> List[str]:
        return [e.action for e in self.entries if e.issue_id == issue_id]


class InMemoryCommentRepository(ICommentRepository):

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.comments: List[IssueComment] = []
        self.fail_ids: Set[str] = set()
        self._clock = clock or FixedClock()

    async def append(
        self,
        issue_id: str,
        user_id: Optional[str],
        comment: str,
        is_internal: bool
    ) -> IssueComment:
        if issue_id in self.fail_ids:
            raise RepositoryException("append failed", {"operation": "append_comment"})
        entry = IssueComment(
            id=str(uuid4()),
            issue_id=issue_id,
            comment=comment,
            is_internal=is_internal,
            created_at=self._clock(),
            user_id=user_id,
        )
        self.comments.append(entry)
        return entry

    async def list_for_issue(
        self,
        issue_id: str,
        include_internal: bool = True
    ) -> List[IssueComment]:
        return [
            c for c in self.comments
            if c.issue_id == issue_id and (include_internal or not c.is_internal)
        ]

    def for_issue(self, issue_id: str) -> List[IssueComment]:
        return [c for c in self.comments if c.issue_id == issue_id]


class InMemoryProfileRepository(IProfileRepository):
    """Profiles kept in insertion order, which is the pool order."""

    def __init__(self, profiles: Sequence[Profile] = ()):
        self.profiles: Dict[str, Profile] = {p.id: p for p in profiles}
        self.fail_list = False

    def add(self, profile: Profile) -> Profile:
        self.profiles[profile.id] = profile
        return profile

    async def get_by_id(self, profile_id: str) -> Optional[Profile]:
        return self.profiles.get(profile_id)

    async def list_by_role(self, role: UserRole) -> List[str]:
        if self.fail_list:
            raise RepositoryException("list failed", {"operation": "list_profiles_by_role"})
        return [p.id for p in self.profiles.values() if p.role == role]

    async def count_by_role(self, role: UserRole) -> int:
        return sum(1 for p in self.profiles.values() if p.role == role)

    async def update_role(self, profile_id: str, role: UserRole) -> bool:
        if profile_id not in self.profiles:
            return False
        self.profiles[profile_id] = replace(self.profiles[profile_id], role=role)
        return True


class RecordingNotifier(ISLAAlertNotifier):
    """Collects alerts; raises ExternalServiceException when ``fail`` is set."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.attempts = 0
        self.escalated: List[tuple] = []
        self.approaching: List[tuple] = []

    async def notify_escalated(self, issue: Issue, escalation_count: int, hours_overdue: int) -> bool:
        self.attempts += 1
        if self.fail:
            raise ExternalServiceException("slack", "webhook unreachable")
        self.escalated.append((issue.id, escalation_count, hours_overdue))
        return True

    async def notify_approaching(self, issue: Issue, hours_remaining: int) -> bool:
        self.attempts += 1
        if self.fail:
            raise ExternalServiceException("slack", "webhook unreachable")
        self.approaching.append((issue.id, hours_remaining))
        return True
