"""
Issues Application Services
===========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence
from uuid import uuid4

from civic_sla.config import (
    ActivityAction, IssueCategory, IssuePriority, IssueStatus, UserRole,
    OPEN_L1_STATUSES,
)
from civic_sla.core import (
    Clock,
    utc_now,
    AdminCapacityException,
    ConcurrentModificationException,
    ForbiddenActionException,
    InvalidTransitionException,
    RepositoryException,
    ResourceNotFoundException,
    ValidationException,
)
from civic_sla.issues.domain import (
    Issue, Profile, ActivityLogEntry, IssueComment, IssueQuery,
    Trigger, TRANSITIONS, INITIAL_STATUS, can_transition, validate_transition,
)
from civic_sla.shared.infrastructure.logging import get_logger
from civic_sla.sla.domain import ISLAConfigProvider

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class IIssueRepository(ABC):
    """Interface for issue data access."""

    @abstractmethod
    async def get_by_id(self, issue_id: str) -> Optional[Issue]:
        """Get issue by ID."""

    @abstractmethod
    async def create(self, issue: Issue) -> Issue:
        """Persist a new issue."""

    @abstractmethod
    async def query(self, query: IssueQuery) -> List[Issue]:
        """List issues matching a predicate."""

    @abstractmethod
    async def update(
        self,
        issue_id: str,
        fields: Dict[str, Any],
        guard: Optional[IssueQuery] = None
    ) -> bool:
        """
        Apply a partial update in a single write.

        When ``guard`` is given the write only applies if the stored issue
        still satisfies it. Returns whether a row was updated.
        """

    @abstractmethod
    async def count_open_by_l1(
        self,
        officer_ids: Sequence[str],
        statuses: FrozenSet[IssueStatus]
    ) -> Dict[str, int]:
        """Count issues per L1 assignee among ``officer_ids`` with a status in ``statuses``."""


class IActivityLogRepository(ABC):
    """Interface for the append-only activity log."""

    @abstractmethod
    async def append(
        self,
        issue_id: str,
        action: str,
        user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> ActivityLogEntry:
        """Append an entry."""

    @abstractmethod
    async def list_for_issue(self, issue_id: str) -> List[ActivityLogEntry]:
        """Entries for an issue, oldest first."""


class ICommentRepository(ABC):
    """Interface for issue comments."""

    @abstractmethod
    async def append(
        self,
        issue_id: str,
        user_id: Optional[str],
        comment: str,
        is_internal: bool
    ) -> IssueComment:
        """Append a comment."""

    @abstractmethod
    async def list_for_issue(
        self,
        issue_id: str,
        include_internal: bool = True
    ) -> List[IssueComment]:
        """Comments for an issue, oldest first."""


class IProfileRepository(ABC):
    """Interface for the officer directory."""

    @abstractmethod
    async def get_by_id(self, profile_id: str) -> Optional[Profile]:
        """Get profile by ID."""

    @abstractmethod
    async def list_by_role(self, role: UserRole) -> List[str]:
        """Profile ids holding ``role``, in pool arrival order."""

    @abstractmethod
    async def count_by_role(self, role: UserRole) -> int:
        """Number of profiles holding ``role``."""

    @abstractmethod
    async def update_role(self, profile_id: str, role: UserRole) -> bool:
        """Change a profile's role."""


# ========== Helpers ==========

def select_least_loaded(officer_ids: Sequence[str], counts: Mapping[str, int]) -> str:
    """
    Pick the officer with the fewest open assignments.

    Ties go to the officer appearing first in ``officer_ids``; officers
    missing from ``counts`` have no open assignments.
    """
    if not officer_ids:
        raise ValueError("officer pool is empty")

    selected = officer_ids[0]
    lowest = counts.get(selected, 0)

    for officer_id in officer_ids[1:]:
        count = counts.get(officer_id, 0)
        if count < lowest:
            selected = officer_id
            lowest = count

    return selected


def _json_safe(value: Any) -> Any:
    """Make a detail payload value JSON-serializable."""
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    return value


# ========== Application Services ==========

class AssignmentBalancer:
    """
    Routes a newly submitted issue to the least-loaded L1 officer.

    The count-then-write sequence runs under a mutex so that submissions
    handled by this process cannot pick the same officer off one stale
    read. Submissions in other processes can still race; fairness is
    best-effort.
    """

    def __init__(
        self,
        issue_repository: IIssueRepository,
        activity_repository: IActivityLogRepository,
        profile_repository: IProfileRepository,
        clock: Clock = utc_now,
        lock: Optional[asyncio.Lock] = None
    ):
        self._issue_repo = issue_repository
        self._activity_repo = activity_repository
        self._profile_repo = profile_repository
        self._clock = clock
        self._lock = lock or asyncio.Lock()

    async def assign(self, issue_id: str) -> Optional[str]:
        """
        Assign an issue to an L1 officer.

        Returns:
            The chosen officer id, or None if the issue was left unassigned
            (empty pool, storage failure, or it is no longer awaiting
            assignment).
        """
        async with self._lock:
            return await self._assign(issue_id)

    async def _assign(self, issue_id: str) -> Optional[str]:
        try:
            officer_ids = await self._profile_repo.list_by_role(UserRole.L1_OFFICER)
        except RepositoryException as e:
            logger.error(
                f"Failed to load L1 officer pool: {e}",
                extra={"issue_id": issue_id}
            )
            return None

        if not officer_ids:
            logger.info("No L1 officers available for assignment", extra={"issue_id": issue_id})
            return None

        try:
            counts = await self._issue_repo.count_open_by_l1(officer_ids, OPEN_L1_STATUSES)
        except RepositoryException as e:
            logger.warning(
                f"Failed to count open assignments, falling back to first officer: {e}",
                extra={"issue_id": issue_id}
            )
            counts = {}

        officer_id = select_least_loaded(officer_ids, counts)
        now = self._clock()
        transition = TRANSITIONS[Trigger.AUTO_ASSIGN]

        try:
            updated = await self._issue_repo.update(
                issue_id,
                {
                    "assigned_l1_id": officer_id,
                    "assigned_l1_at": now,
                    "status": transition.target,
                    "updated_at": now,
                },
                guard=IssueQuery(status_in=transition.sources, l1_unassigned=True)
            )
        except RepositoryException as e:
            logger.error(
                f"Failed to assign issue to L1 officer: {e}",
                extra={"issue_id": issue_id, "officer_id": officer_id}
            )
            return None

        if not updated:
            logger.warning(
                "Issue no longer awaiting assignment, skipping",
                extra={"issue_id": issue_id}
            )
            return None

        try:
            await self._activity_repo.append(
                issue_id,
                ActivityAction.AUTO_ASSIGNED_L1.value,
                user_id=officer_id,
                details={"officer_id": officer_id}
            )
        except RepositoryException as e:
            logger.error(
                f"Issue assigned but activity log append failed: {e}",
                extra={"issue_id": issue_id, "officer_id": officer_id}
            )

        logger.info(
            "Issue auto-assigned to L1 officer",
            extra={
                "issue_id": issue_id,
                "officer_id": officer_id,
                "open_assignments": counts.get(officer_id, 0),
                "pool_size": len(officer_ids)
            }
        )
        return officer_id


class IssueService:
    """
    Service for issue intake and read access.

    Creation always completes before balancing runs, so a balancer
    failure leaves a submitted, unassigned issue rather than an error.
    """

    def __init__(
        self,
        issue_repository: IIssueRepository,
        activity_repository: IActivityLogRepository,
        comment_repository: ICommentRepository,
        profile_repository: IProfileRepository,
        config_provider: ISLAConfigProvider,
        balancer: AssignmentBalancer,
        clock: Clock = utc_now
    ):
        self._issue_repo = issue_repository
        self._activity_repo = activity_repository
        self._comment_repo = comment_repository
        self._profile_repo = profile_repository
        self._config_provider = config_provider
        self._balancer = balancer
        self._clock = clock

    async def report_issue(
        self,
        reporter_id: str,
        title: str,
        description: str,
        category: IssueCategory,
        priority: IssuePriority,
        address: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None
    ) -> Issue:
        """
        Record a citizen report and route it to an L1 officer.

        Raises:
            ValidationException: blank title or description
            ResourceNotFoundException: unknown reporter
        """
        if not title.strip() or not description.strip():
            raise ValidationException("Title and description are required")

        reporter = await self._profile_repo.get_by_id(reporter_id)
        if reporter is None:
            raise ResourceNotFoundException("Profile", reporter_id)

        now = self._clock()
        config = self._config_provider.get_config()

        issue = Issue(
            id=str(uuid4()),
            title=title.strip(),
            description=description.strip(),
            category=IssueCategory(category),
            priority=IssuePriority(priority),
            status=INITIAL_STATUS,
            reporter_id=reporter_id,
            created_at=now,
            updated_at=now,
            sla_deadline=config.deadline_for(priority, now),
            address=address,
            latitude=latitude,
            longitude=longitude,
        )
        created = await self._issue_repo.create(issue)

        logger.info(
            "Issue reported",
            extra={
                "issue_id": created.id,
                "priority": created.priority.value,
                "sla_deadline": created.sla_deadline.isoformat()
            }
        )

        await self._balancer.assign(created.id)

        return await self._issue_repo.get_by_id(created.id) or created

    async def get_issue(self, issue_id: str) -> Issue:
        issue = await self._issue_repo.get_by_id(issue_id)
        if issue is None:
            raise ResourceNotFoundException("Issue", issue_id)
        return issue

    async def list_activity(self, issue_id: str) -> List[ActivityLogEntry]:
        await self.get_issue(issue_id)
        return await self._activity_repo.list_for_issue(issue_id)

    async def list_comments(
        self,
        issue_id: str,
        include_internal: bool = True
    ) -> List[IssueComment]:
        await self.get_issue(issue_id)
        return await self._comment_repo.list_for_issue(issue_id, include_internal)


class IssueWorkflowService:
    """
    Officer and admin driven status changes.

    Every manual trigger is checked against the state machine (source
    status and actor role) and written with a guard pinned to the status
    that was validated, so a concurrent change surfaces as a conflict.
    """

    def __init__(
        self,
        issue_repository: IIssueRepository,
        activity_repository: IActivityLogRepository,
        comment_repository: ICommentRepository,
        profile_repository: IProfileRepository,
        clock: Clock = utc_now
    ):
        self._issue_repo = issue_repository
        self._activity_repo = activity_repository
        self._comment_repo = comment_repository
        self._profile_repo = profile_repository
        self._clock = clock

    async def assign_l1(self, issue_id: str, actor_id: str, officer_id: str) -> Issue:
        """
        L1 officer takes an unassigned issue, or admin assigns one.

        An escalated issue can be picked up only while it has no L1
        owner; it then moves back to assigned_l1.
        """
        actor = await self._require_profile(actor_id)
        if actor.role == UserRole.L1_OFFICER and officer_id != actor_id:
            raise ForbiddenActionException(actor_id, actor.role.value, Trigger.ASSIGN_L1.value)
        await self._require_role(officer_id, UserRole.L1_OFFICER)

        issue = await self._load(issue_id)
        transition = validate_transition(issue.id, issue.status, Trigger.ASSIGN_L1, actor.role, actor_id)
        reclaim = issue.status == IssueStatus.ESCALATED
        if reclaim and issue.assigned_l1_id is not None:
            raise InvalidTransitionException(issue.id, issue.status.value, Trigger.ASSIGN_L1.value)

        now = self._clock()
        fields = {"assigned_l1_id": officer_id, "status": transition.target, "updated_at": now}
        if issue.assigned_l1_id is None:
            fields["assigned_l1_at"] = now

        return await self._apply(
            issue, fields, actor_id, ActivityAction.ASSIGNED_L1, {"officer_id": officer_id},
            guard=IssueQuery(status_in=frozenset({issue.status}), l1_unassigned=reclaim)
        )

    async def assign_l2(self, issue_id: str, actor_id: str, officer_id: str) -> Issue:
        """
        Hand an L1-owned issue to an L2 field officer.

        Escalated issues without an L2 officer can be handed over too.
        """
        actor = await self._require_profile(actor_id)
        await self._require_role(officer_id, UserRole.L2_OFFICER)

        issue = await self._load(issue_id)
        transition = validate_transition(issue.id, issue.status, Trigger.ASSIGN_L2, actor.role, actor_id)
        reclaim = issue.status == IssueStatus.ESCALATED
        if reclaim and issue.assigned_l2_id is not None:
            raise InvalidTransitionException(issue.id, issue.status.value, Trigger.ASSIGN_L2.value)

        now = self._clock()
        fields = {"assigned_l2_id": officer_id, "status": transition.target, "updated_at": now}
        if issue.assigned_l2_id is None:
            fields["assigned_l2_at"] = now

        return await self._apply(
            issue, fields, actor_id, ActivityAction.ASSIGNED_L2, {"officer_id": officer_id},
            guard=IssueQuery(status_in=frozenset({issue.status}), l2_unassigned=reclaim)
        )

    async def start_work(self, issue_id: str, actor_id: str) -> Issue:
        actor = await self._require_profile(actor_id)
        issue = await self._load(issue_id)
        transition = validate_transition(issue.id, issue.status, Trigger.START_WORK, actor.role, actor_id)
        self._require_l2_assignee(issue, actor, Trigger.START_WORK)

        return await self._apply(
            issue,
            {"status": transition.target, "updated_at": self._clock()},
            actor_id,
            ActivityAction.WORK_STARTED,
        )

    async def resolve(self, issue_id: str, actor_id: str, resolution_note: str) -> Issue:
        """
        Resolve an in-progress issue.

        The note is checked before anything is read or written; it is
        posted as an external comment so the reporter sees it.

        Raises:
            ValidationException: empty resolution note
        """
        if not resolution_note or not resolution_note.strip():
            raise ValidationException("A resolution note is required to resolve an issue")

        actor = await self._require_profile(actor_id)
        issue = await self._load(issue_id)
        transition = validate_transition(issue.id, issue.status, Trigger.RESOLVE, actor.role, actor_id)
        self._require_l2_assignee(issue, actor, Trigger.RESOLVE)

        now = self._clock()
        fields = {"status": transition.target, "updated_at": now}
        if issue.resolved_at is None:
            fields["resolved_at"] = now

        resolved = await self._apply(issue, fields, actor_id, ActivityAction.RESOLVED)

        try:
            await self._comment_repo.append(
                issue.id,
                actor_id,
                f"Issue Resolved:\n\n{resolution_note.strip()}",
                is_internal=False
            )
        except RepositoryException as e:
            logger.error(
                f"Issue resolved but resolution comment failed: {e}",
                extra={"issue_id": issue.id}
            )

        return resolved

    async def close(self, issue_id: str, actor_id: str) -> Issue:
        actor = await self._require_profile(actor_id)
        issue = await self._load(issue_id)
        transition = validate_transition(issue.id, issue.status, Trigger.CLOSE, actor.role, actor_id)

        now = self._clock()
        fields = {"status": transition.target, "updated_at": now}
        if issue.closed_at is None:
            fields["closed_at"] = now

        return await self._apply(issue, fields, actor_id, ActivityAction.CLOSED)

    async def change_priority(self, issue_id: str, actor_id: str, priority: IssuePriority) -> Issue:
        """
        Re-prioritize an active issue.

        Allowed for the issue's own L1 officer and for admins. The SLA
        deadline stays as stamped at report time.
        """
        priority = IssuePriority(priority)
        actor = await self._require_profile(actor_id)
        issue = await self._load(issue_id)

        if actor.role == UserRole.L1_OFFICER:
            if issue.assigned_l1_id != actor.id:
                raise ForbiddenActionException(actor_id, actor.role.value, "change_priority")
        elif actor.role != UserRole.ADMIN:
            raise ForbiddenActionException(actor_id, actor.role.value, "change_priority")

        if not issue.is_active:
            raise InvalidTransitionException(issue.id, issue.status.value, "change_priority")
        if priority == issue.priority:
            return issue

        return await self._apply(
            issue,
            {"priority": priority, "updated_at": self._clock()},
            actor_id,
            ActivityAction.PRIORITY_CHANGED,
            {"from": issue.priority.value, "to": priority.value}
        )

    async def admin_update(
        self,
        issue_id: str,
        actor_id: str,
        changes: Dict[str, Any]
    ) -> Issue:
        """
        Direct edit of status, priority and assignees by an admin.

        Status changes outside the transition table are applied anyway
        and logged as ``admin_override``. ``sla_deadline`` is not
        recomputed when priority changes.

        Args:
            changes: subset of status, priority, assigned_l1_id,
                assigned_l2_id; a None assignee clears it
        """
        actor = await self._require_profile(actor_id)
        if actor.role != UserRole.ADMIN:
            raise ForbiddenActionException(actor_id, actor.role.value, "admin_update")

        allowed = {"status", "priority", "assigned_l1_id", "assigned_l2_id"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationException(f"Unsupported fields: {sorted(unknown)}")

        issue = await self._load(issue_id)
        now = self._clock()
        fields: Dict[str, Any] = {}

        if changes.get("priority") is not None and IssuePriority(changes["priority"]) != issue.priority:
            fields["priority"] = IssuePriority(changes["priority"])

        for column, role in (("assigned_l1_id", UserRole.L1_OFFICER), ("assigned_l2_id", UserRole.L2_OFFICER)):
            if column not in changes or changes[column] == getattr(issue, column):
                continue
            officer_id = changes[column]
            if officer_id is not None:
                await self._require_role(officer_id, role)
            fields[column] = officer_id
            stamp = column.replace("_id", "_at")
            if officer_id is not None and getattr(issue, column) is None:
                fields[stamp] = now

        bypassed = False
        new_status = changes.get("status")
        if new_status is not None and IssueStatus(new_status) != issue.status:
            new_status = IssueStatus(new_status)
            bypassed = not can_transition(issue.status, new_status)
            fields["status"] = new_status
            if new_status == IssueStatus.RESOLVED and issue.resolved_at is None:
                fields["resolved_at"] = now
            if new_status == IssueStatus.CLOSED and issue.closed_at is None:
                fields["closed_at"] = now

        if not fields:
            return issue

        fields["updated_at"] = now
        action = ActivityAction.ADMIN_OVERRIDE if bypassed else ActivityAction.ADMIN_UPDATED
        details = {
            "changes": {k: _json_safe(v) for k, v in fields.items() if k != "updated_at"},
            "from_status": issue.status.value,
            "bypassed_state_machine": bypassed,
        }

        if bypassed:
            logger.warning(
                "Admin status change bypassed the state machine",
                extra={
                    "issue_id": issue.id,
                    "actor_id": actor_id,
                    "from_status": issue.status.value,
                    "to_status": fields["status"].value
                }
            )

        return await self._apply(issue, fields, actor_id, action, details)

    async def _apply(
        self,
        issue: Issue,
        fields: Dict[str, Any],
        actor_id: str,
        action: ActivityAction,
        details: Optional[Dict[str, Any]] = None,
        guard: Optional[IssueQuery] = None
    ) -> Issue:
        updated = await self._issue_repo.update(
            issue.id,
            fields,
            guard=guard or IssueQuery(status_in=frozenset({issue.status}))
        )
        if not updated:
            raise ConcurrentModificationException(issue.id, {"expected_status": issue.status.value})

        try:
            await self._activity_repo.append(issue.id, action.value, user_id=actor_id, details=details or {})
        except RepositoryException as e:
            logger.error(
                f"Issue updated but activity log append failed: {e}",
                extra={"issue_id": issue.id, "action": action.value}
            )

        logger.info(
            "Issue updated",
            extra={"issue_id": issue.id, "action": action.value, "actor_id": actor_id}
        )
        return await self._load(issue.id)

    async def _load(self, issue_id: str) -> Issue:
        issue = await self._issue_repo.get_by_id(issue_id)
        if issue is None:
            raise ResourceNotFoundException("Issue", issue_id)
        return issue

    async def _require_profile(self, profile_id: str) -> Profile:
        profile = await self._profile_repo.get_by_id(profile_id)
        if profile is None:
            raise ResourceNotFoundException("Profile", profile_id)
        return profile

    async def _require_role(self, profile_id: str, role: UserRole) -> Profile:
        profile = await self._require_profile(profile_id)
        if profile.role != role:
            raise ValidationException(
                f"Profile {profile_id} is not a {role.value}",
                {"profile_id": profile_id, "role": profile.role.value}
            )
        return profile

    @staticmethod
    def _require_l2_assignee(issue: Issue, actor: Profile, trigger: Trigger) -> None:
        # L2 officers act only on issues handed to them; admins act on any.
        if actor.role == UserRole.L2_OFFICER and issue.assigned_l2_id != actor.id:
            raise ForbiddenActionException(actor.id, actor.role.value, trigger.value)


class ProfileService:
    """Role management with the system-wide admin cap."""

    def __init__(self, profile_repository: IProfileRepository, max_admins: int = 2):
        self._profile_repo = profile_repository
        self._max_admins = max_admins

    async def change_role(self, profile_id: str, actor_id: str, role: UserRole) -> Profile:
        """
        Change a profile's role.

        Raises:
            ForbiddenActionException: actor is not an admin
            AdminCapacityException: promotion would exceed the admin cap
        """
        actor = await self._profile_repo.get_by_id(actor_id)
        if actor is None:
            raise ResourceNotFoundException("Profile", actor_id)
        if actor.role != UserRole.ADMIN:
            raise ForbiddenActionException(actor_id, actor.role.value, "change_role")

        profile = await self._profile_repo.get_by_id(profile_id)
        if profile is None:
            raise ResourceNotFoundException("Profile", profile_id)

        role = UserRole(role)
        if profile.role == role:
            return profile

        if role == UserRole.ADMIN:
            admins = await self._profile_repo.count_by_role(UserRole.ADMIN)
            if admins >= self._max_admins:
                raise AdminCapacityException(self._max_admins)

        await self._profile_repo.update_role(profile_id, role)
        logger.info(
            "Profile role changed",
            extra={"profile_id": profile_id, "from_role": profile.role.value, "to_role": role.value}
        )
        return await self._profile_repo.get_by_id(profile_id) or profile
