"""
Issues Infrastructure Repositories
==================================

Concrete implementations of repository interfaces using SQLAlchemy.

Each call opens its own short-lived session and commits it, so every
write is independent of any batch that issued it. Storage errors are
wrapped in RepositoryException.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, FrozenSet, List, Optional, Sequence
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from civic_sla.config import IssueCategory, IssuePriority, IssueStatus, UserRole
from civic_sla.core import Clock, RepositoryException, utc_now
from civic_sla.issues.application.services import (
    IIssueRepository, IActivityLogRepository, ICommentRepository, IProfileRepository,
)
from civic_sla.issues.domain import Issue, Profile, ActivityLogEntry, IssueComment, IssueQuery
from civic_sla.issues.infrastructure.models import (
    IssueModel, ProfileModel, ActivityLogModel, IssueCommentModel,
)

_REFERENCE_COLUMNS = {"id", "reporter_id", "assigned_l1_id", "assigned_l2_id"}


def _as_uuid(value: Optional[str]) -> Optional[UUID]:
    """Parse an id; malformed ids map to None."""
    if value is None:
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _as_str(value: Optional[UUID]) -> Optional[str]:
    return str(value) if value is not None else None


def _to_column_value(column: str, value: Any) -> Any:
    if column in _REFERENCE_COLUMNS:
        return _as_uuid(value)
    if hasattr(value, "value"):
        return value.value
    return value


def _to_issue(model: IssueModel) -> Issue:
    return Issue(
        id=str(model.id),
        title=model.title,
        description=model.description,
        category=IssueCategory(model.category),
        priority=IssuePriority(model.priority),
        status=IssueStatus(model.status),
        reporter_id=str(model.reporter_id),
        created_at=model.created_at,
        updated_at=model.updated_at,
        sla_deadline=model.sla_deadline,
        escalation_count=model.escalation_count,
        assigned_l1_id=_as_str(model.assigned_l1_id),
        assigned_l1_at=model.assigned_l1_at,
        assigned_l2_id=_as_str(model.assigned_l2_id),
        assigned_l2_at=model.assigned_l2_at,
        resolved_at=model.resolved_at,
        closed_at=model.closed_at,
        address=model.address,
        latitude=model.latitude,
        longitude=model.longitude,
    )


def _to_profile(model: ProfileModel) -> Profile:
    return Profile(
        id=str(model.id),
        email=model.email,
        full_name=model.full_name,
        role=UserRole(model.role),
        created_at=model.created_at,
        department=model.department,
        phone=model.phone,
    )


def _conditions(query: IssueQuery) -> List[Any]:
    """Translate an IssueQuery into SQL where-clauses."""
    conditions = []

    if query.status_in is not None:
        conditions.append(IssueModel.status.in_([s.value for s in query.status_in]))
    if query.status_not_in is not None:
        conditions.append(IssueModel.status.not_in([s.value for s in query.status_not_in]))
    if query.deadline_before is not None:
        conditions.append(IssueModel.sla_deadline < query.deadline_before)
    if query.deadline_after is not None:
        conditions.append(IssueModel.sla_deadline > query.deadline_after)
    if query.l1_unassigned:
        conditions.append(IssueModel.assigned_l1_id.is_(None))
    if query.l2_unassigned:
        conditions.append(IssueModel.assigned_l2_id.is_(None))
    if query.escalation_count is not None:
        conditions.append(IssueModel.escalation_count == query.escalation_count)

    return conditions


class _SQLAlchemyRepository:
    """Session handling shared by the repositories below."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except (SQLAlchemyError, OSError) as e:
            raise RepositoryException(
                f"{operation} failed: {e}",
                {"operation": operation}
            ) from e


class SQLAlchemyIssueRepository(_SQLAlchemyRepository, IIssueRepository):
    """
    SQLAlchemy implementation of issue repository.

    Guarded updates are a single UPDATE whose WHERE clause carries the
    guard, so the precondition is evaluated against current row state.
    """

    async def get_by_id(self, issue_id: str) -> Optional[Issue]:
        issue_uuid = _as_uuid(issue_id)
        if issue_uuid is None:
            return None

        async with self._session("get_issue") as session:
            model = await session.get(IssueModel, issue_uuid)
            return _to_issue(model) if model else None

    async def create(self, issue: Issue) -> Issue:
        model = IssueModel(
            id=_as_uuid(issue.id) or uuid4(),
            title=issue.title,
            description=issue.description,
            category=issue.category.value,
            priority=issue.priority.value,
            status=issue.status.value,
            address=issue.address,
            latitude=issue.latitude,
            longitude=issue.longitude,
            reporter_id=_as_uuid(issue.reporter_id),
            assigned_l1_id=_as_uuid(issue.assigned_l1_id),
            assigned_l1_at=issue.assigned_l1_at,
            assigned_l2_id=_as_uuid(issue.assigned_l2_id),
            assigned_l2_at=issue.assigned_l2_at,
            sla_deadline=issue.sla_deadline,
            escalation_count=issue.escalation_count,
            created_at=issue.created_at,
            updated_at=issue.updated_at,
            resolved_at=issue.resolved_at,
            closed_at=issue.closed_at,
        )

        async with self._session("create_issue") as session:
            session.add(model)
            await session.flush()
            return _to_issue(model)

    async def query(self, query: IssueQuery) -> List[Issue]:
        stmt = select(IssueModel).where(*_conditions(query))

        if query.order_by_deadline:
            stmt = stmt.order_by(IssueModel.sla_deadline.asc(), IssueModel.id.asc())
        else:
            stmt = stmt.order_by(IssueModel.created_at.desc())

        async with self._session("query_issues") as session:
            result = await session.execute(stmt)
            return [_to_issue(m) for m in result.scalars().all()]

    async def update(
        self,
        issue_id: str,
        fields: Dict[str, Any],
        guard: Optional[IssueQuery] = None
    ) -> bool:
        issue_uuid = _as_uuid(issue_id)
        if issue_uuid is None:
            return False

        values = {column: _to_column_value(column, value) for column, value in fields.items()}
        stmt = (
            update(IssueModel)
            .where(IssueModel.id == issue_uuid, *(_conditions(guard) if guard else []))
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        async with self._session("update_issue") as session:
            result = await session.execute(stmt)
            return result.rowcount == 1

    async def count_open_by_l1(
        self,
        officer_ids: Sequence[str],
        statuses: FrozenSet[IssueStatus]
    ) -> Dict[str, int]:
        ids = [u for u in (_as_uuid(i) for i in officer_ids) if u is not None]
        if not ids:
            return {}

        stmt = (
            select(IssueModel.assigned_l1_id, func.count(IssueModel.id))
            .where(
                IssueModel.assigned_l1_id.in_(ids),
                IssueModel.status.in_([s.value for s in statuses]),
            )
            .group_by(IssueModel.assigned_l1_id)
        )

        async with self._session("count_open_by_l1") as session:
            result = await session.execute(stmt)
            return {str(officer_id): count for officer_id, count in result.all()}


class SQLAlchemyActivityLogRepository(_SQLAlchemyRepository, IActivityLogRepository):
    """Append-only activity log."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], clock: Clock = utc_now):
        super().__init__(session_factory)
        self._clock = clock

    async def append(
        self,
        issue_id: str,
        action: str,
        user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> ActivityLogEntry:
        model = ActivityLogModel(
            id=uuid4(),
            issue_id=_as_uuid(issue_id),
            user_id=_as_uuid(user_id),
            action=action,
            details=details or {},
            created_at=self._clock(),
        )

        async with self._session("append_activity") as session:
            session.add(model)

        return ActivityLogEntry(
            id=str(model.id),
            issue_id=issue_id,
            action=action,
            created_at=model.created_at,
            user_id=user_id,
            details=model.details,
        )

    async def list_for_issue(self, issue_id: str) -> List[ActivityLogEntry]:
        issue_uuid = _as_uuid(issue_id)
        if issue_uuid is None:
            return []

        stmt = (
            select(ActivityLogModel)
            .where(ActivityLogModel.issue_id == issue_uuid)
            .order_by(ActivityLogModel.created_at.asc())
        )

        async with self._session("list_activity") as session:
            result = await session.execute(stmt)
            return [
                ActivityLogEntry(
                    id=str(m.id),
                    issue_id=str(m.issue_id),
                    action=m.action,
                    created_at=m.created_at,
                    user_id=_as_str(m.user_id),
                    details=m.details or {},
                )
                for m in result.scalars().all()
            ]


class SQLAlchemyCommentRepository(_SQLAlchemyRepository, ICommentRepository):
    """Issue comments."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], clock: Clock = utc_now):
        super().__init__(session_factory)
        self._clock = clock

    async def append(
        self,
        issue_id: str,
        user_id: Optional[str],
        comment: str,
        is_internal: bool
    ) -> IssueComment:
        model = IssueCommentModel(
            id=uuid4(),
            issue_id=_as_uuid(issue_id),
            user_id=_as_uuid(user_id),
            comment=comment,
            is_internal=is_internal,
            created_at=self._clock(),
        )

        async with self._session("append_comment") as session:
            session.add(model)

        return IssueComment(
            id=str(model.id),
            issue_id=issue_id,
            comment=comment,
            is_internal=is_internal,
            created_at=model.created_at,
            user_id=user_id,
        )

    async def list_for_issue(
        self,
        issue_id: str,
        include_internal: bool = True
    ) -> List[IssueComment]:
        issue_uuid = _as_uuid(issue_id)
        if issue_uuid is None:
            return []

        stmt = select(IssueCommentModel).where(IssueCommentModel.issue_id == issue_uuid)
        if not include_internal:
            stmt = stmt.where(IssueCommentModel.is_internal.is_(False))
        stmt = stmt.order_by(IssueCommentModel.created_at.asc())

        async with self._session("list_comments") as session:
            result = await session.execute(stmt)
            return [
                IssueComment(
                    id=str(m.id),
                    issue_id=str(m.issue_id),
                    comment=m.comment,
                    is_internal=m.is_internal,
                    created_at=m.created_at,
                    user_id=_as_str(m.user_id),
                )
                for m in result.scalars().all()
            ]


class SQLAlchemyProfileRepository(_SQLAlchemyRepository, IProfileRepository):
    """
    Officer directory backed by the profiles table.

    Pool order is created_at ascending, then id, which is the fixed
    tie-break order used by the assignment balancer.
    """

    async def get_by_id(self, profile_id: str) -> Optional[Profile]:
        profile_uuid = _as_uuid(profile_id)
        if profile_uuid is None:
            return None

        async with self._session("get_profile") as session:
            model = await session.get(ProfileModel, profile_uuid)
            return _to_profile(model) if model else None

    async def list_by_role(self, role: UserRole) -> List[str]:
        stmt = (
            select(ProfileModel.id)
            .where(ProfileModel.role == UserRole(role).value)
            .order_by(ProfileModel.created_at.asc(), ProfileModel.id.asc())
        )

        async with self._session("list_profiles_by_role") as session:
            result = await session.execute(stmt)
            return [str(profile_id) for profile_id in result.scalars().all()]

    async def count_by_role(self, role: UserRole) -> int:
        stmt = select(func.count(ProfileModel.id)).where(ProfileModel.role == UserRole(role).value)

        async with self._session("count_profiles_by_role") as session:
            result = await session.execute(stmt)
            return int(result.scalar_one())

    async def update_role(self, profile_id: str, role: UserRole) -> bool:
        profile_uuid = _as_uuid(profile_id)
        if profile_uuid is None:
            return False

        stmt = (
            update(ProfileModel)
            .where(ProfileModel.id == profile_uuid)
            .values(role=UserRole(role).value, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )

        async with self._session("update_profile_role") as session:
            result = await session.execute(stmt)
            return result.rowcount == 1
