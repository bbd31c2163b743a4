"""
SLA Application Services
=========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

- EscalationSweeper: escalates active issues past their deadline
- NotificationSweeper: reminds on active issues nearing their deadline
- SLAMonitorService: read-only SLA snapshot over active issues

Each sweep scans once, then writes per issue. A failed scan aborts the
sweep; a failed per-issue write is logged and the batch continues.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from functools import partial
from typing import Awaitable, Callable, List, Optional, Tuple

from civic_sla.config import ActivityAction, IssuePriority, TERMINAL_STATUSES
from civic_sla.core import (
    Clock,
    utc_now,
    ExternalServiceException,
    RepositoryException,
    SweepFailedException,
)
from civic_sla.issues.application.services import (
    IIssueRepository, IActivityLogRepository, ICommentRepository,
)
from civic_sla.issues.domain import Issue, IssueQuery, Trigger, TRANSITIONS
from civic_sla.shared.infrastructure.logging import get_logger
from civic_sla.sla.domain import (
    SweepResult, SLAMetrics, OverdueIssue, CriticalIssue,
    SLACalculator, ISLAConfigProvider,
)

logger = get_logger(__name__)

# (issue_id, send) pairs collected during a sweep pass
_QueuedAlert = Tuple[str, Callable[[], Awaitable[bool]]]

ESCALATION_SWEEP = "escalation"
NOTIFICATION_SWEEP = "notification"


def escalation_comment(level: int) -> str:
    return f"System: Issue automatically escalated due to SLA breach. Escalation level: {level}"


def approaching_comment(hours_remaining: int) -> str:
    return (
        f"System Alert: SLA deadline approaching in {hours_remaining} hour(s). "
        "Please prioritize this issue."
    )


# ========== Alert Channel Interface ==========

class ISLAAlertNotifier(ABC):
    """
    Interface for out-of-band SLA alerts (e.g. Slack).

    Implementations raise ExternalServiceException when delivery fails.
    """

    @abstractmethod
    async def notify_escalated(self, issue: Issue, escalation_count: int, hours_overdue: int) -> bool:
        """Alert that an issue was escalated. Returns whether an alert was sent."""

    @abstractmethod
    async def notify_approaching(self, issue: Issue, hours_remaining: int) -> bool:
        """Alert that an issue's deadline is near. Returns whether an alert was sent."""


# ========== Application Services ==========

class _Sweeper:
    """Shared wiring for the two sweeps."""

    sweep_name = ""

    def __init__(
        self,
        issue_repository: IIssueRepository,
        comment_repository: ICommentRepository,
        config_provider: ISLAConfigProvider,
        clock: Clock = utc_now,
        notifier: Optional[ISLAAlertNotifier] = None,
        system_actor_id: Optional[str] = None
    ):
        self._issue_repo = issue_repository
        self._comment_repo = comment_repository
        self._config_provider = config_provider
        self._clock = clock
        self._notifier = notifier
        self._system_actor_id = system_actor_id

    def _comment_author(self, issue: Issue) -> str:
        # Without a configured system profile, comments borrow the reporter.
        return self._system_actor_id or issue.reporter_id

    async def _send_alerts(self, alerts: List[_QueuedAlert]) -> None:
        """
        Deliver the alerts queued during a pass, after all of its writes.

        The first undelivered alert drops the rest of the batch, so an
        unreachable webhook costs one retry cycle per run.
        """
        for position, (issue_id, send) in enumerate(alerts):
            try:
                await send()
            except ExternalServiceException as e:
                logger.error(
                    f"Sweep alert not delivered, dropping {len(alerts) - position - 1} more: {e}",
                    extra={"issue_id": issue_id, "sweep": self.sweep_name, "service": e.service_name}
                )
                return

    def _finish(self, result: SweepResult) -> SweepResult:
        result.mark_finished(self._clock())

        logger.info(
            f"{self.sweep_name.capitalize()} sweep completed",
            extra={
                "sweep": self.sweep_name,
                "count": result.count,
                "skipped": len(result.skipped),
                "failed": len(result.failed),
                "duration_ms": (result.finished_at - result.started_at).total_seconds() * 1000
            }
        )

        if result.all_failed:
            raise SweepFailedException(
                self.sweep_name,
                result.attempted,
                {"sweep": self.sweep_name, "failed_ids": list(result.failed)}
            )
        return result


class EscalationSweeper(_Sweeper):
    """
    Escalates every active issue whose deadline has passed.

    Each issue is written with a guard that re-checks it is still active,
    still overdue, and still at the escalation_count that was read, so an
    officer resolving the issue or a concurrent sweep between scan and
    write turns the write into a skip. An issue left unchanged is
    escalated again on the next run.
    """

    sweep_name = ESCALATION_SWEEP

    def __init__(
        self,
        issue_repository: IIssueRepository,
        activity_repository: IActivityLogRepository,
        comment_repository: ICommentRepository,
        config_provider: ISLAConfigProvider,
        clock: Clock = utc_now,
        notifier: Optional[ISLAAlertNotifier] = None,
        system_actor_id: Optional[str] = None
    ):
        super().__init__(
            issue_repository, comment_repository, config_provider,
            clock, notifier, system_actor_id
        )
        self._activity_repo = activity_repository

    async def run(self) -> SweepResult:
        """
        Run one escalation pass.

        Raises:
            RepositoryException: the overdue scan failed
            SweepFailedException: every issue in a non-empty batch failed
        """
        now = self._clock()
        result = SweepResult(sweep=self.sweep_name, started_at=now)

        scan = IssueQuery(
            status_not_in=TERMINAL_STATUSES,
            deadline_before=now,
            order_by_deadline=True,
        )
        issues = await self._issue_repo.query(scan)

        logger.info(
            "Escalation sweep started",
            extra={"sweep": self.sweep_name, "overdue": len(issues), "now": now.isoformat()}
        )

        alerts: List[_QueuedAlert] = []
        for issue in issues:
            try:
                escalated = await self._escalate(issue, now, alerts)
            except RepositoryException as e:
                logger.error(
                    f"Failed to escalate issue: {e}",
                    extra={"issue_id": issue.id, "sweep": self.sweep_name}
                )
                result.failed.append(issue.id)
                continue

            if escalated:
                result.ids.append(issue.id)
            else:
                result.skipped.append(issue.id)

        await self._send_alerts(alerts)
        return self._finish(result)

    async def _escalate(
        self,
        issue: Issue,
        now: datetime,
        alerts: List[_QueuedAlert]
    ) -> bool:
        transition = TRANSITIONS[Trigger.ESCALATE]
        level = issue.escalation_count + 1

        guard = IssueQuery(
            status_in=transition.sources,
            deadline_before=now,
        ).with_escalation_count(issue.escalation_count)

        updated = await self._issue_repo.update(
            issue.id,
            {"status": transition.target, "escalation_count": level, "updated_at": now},
            guard=guard
        )
        if not updated:
            logger.warning(
                "Issue changed since scan, skipping escalation",
                extra={"issue_id": issue.id, "escalation_count": issue.escalation_count}
            )
            return False

        hours_overdue = SLACalculator.hours_overdue(issue.sla_deadline, now)

        # The status write is the escalation; the audit trail is best-effort.
        try:
            await self._activity_repo.append(
                issue.id,
                ActivityAction.AUTO_ESCALATED.value,
                user_id=self._system_actor_id,
                details={
                    "escalation_count": level,
                    "sla_deadline": issue.sla_deadline.isoformat(),
                    "overdue_by_hours": hours_overdue,
                }
            )
        except RepositoryException as e:
            logger.error(
                f"Issue escalated but activity log append failed: {e}",
                extra={"issue_id": issue.id, "escalation_count": level}
            )

        try:
            await self._comment_repo.append(
                issue.id,
                self._comment_author(issue),
                escalation_comment(level),
                is_internal=True
            )
        except RepositoryException as e:
            logger.error(
                f"Issue escalated but system comment failed: {e}",
                extra={"issue_id": issue.id, "escalation_count": level}
            )

        if self._notifier is not None:
            alerts.append((issue.id, partial(self._notifier.notify_escalated, issue, level, hours_overdue)))

        logger.info(
            "Issue escalated",
            extra={
                "issue_id": issue.id,
                "escalation_count": level,
                "overdue_by_hours": hours_overdue,
                "previous_status": issue.status.value
            }
        )
        return True


class NotificationSweeper(_Sweeper):
    """
    Posts an internal reminder on every active issue due within the
    notification window.

    The reminder is a comment only; status, escalation_count and the
    activity log are left untouched. Issues already past their deadline
    are left to the escalation sweep.
    """

    sweep_name = NOTIFICATION_SWEEP

    async def run(self) -> SweepResult:
        """
        Run one notification pass.

        Raises:
            RepositoryException: the upcoming-deadline scan failed
            SweepFailedException: every issue in a non-empty batch failed
        """
        now = self._clock()
        config = self._config_provider.get_config()
        result = SweepResult(sweep=self.sweep_name, started_at=now)

        scan = IssueQuery(
            status_not_in=TERMINAL_STATUSES,
            deadline_after=now,
            deadline_before=now + config.notification_window,
            order_by_deadline=True,
        )
        issues = await self._issue_repo.query(scan)

        logger.info(
            "Notification sweep started",
            extra={
                "sweep": self.sweep_name,
                "approaching": len(issues),
                "window_minutes": config.notification_window_minutes
            }
        )

        alerts: List[_QueuedAlert] = []
        for issue in issues:
            try:
                notified = await self._notify(issue.id, scan, now, alerts)
            except RepositoryException as e:
                logger.error(
                    f"Failed to notify on issue: {e}",
                    extra={"issue_id": issue.id, "sweep": self.sweep_name}
                )
                result.failed.append(issue.id)
                continue

            if notified:
                result.ids.append(issue.id)
            else:
                result.skipped.append(issue.id)

        await self._send_alerts(alerts)
        return self._finish(result)

    async def _notify(
        self,
        issue_id: str,
        scan: IssueQuery,
        now: datetime,
        alerts: List[_QueuedAlert]
    ) -> bool:
        # A comment cannot be written conditionally, so re-read right before it.
        issue = await self._issue_repo.get_by_id(issue_id)
        if issue is None or not scan.matches(issue):
            logger.warning(
                "Issue no longer approaching its deadline, skipping notification",
                extra={"issue_id": issue_id}
            )
            return False

        hours_remaining = SLACalculator.hours_remaining(issue.sla_deadline, now)

        await self._comment_repo.append(
            issue.id,
            self._comment_author(issue),
            approaching_comment(hours_remaining),
            is_internal=True
        )

        if self._notifier is not None:
            alerts.append((issue.id, partial(self._notifier.notify_approaching, issue, hours_remaining)))

        logger.info(
            "SLA reminder posted",
            extra={"issue_id": issue.id, "hours_remaining": hours_remaining}
        )
        return True


class SLAMonitorService:
    """Read-only SLA snapshot; never writes."""

    def __init__(
        self,
        issue_repository: IIssueRepository,
        config_provider: ISLAConfigProvider,
        clock: Clock = utc_now
    ):
        self._issue_repo = issue_repository
        self._config_provider = config_provider
        self._clock = clock

    async def get_metrics(self) -> SLAMetrics:
        """
        Count active issues, list the overdue ones and the critical ones
        due within the watch window.
        """
        now = self._clock()
        watch_seconds = self._config_provider.get_config().critical_watch_window.total_seconds()

        active = await self._issue_repo.query(
            IssueQuery(status_not_in=TERMINAL_STATUSES, order_by_deadline=True)
        )
        metrics = SLAMetrics(total_issues=len(active))

        for issue in active:
            if issue.sla_deadline is None:
                continue

            remaining = (issue.sla_deadline - now).total_seconds()

            if remaining < 0:
                metrics.overdue.append(OverdueIssue(
                    id=issue.id,
                    title=issue.title,
                    priority=issue.priority.value,
                    sla_deadline=issue.sla_deadline,
                    hours_overdue=SLACalculator.hours_overdue(issue.sla_deadline, now),
                ))
            elif issue.priority == IssuePriority.CRITICAL and 0 < remaining < watch_seconds:
                metrics.critical.append(CriticalIssue(
                    id=issue.id,
                    title=issue.title,
                    sla_deadline=issue.sla_deadline,
                    hours_remaining=SLACalculator.hours_remaining(issue.sla_deadline, now),
                ))

        logger.debug(
            "SLA metrics computed",
            extra={
                "total_issues": metrics.total_issues,
                "overdue": metrics.overdue_count,
                "critical": metrics.critical_count
            }
        )
        return metrics
