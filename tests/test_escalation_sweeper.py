"""Escalation sweep: overdue detection, per-issue isolation, repeat runs."""

from datetime import timedelta

import pytest

from civic_sla.config import ActivityAction, IssuePriority, IssueStatus
from civic_sla.core import RepositoryException, SweepFailedException
from civic_sla.issues.application import IssueService
from civic_sla.sla.application import EscalationSweeper, SweepSummaryResponse, escalation_comment

from tests.fakes import T0, RecordingNotifier, make_issue


@pytest.fixture
def sweeper(issue_repo, activity_repo, comment_repo, config_provider, clock):
    return EscalationSweeper(issue_repo, activity_repo, comment_repo, config_provider, clock)


def _overdue(issue_repo, hours=1, status=IssueStatus.IN_PROGRESS, **kwargs):
    deadline = T0 - timedelta(hours=hours)
    return issue_repo.add(make_issue(
        status=status,
        created_at=deadline - timedelta(hours=24),
        sla_deadline=deadline,
        **kwargs
    ))


class TestEscalationSweep:

    @pytest.mark.asyncio
    async def test_escalates_overdue_issue_once(self, sweeper, issue_repo, activity_repo, comment_repo):
        issue = _overdue(issue_repo, hours=1)

        result = await sweeper.run()

        assert result.ids == [issue.id]
        stored = issue_repo.issues[issue.id]
        assert stored.status == IssueStatus.ESCALATED
        assert stored.escalation_count == 1

        [entry] = activity_repo.entries
        assert entry.action == ActivityAction.AUTO_ESCALATED.value
        assert entry.details == {
            "escalation_count": 1,
            "sla_deadline": issue.sla_deadline.isoformat(),
            "overdue_by_hours": 1,
        }

        [comment] = comment_repo.comments
        assert comment.is_internal
        assert comment.comment == escalation_comment(1)
        assert comment.comment.endswith("Escalation level: 1")

    @pytest.mark.asyncio
    async def test_comment_authored_by_reporter_by_default(self, sweeper, issue_repo, comment_repo):
        _overdue(issue_repo, reporter_id="citizen-9")

        await sweeper.run()

        assert comment_repo.comments[0].user_id == "citizen-9"

    @pytest.mark.asyncio
    async def test_configured_system_actor_authors_comments(
        self, issue_repo, activity_repo, comment_repo, config_provider, clock
    ):
        sweeper = EscalationSweeper(
            issue_repo, activity_repo, comment_repo, config_provider, clock,
            system_actor_id="system-bot"
        )
        _overdue(issue_repo)

        await sweeper.run()

        assert comment_repo.comments[0].user_id == "system-bot"
        assert activity_repo.entries[0].user_id == "system-bot"

    @pytest.mark.asyncio
    async def test_overwrites_any_active_status(self, sweeper, issue_repo):
        issues = [
            _overdue(issue_repo, status=status)
            for status in (IssueStatus.SUBMITTED, IssueStatus.ASSIGNED_L1, IssueStatus.ASSIGNED_L2)
        ]

        result = await sweeper.run()

        assert result.count == 3
        for issue in issues:
            assert issue_repo.issues[issue.id].status == IssueStatus.ESCALATED

    @pytest.mark.asyncio
    async def test_resolved_and_closed_are_excluded(self, sweeper, issue_repo, activity_repo):
        _overdue(issue_repo, hours=10, status=IssueStatus.RESOLVED)
        _overdue(issue_repo, hours=10, status=IssueStatus.CLOSED)

        result = await sweeper.run()

        assert result.count == 0
        assert result.attempted == 0
        assert activity_repo.entries == []

    @pytest.mark.asyncio
    async def test_issue_not_yet_due_is_excluded(self, sweeper, issue_repo):
        issue_repo.add(make_issue(sla_deadline=T0 + timedelta(minutes=1)))
        issue_repo.add(make_issue(sla_deadline=T0))

        result = await sweeper.run()

        assert result.count == 0

    @pytest.mark.asyncio
    async def test_issue_without_deadline_is_excluded(self, sweeper, issue_repo):
        issue_repo.add(make_issue(status=IssueStatus.IN_PROGRESS, sla_deadline=None))

        assert (await sweeper.run()).count == 0

    @pytest.mark.asyncio
    async def test_processes_earliest_deadline_first(self, sweeper, issue_repo):
        later = _overdue(issue_repo, hours=1)
        earlier = _overdue(issue_repo, hours=5)

        result = await sweeper.run()

        assert result.ids == [earlier.id, later.id]

    @pytest.mark.asyncio
    async def test_runs_again_escalate_again(self, sweeper, issue_repo, activity_repo, comment_repo):
        """No cool-down: an unchanged overdue issue is escalated on every run."""
        issue = _overdue(issue_repo)

        await sweeper.run()
        second = await sweeper.run()

        assert second.ids == [issue.id]
        assert issue_repo.issues[issue.id].escalation_count == 2
        assert activity_repo.actions_for(issue.id) == ["auto_escalated", "auto_escalated"]
        assert comment_repo.comments[-1].comment == escalation_comment(2)

    @pytest.mark.asyncio
    async def test_issue_resolved_between_scan_and_write_is_skipped(
        self, sweeper, issue_repo, activity_repo, comment_repo
    ):
        issue = _overdue(issue_repo)

        def officer_resolves(issue_id):
            issue_repo.set_fields(issue_id, status=IssueStatus.RESOLVED)

        issue_repo.before_update = officer_resolves

        result = await sweeper.run()

        assert result.ids == []
        assert result.skipped == [issue.id]
        assert issue_repo.issues[issue.id].status == IssueStatus.RESOLVED
        assert issue_repo.issues[issue.id].escalation_count == 0
        assert activity_repo.entries == []
        assert comment_repo.comments == []

    @pytest.mark.asyncio
    async def test_concurrent_escalation_does_not_double_count(self, sweeper, issue_repo):
        issue = _overdue(issue_repo)

        def other_sweep_wins(issue_id):
            issue_repo.set_fields(issue_id, status=IssueStatus.ESCALATED, escalation_count=1)

        issue_repo.before_update = other_sweep_wins

        result = await sweeper.run()

        assert result.skipped == [issue.id]
        assert issue_repo.issues[issue.id].escalation_count == 1

    @pytest.mark.asyncio
    async def test_one_failing_issue_does_not_abort_batch(self, sweeper, issue_repo):
        failing = _overdue(issue_repo, hours=3)
        ok = _overdue(issue_repo, hours=1)
        issue_repo.fail_update_ids.add(failing.id)

        result = await sweeper.run()

        assert result.ids == [ok.id]
        assert result.failed == [failing.id]
        assert issue_repo.issues[ok.id].status == IssueStatus.ESCALATED
        assert issue_repo.issues[failing.id].escalation_count == 0

    @pytest.mark.asyncio
    async def test_all_failing_raises(self, sweeper, issue_repo):
        for hours in (1, 2):
            issue = _overdue(issue_repo, hours=hours)
            issue_repo.fail_update_ids.add(issue.id)

        with pytest.raises(SweepFailedException) as exc_info:
            await sweeper.run()

        assert exc_info.value.attempted == 2

    @pytest.mark.asyncio
    async def test_scan_failure_propagates(self, sweeper, issue_repo):
        _overdue(issue_repo)
        issue_repo.fail_query = True

        with pytest.raises(RepositoryException):
            await sweeper.run()

        assert issue_repo.update_calls == []

    @pytest.mark.asyncio
    async def test_audit_failure_still_counts_as_escalated(self, sweeper, issue_repo, activity_repo, comment_repo):
        issue = _overdue(issue_repo)
        activity_repo.fail = True
        comment_repo.fail_ids.add(issue.id)

        result = await sweeper.run()

        assert result.ids == [issue.id]
        assert issue_repo.issues[issue.id].status == IssueStatus.ESCALATED

    @pytest.mark.asyncio
    async def test_empty_batch_is_not_a_failure(self, sweeper):
        result = await sweeper.run()

        assert result.count == 0
        assert SweepSummaryResponse.from_result(result).message == "No overdue issues to escalate"


class TestEscalationAlerts:

    @pytest.mark.asyncio
    async def test_alert_sent_per_escalation(self, issue_repo, activity_repo, comment_repo, config_provider, clock):
        notifier = RecordingNotifier()
        sweeper = EscalationSweeper(
            issue_repo, activity_repo, comment_repo, config_provider, clock, notifier=notifier
        )
        issue = _overdue(issue_repo, hours=4)

        await sweeper.run()

        assert notifier.escalated == [(issue.id, 1, 4)]

    @pytest.mark.asyncio
    async def test_alert_failure_does_not_change_result(
        self, issue_repo, activity_repo, comment_repo, config_provider, clock
    ):
        sweeper = EscalationSweeper(
            issue_repo, activity_repo, comment_repo, config_provider, clock,
            notifier=RecordingNotifier(fail=True)
        )
        issue = _overdue(issue_repo)

        result = await sweeper.run()

        assert result.ids == [issue.id]

    @pytest.mark.asyncio
    async def test_alerts_sent_after_all_writes(
        self, issue_repo, activity_repo, comment_repo, config_provider, clock
    ):
        writes_seen = []

        class WriteCountingNotifier(RecordingNotifier):
            async def notify_escalated(self, issue, escalation_count, hours_overdue):
                writes_seen.append(len(issue_repo.update_calls))
                return await super().notify_escalated(issue, escalation_count, hours_overdue)

        sweeper = EscalationSweeper(
            issue_repo, activity_repo, comment_repo, config_provider, clock,
            notifier=WriteCountingNotifier()
        )
        for hours in (3, 2, 1):
            _overdue(issue_repo, hours=hours)

        await sweeper.run()

        assert writes_seen == [3, 3, 3]

    @pytest.mark.asyncio
    async def test_unreachable_webhook_tried_once_per_run(
        self, issue_repo, activity_repo, comment_repo, config_provider, clock
    ):
        notifier = RecordingNotifier(fail=True)
        sweeper = EscalationSweeper(
            issue_repo, activity_repo, comment_repo, config_provider, clock, notifier=notifier
        )
        issues = [_overdue(issue_repo, hours=hours) for hours in (3, 2, 1)]

        result = await sweeper.run()

        assert notifier.attempts == 1
        assert result.ids == [issue.id for issue in issues]


class TestEndToEnd:

    @pytest.mark.asyncio
    async def test_critical_issue_escalates_after_its_window(
        self, issue_repo, activity_repo, comment_repo, profile_repo, config_provider, balancer, clock
    ):
        service = IssueService(
            issue_repo, activity_repo, comment_repo, profile_repo,
            config_provider, balancer, clock
        )
        sweeper = EscalationSweeper(issue_repo, activity_repo, comment_repo, config_provider, clock)

        issue = await service.report_issue(
            reporter_id="citizen-1",
            title="Burst water main",
            description="Water flooding the junction",
            category="water_supply",
            priority=IssuePriority.CRITICAL,
        )
        window = config_provider.get_config().get_sla_window(IssuePriority.CRITICAL)
        assert issue.sla_deadline == T0 + window

        clock.advance(hours=window.total_seconds() / 3600 + 1)
        await sweeper.run()

        stored = issue_repo.issues[issue.id]
        assert stored.status == IssueStatus.ESCALATED
        assert stored.escalation_count == 1

        await sweeper.run()

        assert issue_repo.issues[issue.id].escalation_count == 2
