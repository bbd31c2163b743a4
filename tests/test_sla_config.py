"""Policy file loading, Slack alerts and the sweep scheduler."""

import httpx
import pytest

from civic_sla.config import IssuePriority, IssueStatus
from civic_sla.core import ConfigurationException, ExternalServiceException
from civic_sla.sla.infrastructure import (
    CircuitBreaker,
    CircuitState,
    SLAConfigManager,
    SLAScheduler,
    SlackClient,
)

from tests.fakes import T0, make_issue


class TestSLAConfigManager:

    def test_loads_yaml_policy(self, tmp_path):
        path = tmp_path / "sla_config.yaml"
        path.write_text("sla_hours:\n  critical: 12\n  high: 36\nnotification_window_minutes: 60\n")
        manager = SLAConfigManager()

        config = manager.load(path)

        assert config.sla_hours["critical"] == 12
        assert config.sla_hours["medium"] == 72
        assert manager.get_config().notification_window_minutes == 60

    def test_missing_file_uses_defaults(self, tmp_path):
        manager = SLAConfigManager()

        config = manager.load(tmp_path / "absent.yaml")

        assert config.sla_hours["critical"] == 24

    def test_invalid_policy_rejected_on_load(self, tmp_path):
        path = tmp_path / "sla_config.yaml"
        path.write_text("sla_hours:\n  critical: 200\n  high: 48\n")

        with pytest.raises(ConfigurationException):
            SLAConfigManager().load(path)

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "sla_config.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ConfigurationException):
            SLAConfigManager().load(path)

    def test_reload_replaces_policy(self, tmp_path):
        path = tmp_path / "sla_config.yaml"
        path.write_text("sla_hours:\n  critical: 12\n")
        manager = SLAConfigManager()
        manager.load(path)

        path.write_text("sla_hours:\n  critical: 6\n")

        assert manager.reload() is True
        assert manager.get_config().sla_hours["critical"] == 6

    def test_bad_reload_keeps_previous_policy(self, tmp_path):
        path = tmp_path / "sla_config.yaml"
        path.write_text("sla_hours:\n  critical: 12\n")
        manager = SLAConfigManager()
        manager.load(path)

        path.write_text("sla_hours: [unclosed\n")

        assert manager.reload() is False
        assert manager.get_config().sla_hours["critical"] == 12

    def test_get_config_before_load(self):
        with pytest.raises(RuntimeError):
            SLAConfigManager().get_config()

    def test_watch_skipped_for_missing_file(self, tmp_path):
        manager = SLAConfigManager()
        manager.load(tmp_path / "absent.yaml")

        manager.start_watching()

        assert not manager.is_watching
        manager.stop_watching()


class TestCircuitBreaker:

    def test_opens_after_threshold(self):
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=30, clock=lambda: 0.0)

        breaker.record_failure()
        assert breaker.allow_request()

        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN
        assert not breaker.allow_request()

    def test_half_open_after_timeout(self):
        now = [0.0]
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=30, clock=lambda: now[0])
        breaker.record_failure()

        now[0] = 31.0

        assert breaker.state == CircuitState.HALF_OPEN
        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED

    def test_half_open_failure_reopens(self):
        now = [0.0]
        breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=30, clock=lambda: now[0])
        for _ in range(3):
            breaker.record_failure()
        now[0] = 40.0
        assert breaker.state == CircuitState.HALF_OPEN

        breaker.record_failure()

        assert breaker.state == CircuitState.OPEN


def _slack(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SlackClient(
        "https://hooks.slack.example/T000/B000",
        "#civic-sla",
        backoff_base=0,
        http_client=client,
        **kwargs
    )


def _issue():
    return make_issue(
        issue_id="issue-1",
        status=IssueStatus.ESCALATED,
        priority=IssuePriority.CRITICAL,
        sla_deadline=T0,
    )


class TestSlackClient:

    @pytest.mark.asyncio
    async def test_unconfigured_client_skips(self):
        client = SlackClient(None, "#civic-sla")

        assert not client.is_configured
        assert await client.notify_escalated(_issue(), 1, 2) is False

    @pytest.mark.asyncio
    async def test_posts_escalation_message(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, text="ok")

        client = _slack(handler)

        assert await client.notify_escalated(_issue(), 2, 5) is True

        [request] = requests
        body = request.read().decode()
        assert "#civic-sla" in body
        assert "Escalation Level" in body
        await client.close()

    @pytest.mark.asyncio
    async def test_retries_then_raises(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        client = _slack(handler, max_retries=3)

        with pytest.raises(ExternalServiceException) as exc_info:
            await client.notify_approaching(_issue(), 1)

        assert len(calls) == 3
        assert exc_info.value.service_name == "slack"
        await client.close()

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = _slack(handler, max_retries=2)

        with pytest.raises(ExternalServiceException):
            await client.send({"text": "hi"}, "issue-1")
        await client.close()

    @pytest.mark.asyncio
    async def test_recovers_on_retry(self):
        responses = iter([httpx.Response(503), httpx.Response(200)])
        client = _slack(lambda request: next(responses))

        assert await client.send({"text": "hi"}, "issue-1") is True
        await client.close()

    def test_approaching_message_shape(self):
        client = SlackClient("https://hooks.slack.example/x", "#alerts")

        message = client.build_approaching_message(_issue(), 3)

        assert message["channel"] == "#alerts"
        assert message["blocks"][0]["type"] == "header"
        assert "*Time Remaining:*\n3h" in [f["text"] for f in message["blocks"][1]["fields"]]


class TestSLAScheduler:

    @pytest.mark.asyncio
    async def test_zero_interval_disables_job(self):
        async def job():
            return None

        scheduler = SLAScheduler()
        scheduler.add_job("escalation", job, 0)
        scheduler.add_job("notification", job, 300)

        assert scheduler.job_ids == ["notification"]

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        async def job():
            return None

        scheduler = SLAScheduler()
        scheduler.add_job("escalation", job, 300)

        await scheduler.start()
        assert scheduler.is_running

        await scheduler.stop()
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_no_jobs_means_not_started(self):
        scheduler = SLAScheduler()

        await scheduler.start()

        assert not scheduler.is_running
