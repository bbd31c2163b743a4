"""
SLA External Service Integrations
==================================

External services for SLA monitoring:
- YAML policy file loader with watchdog hot reload
- Slack webhook alerts with circuit breaker and retries
- APScheduler for the background sweeps
"""

import asyncio
import threading
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from civic_sla.core import ConfigurationException, ExternalServiceException
from civic_sla.issues.domain import Issue
from civic_sla.shared.infrastructure.logging import get_logger
from civic_sla.sla.application.services import ISLAAlertNotifier
from civic_sla.sla.domain import ISLAConfigProvider, SLAConfig

logger = get_logger(__name__)


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for SLA policy file changes."""

    def __init__(self, config_manager: "SLAConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info(f"SLA policy file changed: {event.src_path}")
            self.config_manager.reload()


class SLAConfigManager(ISLAConfigProvider):
    """
    Thread-safe SLA policy provider with hot-reload support.

    Uses watchdog to monitor the YAML file and swap in a new policy
    without restarting the service. A reload that fails to parse or
    validate keeps the policy already in force.
    """

    def __init__(self):
        self._config: Optional[SLAConfig] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> SLAConfig:
        """
        Initial policy load.

        Raises:
            ConfigurationException: the file exists but is not a valid policy
        """
        self._path = Path(path)
        config = self._load_from_file(self._path)
        with self._lock:
            self._config = config

        logger.info(
            "SLA policy loaded",
            extra={"path": str(self._path), "sla_hours": config.sla_hours}
        )
        return config

    def _load_from_file(self, path: Path) -> SLAConfig:
        if not path.exists():
            logger.warning(f"SLA policy file not found: {path}, using defaults")
            return SLAConfig()

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ConfigurationException(
                    "SLA policy must be a mapping",
                    {"path": str(path)}
                )
            return SLAConfig(**data)
        except (OSError, yaml.YAMLError, ValidationError) as e:
            raise ConfigurationException(
                f"Invalid SLA policy file {path}: {e}",
                {"path": str(path)}
            ) from e

    def reload(self) -> bool:
        """Reload the policy from file; returns whether it was replaced."""
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except ConfigurationException as e:
            logger.error(f"Failed to reload SLA policy, keeping previous: {e.message}")
            return False

        with self._lock:
            self._config = new_config
        logger.info(
            "SLA policy reloaded successfully",
            extra={"sla_hours": new_config.sla_hours}
        )
        return True

    def start_watching(self) -> None:
        """
        Start watching the policy file for changes.

        Skips watching when the file doesn't exist or inotify is not
        available (e.g. some container runtimes).
        """
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                f"SLA policy file doesn't exist, skipping file watch: {self._path}. "
                "Using default SLA policy."
            )
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(
                handler,
                str(self._path.resolve().parent),
                recursive=False
            )
            self._observer.start()
            logger.info(f"Started watching SLA policy file: {self._path}")
        except OSError as e:
            logger.warning(f"File watching not available, using static policy: {e}")
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def is_watching(self) -> bool:
        return self._observer is not None

    def get_config(self) -> SLAConfig:
        with self._lock:
            if self._config is None:
                raise RuntimeError("SLA configuration not loaded")
            return self._config


_config_manager: Optional[SLAConfigManager] = None


def get_config_manager() -> SLAConfigManager:
    """Process-wide policy provider shared by the routers and the scheduler."""
    global _config_manager
    if _config_manager is None:
        _config_manager = SLAConfigManager()
    return _config_manager


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if self._clock() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = self._clock()

        if self._failure_count >= self.failure_threshold or self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


class SlackClient(ISLAAlertNotifier):
    """
    Slack webhook client with circuit breaker and retry logic.

    Handles sending SLA alerts to Slack with:
    - Circuit breaker to prevent cascade failures
    - Exponential backoff retry
    - Timeout handling

    Not configured or circuit open means the alert is skipped (False).
    Exhausted retries raise ExternalServiceException.
    """

    service_name = "slack"

    def __init__(
        self,
        webhook_url: Optional[str],
        channel: str,
        timeout_seconds: float = 5.0,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self._webhook_url = webhook_url
        self._channel = channel
        self._timeout = timeout_seconds
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._circuit_breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        self._http_client = http_client

    @property
    def is_configured(self) -> bool:
        return bool(self._webhook_url)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    def build_escalation_message(self, issue: Issue, escalation_count: int, hours_overdue: int) -> Dict[str, Any]:
        """Block Kit message for an escalated issue."""
        fields = [
            {"type": "mrkdwn", "text": f"*Issue:*\n{issue.id}"},
            {"type": "mrkdwn", "text": f"*Priority:*\n{issue.priority.value.title()}"},
            {"type": "mrkdwn", "text": f"*Escalation Level:*\n{escalation_count}"},
            {"type": "mrkdwn", "text": f"*Overdue By:*\n{hours_overdue}h"},
        ]
        return self._build_message(":rotating_light: SLA Breach - Issue Escalated", issue, fields)

    def build_approaching_message(self, issue: Issue, hours_remaining: int) -> Dict[str, Any]:
        """Block Kit message for an issue nearing its deadline."""
        fields = [
            {"type": "mrkdwn", "text": f"*Issue:*\n{issue.id}"},
            {"type": "mrkdwn", "text": f"*Priority:*\n{issue.priority.value.title()}"},
            {"type": "mrkdwn", "text": f"*Status:*\n{issue.status.value}"},
            {"type": "mrkdwn", "text": f"*Time Remaining:*\n{hours_remaining}h"},
        ]
        return self._build_message(":warning: SLA Deadline Approaching", issue, fields)

    def _build_message(self, header: str, issue: Issue, fields: List[Dict[str, Any]]) -> Dict[str, Any]:
        deadline = issue.sla_deadline.isoformat() if issue.sla_deadline else "n/a"
        blocks = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": header, "emoji": True}
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*{issue.title}*"},
                "fields": fields
            },
            {
                "type": "context",
                "elements": [
                    {
                        "type": "mrkdwn",
                        "text": f"Category: {issue.category.value} | Deadline: {deadline}"
                    }
                ]
            }
        ]
        return {"channel": self._channel, "blocks": blocks}

    async def notify_escalated(self, issue: Issue, escalation_count: int, hours_overdue: int) -> bool:
        return await self.send(
            self.build_escalation_message(issue, escalation_count, hours_overdue),
            issue.id
        )

    async def notify_approaching(self, issue: Issue, hours_remaining: int) -> bool:
        return await self.send(self.build_approaching_message(issue, hours_remaining), issue.id)

    async def send(self, message: Dict[str, Any], issue_id: str) -> bool:
        """
        Post a message to the webhook.

        Raises:
            ExternalServiceException: all retries failed
        """
        if not self._webhook_url:
            logger.debug("Slack webhook URL not configured, skipping notification")
            return False

        if not self._circuit_breaker.allow_request():
            logger.warning(
                "Circuit breaker open, skipping Slack notification",
                extra={"issue_id": issue_id}
            )
            return False

        last_error = "no attempts made"

        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._webhook_url, json=message)

                if response.status_code == 200:
                    self._circuit_breaker.record_success()
                    logger.info("Slack notification sent", extra={"issue_id": issue_id})
                    return True

                last_error = f"HTTP {response.status_code}"
                logger.warning(
                    "Slack webhook returned non-200",
                    extra={"status_code": response.status_code, "attempt": attempt + 1}
                )

            except httpx.HTTPError as e:
                last_error = str(e)
                logger.error(
                    "Slack notification failed",
                    extra={"error": str(e), "attempt": attempt + 1, "issue_id": issue_id}
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._backoff_base * 2 ** attempt)

        self._circuit_breaker.record_failure()
        raise ExternalServiceException(
            self.service_name,
            f"delivery failed after {self._max_retries} attempt(s): {last_error}",
            {"issue_id": issue_id}
        )

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


SweepJob = Callable[[], Awaitable[Any]]


class SLAScheduler:
    """
    Wrapper for APScheduler running the background sweeps.

    Each sweep is its own interval job with ``max_instances=1``, so a
    slow pass is never overlapped by the next one of the same kind.
    """

    def __init__(self):
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._jobs: Dict[str, tuple] = {}
        self._running = False

    def add_job(self, job_id: str, job_func: SweepJob, interval_seconds: int) -> None:
        """Register a sweep; an interval of 0 leaves it to external triggers."""
        if interval_seconds <= 0:
            logger.info(f"Job {job_id} disabled (interval 0)")
            return
        self._jobs[job_id] = (job_func, interval_seconds)

    async def start(self) -> None:
        if self._running:
            logger.warning("SLA scheduler already running")
            return

        if not self._jobs:
            logger.info("No SLA jobs registered, scheduler not started")
            return

        self._scheduler = AsyncIOScheduler()

        for job_id, (job_func, interval_seconds) in self._jobs.items():
            self._scheduler.add_job(
                job_func,
                "interval",
                seconds=interval_seconds,
                id=job_id,
                name=f"SLA {job_id} sweep",
                misfire_grace_time=60,
                max_instances=1,
                coalesce=True,
                replace_existing=True
            )

        self._scheduler.start()
        self._running = True

        logger.info(
            "SLA scheduler started",
            extra={"jobs": {job_id: interval for job_id, (_, interval) in self._jobs.items()}}
        )

    async def stop(self) -> None:
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=True)

        self._running = False
        logger.info("SLA scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def job_ids(self) -> List[str]:
        return list(self._jobs)
