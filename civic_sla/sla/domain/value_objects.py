"""
SLA Value Objects
==================

Immutable value objects for SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict

from pydantic import BaseModel, Field, field_validator

from civic_sla.config import IssuePriority, PRIORITY_ORDER

SECONDS_PER_HOUR = 3600

DEFAULT_SLA_HOURS = {
    IssuePriority.CRITICAL.value: 24,
    IssuePriority.HIGH.value: 48,
    IssuePriority.MEDIUM.value: 72,
    IssuePriority.LOW.value: 120,
}


@dataclass(frozen=True)
class TimeRemaining:
    """
    Signed distance from now to an SLA deadline.

    ``amount`` is in ``unit`` ("h" or "d"), always non-negative; the sign
    lives in ``is_overdue``. Overdue time is always reported in hours.
    """
    amount: int
    unit: str
    is_overdue: bool
    seconds: float

    @property
    def text(self) -> str:
        if self.is_overdue:
            return f"{self.amount}h overdue"
        return f"{self.amount}{self.unit} remaining"


class SLACalculator:
    """
    Pure functions for SLA calculations.

    Stateless utility class - all deadline arithmetic in one place.
    """

    @staticmethod
    def calculate_deadline(created_at: datetime, window: timedelta) -> datetime:
        """Deadline is creation time plus the priority's window."""
        return created_at + window

    @staticmethod
    def hours_overdue(deadline: datetime, now: datetime) -> int:
        """Whole hours past the deadline (0 if not yet past)."""
        elapsed = (now - deadline).total_seconds()
        if elapsed <= 0:
            return 0
        return int(elapsed // SECONDS_PER_HOUR)

    @staticmethod
    def hours_remaining(deadline: datetime, now: datetime) -> int:
        """Whole hours until the deadline (0 if already past)."""
        remaining = (deadline - now).total_seconds()
        if remaining <= 0:
            return 0
        return int(remaining // SECONDS_PER_HOUR)

    @staticmethod
    def time_remaining(deadline: datetime, now: datetime) -> TimeRemaining:
        """
        Report time left relative to ``now``.

        Overdue only when ``now`` is strictly after the deadline, so the
        deadline instant itself reads "0h remaining". Under a day left is
        reported in hours, otherwise in whole days.
        """
        seconds = (deadline - now).total_seconds()

        if seconds < 0:
            return TimeRemaining(
                amount=int(-seconds // SECONDS_PER_HOUR),
                unit="h",
                is_overdue=True,
                seconds=seconds,
            )

        hours = int(seconds // SECONDS_PER_HOUR)
        if hours < 24:
            return TimeRemaining(amount=hours, unit="h", is_overdue=False, seconds=seconds)

        return TimeRemaining(amount=hours // 24, unit="d", is_overdue=False, seconds=seconds)


class SLAConfig(BaseModel):
    """
    SLA policy loaded from YAML.

    Resolution window per priority, plus the windows used by the
    notification sweep and the metrics read model.
    """
    sla_hours: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_SLA_HOURS),
        description="Resolution window in hours by priority"
    )
    notification_window_minutes: int = Field(
        default=120,
        ge=1,
        description="How far ahead of a deadline the notification sweep looks"
    )
    critical_watch_hours: int = Field(
        default=24,
        ge=1,
        description="Critical issues due within this many hours are listed by the metrics view"
    )

    @field_validator("sla_hours")
    @classmethod
    def validate_sla_hours(cls, v: Dict[str, float]) -> Dict[str, float]:
        """Fill missing priorities and enforce monotonic windows."""
        unknown = set(v) - set(DEFAULT_SLA_HOURS)
        if unknown:
            raise ValueError(f"unknown priorities in sla_hours: {sorted(unknown)}")

        hours = {**DEFAULT_SLA_HOURS, **v}

        for priority, value in hours.items():
            if value <= 0:
                raise ValueError(f"sla_hours[{priority}] must be positive")

        ordered = [hours[p.value] for p in PRIORITY_ORDER]
        for more_urgent, less_urgent in zip(ordered, ordered[1:]):
            if more_urgent > less_urgent:
                raise ValueError(
                    "sla_hours must not decrease from critical to low: "
                    f"{dict(zip([p.value for p in PRIORITY_ORDER], ordered))}"
                )

        return hours

    def get_sla_window(self, priority: IssuePriority) -> timedelta:
        """Resolution window for a priority."""
        return timedelta(hours=self.sla_hours[IssuePriority(priority).value])

    def deadline_for(self, priority: IssuePriority, created_at: datetime) -> datetime:
        return SLACalculator.calculate_deadline(created_at, self.get_sla_window(priority))

    @property
    def notification_window(self) -> timedelta:
        return timedelta(minutes=self.notification_window_minutes)

    @property
    def critical_watch_window(self) -> timedelta:
        return timedelta(hours=self.critical_watch_hours)


class ISLAConfigProvider(ABC):
    """Interface for SLA configuration access."""

    @abstractmethod
    def get_config(self) -> SLAConfig:
        """Get current SLA configuration."""


class StaticConfigProvider(ISLAConfigProvider):
    """Serves a fixed policy; used where hot reload is not wanted."""

    def __init__(self, config: SLAConfig):
        self._config = config

    def get_config(self) -> SLAConfig:
        return self._config
