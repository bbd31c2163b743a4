"""
SLA Domain Entities
====================

Results produced by the sweeps and the SLA metrics read model.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass
class SweepResult:
    """
    Aggregate outcome of one sweep invocation.

    ``ids`` lists issues the sweep acted on, in processing order.
    ``skipped`` are issues whose precondition no longer held at write
    time; ``failed`` are issues whose write raised.
    """
    sweep: str
    started_at: datetime
    ids: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    finished_at: Optional[datetime] = None

    @property
    def count(self) -> int:
        return len(self.ids)

    @property
    def attempted(self) -> int:
        return len(self.ids) + len(self.skipped) + len(self.failed)

    @property
    def all_failed(self) -> bool:
        """Every issue in a non-empty batch raised on write."""
        return bool(self.failed) and not self.ids and not self.skipped

    def mark_finished(self, timestamp: datetime) -> None:
        self.finished_at = timestamp


@dataclass
class OverdueIssue:
    """An active issue past its deadline."""
    id: str
    title: str
    priority: str
    sla_deadline: datetime
    hours_overdue: int


@dataclass
class CriticalIssue:
    """An active critical-priority issue due soon."""
    id: str
    title: str
    sla_deadline: datetime
    hours_remaining: int


@dataclass
class SLAMetrics:
    """Point-in-time SLA snapshot over all active issues."""
    total_issues: int
    overdue: List[OverdueIssue] = field(default_factory=list)
    critical: List[CriticalIssue] = field(default_factory=list)

    @property
    def overdue_count(self) -> int:
        return len(self.overdue)

    @property
    def critical_count(self) -> int:
        return len(self.critical)
