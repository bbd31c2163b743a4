"""
SLA Application DTOs
=====================

Data Transfer Objects for SLA API layer.

Sweep summaries are ``{message, count, ids}``; the metrics snapshot is
serialized with camelCase keys.
"""

from datetime import datetime
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field

from civic_sla.sla.domain import SweepResult, SLAMetrics, OverdueIssue, CriticalIssue


# ========== Type Aliases for Literals ==========
PriorityStr = Literal["critical", "high", "medium", "low"]


_SWEEP_MESSAGES = {
    "escalation": ("No overdue issues to escalate", "Successfully escalated {count} issue(s)"),
    "notification": ("No urgent notifications to send", "Sent {count} notification(s)"),
}


# ========== Response DTOs ==========

class SweepSummaryResponse(BaseModel):
    """Outcome of a sweep trigger."""
    message: str = Field(..., description="Human readable summary")
    count: int = Field(..., ge=0, description="Issues acted on")
    ids: List[str] = Field(default_factory=list, description="Ids of issues acted on")

    @classmethod
    def from_result(cls, result: SweepResult) -> "SweepSummaryResponse":
        empty, done = _SWEEP_MESSAGES[result.sweep]
        message = empty if result.attempted == 0 else done.format(count=result.count)
        return cls(message=message, count=result.count, ids=list(result.ids))


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class OverdueIssueResponse(_CamelModel):
    id: str
    title: str
    priority: PriorityStr
    sla_deadline: datetime
    hours_overdue: int = Field(..., alias="hoursOverdue")

    @classmethod
    def from_domain(cls, item: OverdueIssue) -> "OverdueIssueResponse":
        return cls(
            id=item.id,
            title=item.title,
            priority=item.priority,
            sla_deadline=item.sla_deadline,
            hours_overdue=item.hours_overdue,
        )


class CriticalIssueResponse(_CamelModel):
    id: str
    title: str
    sla_deadline: datetime
    hours_remaining: int = Field(..., alias="hoursRemaining")

    @classmethod
    def from_domain(cls, item: CriticalIssue) -> "CriticalIssueResponse":
        return cls(
            id=item.id,
            title=item.title,
            sla_deadline=item.sla_deadline,
            hours_remaining=item.hours_remaining,
        )


class SLAMetricsResponse(_CamelModel):
    """Current SLA snapshot over active issues."""
    total_issues: int = Field(..., alias="totalIssues")
    overdue_issues: int = Field(..., alias="overdueIssues")
    critical_issues: int = Field(..., alias="criticalIssues")
    overdue_list: List[OverdueIssueResponse] = Field(default_factory=list, alias="overdueList")
    critical_list: List[CriticalIssueResponse] = Field(default_factory=list, alias="criticalList")

    @classmethod
    def from_domain(cls, metrics: SLAMetrics) -> "SLAMetricsResponse":
        return cls(
            total_issues=metrics.total_issues,
            overdue_issues=metrics.overdue_count,
            critical_issues=metrics.critical_count,
            overdue_list=[OverdueIssueResponse.from_domain(i) for i in metrics.overdue],
            critical_list=[CriticalIssueResponse.from_domain(i) for i in metrics.critical],
        )
