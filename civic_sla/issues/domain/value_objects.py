"""
Issue Value Objects
===================

Immutable predicates over issues.

An ``IssueQuery`` is both the scan filter a repository evaluates and the
precondition a guarded write re-checks against current store state.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import FrozenSet, Optional

from civic_sla.config import IssueStatus
from civic_sla.issues.domain.entities import Issue


@dataclass(frozen=True)
class IssueQuery:
    """
    Conjunction of optional conditions on an issue.

    Deadline bounds are strict; an issue without a deadline never
    satisfies a deadline bound.
    """
    status_in: Optional[FrozenSet[IssueStatus]] = None
    status_not_in: Optional[FrozenSet[IssueStatus]] = None
    deadline_before: Optional[datetime] = None
    deadline_after: Optional[datetime] = None
    l1_unassigned: bool = False
    l2_unassigned: bool = False
    escalation_count: Optional[int] = None
    order_by_deadline: bool = False

    def matches(self, issue: Issue) -> bool:
        if self.status_in is not None and issue.status not in self.status_in:
            return False
        if self.status_not_in is not None and issue.status in self.status_not_in:
            return False
        if self.deadline_before is not None:
            if issue.sla_deadline is None or not issue.sla_deadline < self.deadline_before:
                return False
        if self.deadline_after is not None:
            if issue.sla_deadline is None or not issue.sla_deadline > self.deadline_after:
                return False
        if self.l1_unassigned and issue.assigned_l1_id is not None:
            return False
        if self.l2_unassigned and issue.assigned_l2_id is not None:
            return False
        if self.escalation_count is not None and issue.escalation_count != self.escalation_count:
            return False
        return True

    def with_escalation_count(self, count: int) -> "IssueQuery":
        """Same predicate, additionally pinned to an observed escalation_count."""
        return replace(self, escalation_count=count)
