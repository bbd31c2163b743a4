"""
Issue State Machine
===================

Permitted status transitions and which roles may fire them.

Automated components (balancer, sweepers) and the officer workflow
validate against this table. Admin overrides may bypass it; the
bypass is recorded in the activity log by the workflow service.

    submitted -> assigned_l1 -> assigned_l2 -> in_progress -> resolved -> closed
    any active status -> escalated
    escalated -> in_progress
    escalated -> assigned_l1 | assigned_l2   (only onto an empty slot)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional

from civic_sla.config import IssueStatus, UserRole, ACTIVE_STATUSES
from civic_sla.core import ForbiddenActionException, InvalidTransitionException


class Trigger(str, Enum):
    """Events that move an issue between statuses."""
    AUTO_ASSIGN = "auto_assign"
    ASSIGN_L1 = "assign_l1"
    ASSIGN_L2 = "assign_l2"
    START_WORK = "start_work"
    RESOLVE = "resolve"
    ESCALATE = "escalate"
    CLOSE = "close"


@dataclass(frozen=True)
class Transition:
    """
    A single edge set of the state graph.

    An empty ``roles`` set marks a system-only trigger that no profile
    may fire by hand.
    """
    trigger: Trigger
    sources: FrozenSet[IssueStatus]
    target: IssueStatus
    roles: FrozenSet[UserRole] = frozenset()

    @property
    def is_system(self) -> bool:
        return not self.roles


INITIAL_STATUS = IssueStatus.SUBMITTED

TRANSITIONS: Dict[Trigger, Transition] = {
    Trigger.AUTO_ASSIGN: Transition(
        Trigger.AUTO_ASSIGN,
        frozenset({IssueStatus.SUBMITTED}),
        IssueStatus.ASSIGNED_L1,
    ),
    Trigger.ASSIGN_L1: Transition(
        Trigger.ASSIGN_L1,
        frozenset({IssueStatus.SUBMITTED, IssueStatus.ESCALATED}),
        IssueStatus.ASSIGNED_L1,
        frozenset({UserRole.L1_OFFICER, UserRole.ADMIN}),
    ),
    Trigger.ASSIGN_L2: Transition(
        Trigger.ASSIGN_L2,
        frozenset({IssueStatus.ASSIGNED_L1, IssueStatus.ESCALATED}),
        IssueStatus.ASSIGNED_L2,
        frozenset({UserRole.L1_OFFICER, UserRole.ADMIN}),
    ),
    Trigger.START_WORK: Transition(
        Trigger.START_WORK,
        frozenset({IssueStatus.ASSIGNED_L2, IssueStatus.ESCALATED}),
        IssueStatus.IN_PROGRESS,
        frozenset({UserRole.L2_OFFICER, UserRole.ADMIN}),
    ),
    Trigger.RESOLVE: Transition(
        Trigger.RESOLVE,
        frozenset({IssueStatus.IN_PROGRESS}),
        IssueStatus.RESOLVED,
        frozenset({UserRole.L2_OFFICER, UserRole.ADMIN}),
    ),
    Trigger.ESCALATE: Transition(
        Trigger.ESCALATE,
        ACTIVE_STATUSES,
        IssueStatus.ESCALATED,
    ),
    Trigger.CLOSE: Transition(
        Trigger.CLOSE,
        frozenset(set(IssueStatus) - {IssueStatus.CLOSED}),
        IssueStatus.CLOSED,
        frozenset({UserRole.L1_OFFICER, UserRole.L2_OFFICER, UserRole.ADMIN}),
    ),
}


def can_transition(current: IssueStatus, target: IssueStatus) -> bool:
    """Whether any trigger in the table leads from ``current`` to ``target``."""
    return any(
        current in t.sources and t.target == target
        for t in TRANSITIONS.values()
    )


def validate_transition(
    issue_id: str,
    current: IssueStatus,
    trigger: Trigger,
    role: Optional[UserRole] = None,
    actor_id: Optional[str] = None,
) -> Transition:
    """
    Check a trigger against the table and return the matching transition.

    ``role`` is None for system triggers. A profile firing a system-only
    trigger, or a role outside the allowed set, is forbidden.

    Raises:
        ForbiddenActionException: role may not fire the trigger
        InvalidTransitionException: current status is not a source
    """
    transition = TRANSITIONS[trigger]

    if role is not None and role not in transition.roles:
        raise ForbiddenActionException(actor_id, role.value, trigger.value)
    if role is None and not transition.is_system:
        raise ForbiddenActionException(actor_id, None, trigger.value)

    if current not in transition.sources:
        raise InvalidTransitionException(issue_id, current.value, trigger.value)

    return transition
