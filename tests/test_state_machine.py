"""Issue state machine: permitted transitions and who may fire them."""

import pytest

from civic_sla.config import IssueStatus, UserRole, ACTIVE_STATUSES, TERMINAL_STATUSES
from civic_sla.core import ForbiddenActionException, InvalidTransitionException
from civic_sla.issues.domain import (
    Trigger, TRANSITIONS, INITIAL_STATUS, can_transition, validate_transition,
)


def test_new_issues_start_submitted():
    assert INITIAL_STATUS == IssueStatus.SUBMITTED


@pytest.mark.parametrize("current, target", [
    (IssueStatus.SUBMITTED, IssueStatus.ASSIGNED_L1),
    (IssueStatus.ASSIGNED_L1, IssueStatus.ASSIGNED_L2),
    (IssueStatus.ASSIGNED_L2, IssueStatus.IN_PROGRESS),
    (IssueStatus.ESCALATED, IssueStatus.IN_PROGRESS),
    (IssueStatus.ESCALATED, IssueStatus.ASSIGNED_L1),
    (IssueStatus.ESCALATED, IssueStatus.ASSIGNED_L2),
    (IssueStatus.IN_PROGRESS, IssueStatus.RESOLVED),
    (IssueStatus.RESOLVED, IssueStatus.CLOSED),
])
def test_forward_path_is_allowed(current, target):
    assert can_transition(current, target)


@pytest.mark.parametrize("current, target", [
    (IssueStatus.SUBMITTED, IssueStatus.IN_PROGRESS),
    (IssueStatus.ASSIGNED_L1, IssueStatus.RESOLVED),
    (IssueStatus.RESOLVED, IssueStatus.IN_PROGRESS),
    (IssueStatus.CLOSED, IssueStatus.SUBMITTED),
    (IssueStatus.RESOLVED, IssueStatus.ESCALATED),
])
def test_illegal_jumps_are_rejected(current, target):
    assert not can_transition(current, target)


def test_every_active_status_can_escalate():
    for status in ACTIVE_STATUSES:
        assert can_transition(status, IssueStatus.ESCALATED)


def test_terminal_statuses_never_escalate():
    for status in TERMINAL_STATUSES:
        assert status not in TRANSITIONS[Trigger.ESCALATE].sources


def test_system_triggers_have_no_roles():
    assert TRANSITIONS[Trigger.AUTO_ASSIGN].is_system
    assert TRANSITIONS[Trigger.ESCALATE].is_system
    assert not TRANSITIONS[Trigger.RESOLVE].is_system


class TestValidateTransition:

    def test_returns_transition_for_allowed_role(self):
        transition = validate_transition("i-1", IssueStatus.IN_PROGRESS, Trigger.RESOLVE, UserRole.L2_OFFICER)

        assert transition.target == IssueStatus.RESOLVED

    def test_system_trigger_without_role(self):
        transition = validate_transition("i-1", IssueStatus.ASSIGNED_L2, Trigger.ESCALATE)

        assert transition.target == IssueStatus.ESCALATED

    def test_wrong_source_status(self):
        with pytest.raises(InvalidTransitionException) as exc_info:
            validate_transition("i-1", IssueStatus.SUBMITTED, Trigger.RESOLVE, UserRole.L2_OFFICER)

        assert exc_info.value.details["status"] == "submitted"
        assert exc_info.value.details["trigger"] == "resolve"

    def test_citizen_cannot_resolve(self):
        with pytest.raises(ForbiddenActionException):
            validate_transition("i-1", IssueStatus.IN_PROGRESS, Trigger.RESOLVE, UserRole.CITIZEN, "citizen-1")

    def test_l1_cannot_start_work(self):
        with pytest.raises(ForbiddenActionException):
            validate_transition("i-1", IssueStatus.ASSIGNED_L2, Trigger.START_WORK, UserRole.L1_OFFICER)

    def test_profiles_cannot_fire_system_triggers(self):
        with pytest.raises(ForbiddenActionException):
            validate_transition("i-1", IssueStatus.IN_PROGRESS, Trigger.ESCALATE, UserRole.ADMIN)

    def test_manual_trigger_requires_a_role(self):
        with pytest.raises(ForbiddenActionException):
            validate_transition("i-1", IssueStatus.IN_PROGRESS, Trigger.RESOLVE)

    def test_role_checked_before_status(self):
        with pytest.raises(ForbiddenActionException):
            validate_transition("i-1", IssueStatus.CLOSED, Trigger.RESOLVE, UserRole.CITIZEN)

    def test_closed_issue_cannot_be_closed_again(self):
        with pytest.raises(InvalidTransitionException):
            validate_transition("i-1", IssueStatus.CLOSED, Trigger.CLOSE, UserRole.ADMIN)
