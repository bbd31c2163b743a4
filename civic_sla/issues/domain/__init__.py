"""
Issues Domain Layer
===================

Domain layer for the civic issue tracking module.

Contains:
- Entities: Issue, Profile, ActivityLogEntry, IssueComment
- Value Objects: IssueQuery predicates
- State Machine: permitted transitions and the roles allowed to fire them

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from civic_sla.issues.domain.entities import (
    Issue,
    Profile,
    ActivityLogEntry,
    IssueComment,
)
from civic_sla.issues.domain.value_objects import IssueQuery
from civic_sla.issues.domain.state_machine import (
    Trigger,
    Transition,
    TRANSITIONS,
    INITIAL_STATUS,
    can_transition,
    validate_transition,
)

__all__ = [
    # Entities
    "Issue",
    "Profile",
    "ActivityLogEntry",
    "IssueComment",
    # Value Objects
    "IssueQuery",
    # State Machine
    "Trigger",
    "Transition",
    "TRANSITIONS",
    "INITIAL_STATUS",
    "can_transition",
    "validate_transition",
]
