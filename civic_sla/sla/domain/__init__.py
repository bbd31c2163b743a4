"""
SLA Domain Layer
================

Domain layer for SLA monitoring module.

Contains:
- Entities: Sweep results and the SLA metrics snapshot
- Value Objects: SLAConfig policy table, TimeRemaining
- Domain Services: Stateless deadline arithmetic (SLACalculator)

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from civic_sla.sla.domain.entities import (
    SweepResult,
    OverdueIssue,
    CriticalIssue,
    SLAMetrics,
)
from civic_sla.sla.domain.value_objects import (
    SLACalculator,
    SLAConfig,
    TimeRemaining,
    ISLAConfigProvider,
    StaticConfigProvider,
    DEFAULT_SLA_HOURS,
)

__all__ = [
    # Entities
    "SweepResult",
    "OverdueIssue",
    "CriticalIssue",
    "SLAMetrics",
    # Value Objects & Services
    "SLACalculator",
    "SLAConfig",
    "TimeRemaining",
    "ISLAConfigProvider",
    "StaticConfigProvider",
    "DEFAULT_SLA_HOURS",
]
