"""
SLA Application Layer
======================

Application layer for SLA monitoring module.

Contains:
- Services: Escalation and notification sweeps, SLA metrics
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from civic_sla.sla.application.dto import (
    SweepSummaryResponse,
    OverdueIssueResponse,
    CriticalIssueResponse,
    SLAMetricsResponse,
)
from civic_sla.sla.application.services import (
    EscalationSweeper,
    NotificationSweeper,
    SLAMonitorService,
    ISLAAlertNotifier,
    escalation_comment,
    approaching_comment,
    ESCALATION_SWEEP,
    NOTIFICATION_SWEEP,
)

__all__ = [
    # DTOs
    "SweepSummaryResponse",
    "OverdueIssueResponse",
    "CriticalIssueResponse",
    "SLAMetricsResponse",
    # Services
    "EscalationSweeper",
    "NotificationSweeper",
    "SLAMonitorService",
    "ISLAAlertNotifier",
    "escalation_comment",
    "approaching_comment",
    "ESCALATION_SWEEP",
    "NOTIFICATION_SWEEP",
]
