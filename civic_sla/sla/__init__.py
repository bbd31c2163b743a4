"""
SLA Monitoring Module
=====================

Bounded Context for Service Level Agreement tracking and escalation.

Responsibilities:
- Map issue priority to a resolution window and stamp deadlines
- Report remaining / overdue time for an issue
- Escalation sweep: escalate active issues past their deadline
- Notification sweep: remind on issues nearing their deadline
- SLA metrics read model for the admin monitor
- Hot-reloaded YAML policy, Slack alerts and scheduled sweeps
"""

__version__ = "1.0.0"
