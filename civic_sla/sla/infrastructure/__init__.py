"""
SLA Infrastructure Layer
========================

External integrations for the SLA module: policy file loading, Slack
alerts and the background scheduler.
"""

from civic_sla.sla.infrastructure.external import (
    SLAConfigManager,
    ConfigFileHandler,
    CircuitBreaker,
    CircuitState,
    SlackClient,
    SLAScheduler,
    get_config_manager,
)

__all__ = [
    "SLAConfigManager",
    "ConfigFileHandler",
    "CircuitBreaker",
    "CircuitState",
    "SlackClient",
    "SLAScheduler",
    "get_config_manager",
]
