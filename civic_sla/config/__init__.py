"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="civic-sla", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/civic_issues",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Policy ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to SLA policy YAML file"
    )
    escalation_interval_seconds: int = Field(
        default=300,
        description="Seconds between escalation sweeps (0 disables the in-process job)",
        ge=0
    )
    notification_interval_seconds: int = Field(
        default=900,
        description="Seconds between notification sweeps (0 disables the in-process job)",
        ge=0
    )
    system_actor_id: Optional[str] = Field(
        default=None,
        description="Profile id used as author of system comments (falls back to the reporter)"
    )

    # ========== Directory ==========
    max_admins: int = Field(default=2, description="Maximum number of admin profiles", ge=1)

    # ========== Slack Integration ==========
    slack_webhook_url: Optional[str] = Field(
        default=None,
        description="Slack webhook URL for SLA alerts"
    )
    slack_channel: str = Field(
        default="#civic-sla-alerts",
        description="Slack channel for SLA alerts"
    )
    slack_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for Slack API calls",
        ge=0.1,
        le=30
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class UserRole(str, Enum):
    """Profile roles."""
    CITIZEN = "citizen"
    L1_OFFICER = "l1_officer"
    L2_OFFICER = "l2_officer"
    ADMIN = "admin"


class IssueStatus(str, Enum):
    """Issue lifecycle statuses."""
    SUBMITTED = "submitted"
    ASSIGNED_L1 = "assigned_l1"
    ASSIGNED_L2 = "assigned_l2"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"
    ESCALATED = "escalated"


class IssuePriority(str, Enum):
    """Issue priority levels, most urgent first."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class IssueCategory(str, Enum):
    """Kinds of civic issue a citizen can report."""
    POTHOLE = "pothole"
    STREETLIGHT = "streetlight"
    GARBAGE = "garbage"
    WATER_SUPPLY = "water_supply"
    SEWAGE = "sewage"
    TRAFFIC = "traffic"
    PARK = "park"
    OTHER = "other"


class ActivityAction(str, Enum):
    """Action tags written to the activity log."""
    AUTO_ASSIGNED_L1 = "auto_assigned_l1"
    ASSIGNED_L1 = "assigned_l1"
    ASSIGNED_L2 = "assigned_l2"
    WORK_STARTED = "work_started"
    RESOLVED = "resolved"
    CLOSED = "closed"
    PRIORITY_CHANGED = "priority_changed"
    AUTO_ESCALATED = "auto_escalated"
    ADMIN_UPDATED = "admin_updated"
    ADMIN_OVERRIDE = "admin_override"


# ========== Lists for validation ==========

# Ordered most urgent first; SLA windows must not shrink along this list.
PRIORITY_ORDER = [
    IssuePriority.CRITICAL, IssuePriority.HIGH,
    IssuePriority.MEDIUM, IssuePriority.LOW
]
TERMINAL_STATUSES = frozenset({IssueStatus.RESOLVED, IssueStatus.CLOSED})
ACTIVE_STATUSES = frozenset(set(IssueStatus) - TERMINAL_STATUSES)
# Statuses that count against an L1 officer's load.
OPEN_L1_STATUSES = frozenset({
    IssueStatus.ASSIGNED_L1, IssueStatus.ASSIGNED_L2, IssueStatus.IN_PROGRESS
})
