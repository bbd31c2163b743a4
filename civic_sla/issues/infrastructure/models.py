"""
Issues Infrastructure Models
============================

SQLAlchemy ORM models for the issues module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from civic_sla.config import IssueCategory, IssuePriority, IssueStatus, UserRole
from civic_sla.infrastructure.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProfileModel(Base):
    """
    Database model for Profile entity.

    Maps to the 'profiles' table.
    """
    __tablename__ = "profiles"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False, index=True, default=UserRole.CITIZEN.value)
    department: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class IssueModel(Base):
    """
    Database model for Issue entity.

    Maps to the 'issues' table.
    """
    __tablename__ = "issues"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Content
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default=IssueCategory.OTHER.value)
    priority: Mapped[str] = mapped_column(String(50), nullable=False, default=IssuePriority.MEDIUM.value)
    status: Mapped[str] = mapped_column(String(50), nullable=False, index=True, default=IssueStatus.SUBMITTED.value)

    # Location
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Ownership
    reporter_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("profiles.id"), nullable=False)
    assigned_l1_id: Mapped[Optional[UUID]] = mapped_column(Uuid, ForeignKey("profiles.id"), nullable=True, index=True)
    assigned_l1_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    assigned_l2_id: Mapped[Optional[UUID]] = mapped_column(Uuid, ForeignKey("profiles.id"), nullable=True, index=True)
    assigned_l2_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # SLA tracking
    sla_deadline: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    escalation_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class ActivityLogModel(Base):
    """
    Database model for ActivityLogEntry.

    Maps to the append-only 'activity_log' table.
    """
    __tablename__ = "activity_log"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    issue_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("issues.id"), nullable=False, index=True)
    user_id: Mapped[Optional[UUID]] = mapped_column(Uuid, ForeignKey("profiles.id"), nullable=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    details: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class IssueCommentModel(Base):
    """
    Database model for IssueComment.

    Maps to the 'issue_comments' table. ``user_id`` is nullable so that
    system comments need not borrow a real user's identity.
    """
    __tablename__ = "issue_comments"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    issue_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("issues.id"), nullable=False, index=True)
    user_id: Mapped[Optional[UUID]] = mapped_column(Uuid, ForeignKey("profiles.id"), nullable=True)
    comment: Mapped[str] = mapped_column(Text, nullable=False)
    is_internal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
