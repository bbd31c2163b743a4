"""
Issues Infrastructure Layer
===========================

Infrastructure implementations for the issues module:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer (issue store, activity log, comments, officer directory)
"""

from civic_sla.issues.infrastructure.models import (
    ProfileModel,
    IssueModel,
    ActivityLogModel,
    IssueCommentModel,
)
from civic_sla.issues.infrastructure.repositories import (
    SQLAlchemyIssueRepository,
    SQLAlchemyActivityLogRepository,
    SQLAlchemyCommentRepository,
    SQLAlchemyProfileRepository,
)

__all__ = [
    "ProfileModel",
    "IssueModel",
    "ActivityLogModel",
    "IssueCommentModel",
    "SQLAlchemyIssueRepository",
    "SQLAlchemyActivityLogRepository",
    "SQLAlchemyCommentRepository",
    "SQLAlchemyProfileRepository",
]
