"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class InvalidTransitionException(DomainException):
    """Raised when an issue cannot move from its current status via a trigger."""

    def __init__(self, issue_id: str, current_status: str, trigger: str):
        self.issue_id = issue_id
        self.current_status = current_status
        self.trigger = trigger
        super().__init__(
            f"Cannot apply '{trigger}' to issue {issue_id} in status '{current_status}'",
            {"issue_id": issue_id, "status": current_status, "trigger": trigger}
        )


class ForbiddenActionException(DomainException):
    """Raised when the acting profile's role may not fire a trigger."""

    def __init__(self, actor_id: Optional[str], role: Optional[str], trigger: str):
        self.actor_id = actor_id
        self.role = role
        self.trigger = trigger
        super().__init__(
            f"Role '{role}' may not perform '{trigger}'",
            {"actor_id": actor_id, "role": role, "trigger": trigger}
        )


class AdminCapacityException(DomainException):
    """Raised when promoting a profile would exceed the admin cap."""

    def __init__(self, max_admins: int):
        self.max_admins = max_admins
        super().__init__(
            f"Maximum of {max_admins} admin accounts reached",
            {"max_admins": max_admins}
        )


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ConcurrentModificationException(RepositoryException):
    """A guarded write matched no row: the issue changed since it was read."""

    def __init__(self, issue_id: str, details: Optional[dict] = None):
        self.issue_id = issue_id
        super().__init__(f"Issue {issue_id} was modified concurrently", details)


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(
            message,
            details or {"resource_type": resource_type, "resource_id": resource_id}
        )


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class SweepFailedException(ApplicationException):
    """Raised when every issue in a non-empty sweep batch failed."""

    def __init__(self, sweep: str, attempted: int, details: Optional[dict] = None):
        self.sweep = sweep
        self.attempted = attempted
        super().__init__(
            f"{sweep} sweep failed for all {attempted} issue(s)",
            details or {"sweep": sweep, "attempted": attempted}
        )
