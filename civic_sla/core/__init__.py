"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from civic_sla.core.clock import Clock, utc_now
from civic_sla.core.exceptions import (
    ApplicationException,
    DomainException,
    InvalidTransitionException,
    ForbiddenActionException,
    AdminCapacityException,
    RepositoryException,
    ConcurrentModificationException,
    ValidationException,
    ResourceNotFoundException,
    ConfigurationException,
    ExternalServiceException,
    SweepFailedException,
)

__all__ = [
    "Clock",
    "utc_now",
    "ApplicationException",
    "DomainException",
    "InvalidTransitionException",
    "ForbiddenActionException",
    "AdminCapacityException",
    "RepositoryException",
    "ConcurrentModificationException",
    "ValidationException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "ExternalServiceException",
    "SweepFailedException",
]
