"""
Issues Interfaces Layer
=======================

Interface adapters (controllers) for the issues module.

This is the outermost layer - handles HTTP requests/responses and
delegates to application services.
"""

from civic_sla.issues.interfaces.controllers import issues_router, profiles_router

__all__ = ["issues_router", "profiles_router"]
