"""
Shared Kernel Module
====================

Generic infrastructure used across bounded contexts (issues, SLA):
structured logging, HTTP middleware and error mapping.

DO NOT add issue or SLA business logic to the shared kernel.
"""

__version__ = "1.0.0"
