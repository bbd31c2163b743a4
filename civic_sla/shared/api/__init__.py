"""
Shared API Layer
================

Middleware and exception-to-HTTP mapping for the FastAPI routers.
"""
