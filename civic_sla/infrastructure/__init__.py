"""
Shared Infrastructure
=====================

Technical adapters shared by all modules:
- Database engine and session factory
"""
