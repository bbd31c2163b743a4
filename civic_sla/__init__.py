"""
Civic SLA
=========

SLA tracking, load-balanced L1 assignment and escalation for civic
issue reporting.
"""

__version__ = "1.0.0"
