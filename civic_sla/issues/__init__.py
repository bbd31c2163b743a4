"""
Issues Module
=============

Bounded Context for civic issue intake, ownership and workflow.

Responsibilities:
- Record citizen-reported issues with an SLA deadline stamped at creation
- Route new issues to the least-loaded first-tier (L1) officer
- Govern officer and admin status changes through the issue state machine
- Keep an append-only activity log and a comment thread per issue
- Enforce the admin capacity cap on role changes
"""

__version__ = "1.0.0"
