"""Shared fixtures: a fixed clock, in-memory repositories and a small officer pool."""

import asyncio

import pytest

from civic_sla.config import UserRole
from civic_sla.issues.application import AssignmentBalancer
from civic_sla.sla.domain import SLAConfig, StaticConfigProvider

from tests.fakes import (
    T0,
    FixedClock,
    InMemoryIssueRepository,
    InMemoryActivityLogRepository,
    InMemoryCommentRepository,
    InMemoryProfileRepository,
    make_profile,
)


@pytest.fixture
def clock():
    return FixedClock(T0)


@pytest.fixture
def issue_repo():
    return InMemoryIssueRepository()


@pytest.fixture
def activity_repo(clock):
    return InMemoryActivityLogRepository(clock)


@pytest.fixture
def comment_repo(clock):
    return InMemoryCommentRepository(clock)


@pytest.fixture
def profile_repo():
    """Citizen, three L1 officers (in pool order), two L2 officers and an admin."""
    return InMemoryProfileRepository([
        make_profile("citizen-1", UserRole.CITIZEN),
        make_profile("l1-a", UserRole.L1_OFFICER),
        make_profile("l1-b", UserRole.L1_OFFICER),
        make_profile("l1-c", UserRole.L1_OFFICER),
        make_profile("l2-a", UserRole.L2_OFFICER),
        make_profile("l2-b", UserRole.L2_OFFICER),
        make_profile("admin-1", UserRole.ADMIN),
    ])


@pytest.fixture
def sla_config():
    return SLAConfig()


@pytest.fixture
def config_provider(sla_config):
    return StaticConfigProvider(sla_config)


@pytest.fixture
def balancer(issue_repo, activity_repo, profile_repo, clock):
    return AssignmentBalancer(issue_repo, activity_repo, profile_repo, clock, lock=asyncio.Lock())
