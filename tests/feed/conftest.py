"""Fixtures for job feed tests."""

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from gigboard.config import FeedConfig
from gigboard.feed.models import AlgorithmSettings, Job, JobApplication
from gigboard.feed.service import JobFeedService
from gigboard.feed.storage import InMemoryJobRepository

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Controllable clock for deterministic tests."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def _make_job(
    job_id: str,
    owner_id: str = "owner-1",
    workers_needed: int = 1,
    created_at: datetime = T0,
    updated_at: Optional[datetime] = None,
    **kwargs,
) -> Job:
    """Helper to build a job with sensible defaults."""
    return Job(
        id=job_id,
        owner_id=owner_id,
        title=kwargs.pop("title", f"Job {job_id}"),
        workers_needed=workers_needed,
        created_at=created_at,
        updated_at=updated_at,
        **kwargs,
    )


def _add_application(
    repo: InMemoryJobRepository,
    app_id: str,
    job_id: str,
    applicant_id: str,
    status: str = "pending",
) -> JobApplication:
    """Insert an application directly, bypassing admission checks."""
    application = JobApplication(
        id=app_id,
        job_id=job_id,
        applicant_id=applicant_id,
        status=status,
        created_at=T0,
    )
    repo._applications[app_id] = application
    return application


@pytest.fixture
def clock():
    """Frozen clock starting at T0."""
    return FrozenClock()


@pytest.fixture
def repo():
    """Create in-memory storage for testing."""
    return InMemoryJobRepository()


@pytest.fixture
def config():
    """Create test configuration."""
    return FeedConfig(front_page_size=20)


@pytest.fixture
def service(repo, config, clock):
    """Create job feed service for testing."""
    return JobFeedService(repository=repo, config=config, clock=clock)


@pytest.fixture
def rotation_settings():
    return AlgorithmSettings(algorithm_type="time_rotation", is_enabled=True, rotation_hours=8)


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def make_job():
    """Factory for jobs with sensible defaults."""
    return _make_job


@pytest.fixture
def add_application(repo):
    """Factory inserting applications into the in-memory repository."""

    def _add(app_id: str, job_id: str, applicant_id: str, status: str = "pending"):
        return _add_application(repo, app_id, job_id, applicant_id, status)

    return _add
