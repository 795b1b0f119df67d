"""Pytest configuration and fixtures."""

import os
import secrets
from datetime import datetime, timezone

import pytest

# Generate a unique test secret for this test run to prevent token forgery
_TEST_JWT_SECRET = f"test-only-{secrets.token_urlsafe(32)}"

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("JWT_SECRET_KEY", _TEST_JWT_SECRET)

from fastapi.testclient import TestClient  # noqa: E402

from app.database import get_feed_service  # noqa: E402
from app.main import app  # noqa: E402
from app.rate_limit import limiter  # noqa: E402
from gigboard.config import FeedConfig  # noqa: E402
from gigboard.feed import InMemoryJobRepository, Job, JobFeedService  # noqa: E402

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

OWNER_ID = "usr_TEST_OWNER_0000"
WORKER_ID = "usr_TEST_WORKER_000"
ADMIN_ID = "usr_TEST_ADMIN_0000"


@pytest.fixture
def repo():
    """In-memory storage behind the API."""
    return InMemoryJobRepository()


@pytest.fixture
def feed_service(repo):
    return JobFeedService(repo, config=FeedConfig(front_page_size=2), clock=lambda: T0)


@pytest.fixture
def client(feed_service):
    """Create a test client wired to the in-memory feed service."""
    app.dependency_overrides[get_feed_service] = lambda: feed_service
    limiter.enabled = False
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        limiter.enabled = True


def _headers(user_id: str, role: str | None = None) -> dict:
    from app.auth import create_access_token
    from app.config import get_settings

    token = create_access_token(user_id, get_settings(), role=role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def owner_headers():
    return _headers(OWNER_ID)


@pytest.fixture
def worker_headers():
    return _headers(WORKER_ID)


@pytest.fixture
def admin_headers():
    return _headers(ADMIN_ID, role="admin")


@pytest.fixture
def make_job():
    """Factory for jobs owned by the test owner."""

    def _make(job_id: str, workers_needed: int = 1, **kwargs) -> Job:
        kwargs.setdefault("owner_id", OWNER_ID)
        kwargs.setdefault("title", f"Job {job_id}")
        kwargs.setdefault("created_at", T0)
        return Job(id=job_id, workers_needed=workers_needed, **kwargs)

    return _make
