"""Database utilities for Supabase integration."""

from typing import Annotated

from fastapi import Depends

from gigboard.feed import JobFeedService
from supabase import Client, create_client

from .config import Settings, get_settings

_supabase_client: Client | None = None


def get_supabase_client(settings: Settings | None = None) -> Client:
    """Get cached Supabase client."""
    global _supabase_client
    if _supabase_client is None:
        if settings is None:
            settings = get_settings()
        # Prefer new secret key, fall back to legacy service_role_key
        api_key = settings.supabase_secret_key or settings.supabase_service_role_key
        if not api_key:
            raise ValueError("Either SUPABASE_SECRET_KEY or SUPABASE_SERVICE_ROLE_KEY must be set")
        _supabase_client = create_client(settings.supabase_url, api_key)
    return _supabase_client


def get_db(settings: Annotated[Settings, Depends(get_settings)]) -> Client:
    """FastAPI dependency for Supabase client."""
    return get_supabase_client(settings)


# Type alias for dependency injection
Database = Annotated[Client, Depends(get_db)]


# =============================================================================
# Table Names
# =============================================================================

JOBS_TABLE = "jobs"
JOB_APPLICATIONS_TABLE = "job_applications"
ALGORITHM_SETTINGS_TABLE = "marketplace_algorithm_settings"
ROTATION_TABLE = "job_rotation_tracking"
HIDDEN_JOBS_TABLE = "hidden_jobs"

# Database functions (see supabase/migrations/001_job_feed.sql)
ACCEPT_APPLICATION_RPC = "accept_job_application"
SET_WORKERS_NEEDED_RPC = "set_job_workers_needed"
STAMP_ROTATION_RPC = "stamp_job_rotation"
RECOMPUTE_STATUS_RPC = "recompute_job_status"


# =============================================================================
# Feed service
# =============================================================================


def get_feed_service(
    db: Database,
    settings: Annotated[Settings, Depends(get_settings)],
) -> JobFeedService:
    """FastAPI dependency building the feed service over Supabase."""
    from .repository import SupabaseJobRepository

    return JobFeedService(SupabaseJobRepository(db), config=settings.feed_config())


FeedService = Annotated[JobFeedService, Depends(get_feed_service)]
