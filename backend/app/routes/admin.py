"""Admin routes for the job feed.

These routes require a token carrying the admin role.
"""

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from gigboard.feed import FeedServiceError

from ..auth import AdminUser
from ..database import FeedService
from ..logging_config import get_logger
from ..rate_limit import ADMIN_RATE, limiter
from .jobs import to_http_error

logger = get_logger("gigboard.admin")

router = APIRouter(prefix="/admin", tags=["admin"])


# =============================================================================
# Models
# =============================================================================


class AlgorithmSettingsResponse(BaseModel):
    """Active feed algorithm settings."""

    algorithm_type: str
    is_enabled: bool
    rotation_hours: float
    created_at: datetime | None = None
    updated_at: datetime | None = None


class AlgorithmSettingsUpdate(BaseModel):
    """Request to change the feed algorithm."""

    algorithm_type: Literal["newest_first", "time_rotation"]
    is_enabled: bool = True
    rotation_hours: float = Field(8, gt=0, le=24 * 30)


class RotationEntry(BaseModel):
    """Front-page exposure of one job."""

    job_id: str
    last_front_page_at: datetime
    front_page_duration_minutes: int
    rotation_cycle: int


class RotationReportResponse(BaseModel):
    """Rotation records, least recently shown first."""

    records: list[RotationEntry]
    total: int


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/feed-algorithm", response_model=AlgorithmSettingsResponse)
@limiter.limit(ADMIN_RATE)
async def get_feed_algorithm(request: Request, admin: AdminUser, service: FeedService):
    """Active feed algorithm settings (defaults if none are stored)."""
    settings = await service.get_algorithm_settings()
    return AlgorithmSettingsResponse(
        algorithm_type=settings.algorithm_type,
        is_enabled=settings.is_enabled,
        rotation_hours=settings.rotation_hours,
        created_at=settings.created_at,
        updated_at=settings.updated_at,
    )


@router.put("/feed-algorithm", response_model=AlgorithmSettingsResponse)
@limiter.limit(ADMIN_RATE)
async def update_feed_algorithm(
    request: Request,
    update: AlgorithmSettingsUpdate,
    admin: AdminUser,
    service: FeedService,
):
    """Switch the feed algorithm or change the rotation window."""
    logger.info(
        f"PUT /admin/feed-algorithm | admin={admin.user_id} | type={update.algorithm_type} "
        f"| enabled={update.is_enabled} | hours={update.rotation_hours}"
    )
    try:
        saved = await service.update_algorithm_settings(
            update.algorithm_type, update.is_enabled, update.rotation_hours
        )
    except FeedServiceError as e:
        raise to_http_error(e)

    return AlgorithmSettingsResponse(
        algorithm_type=saved.algorithm_type,
        is_enabled=saved.is_enabled,
        rotation_hours=saved.rotation_hours,
        created_at=saved.created_at,
        updated_at=saved.updated_at,
    )


@router.get("/feed-algorithm/rotation", response_model=RotationReportResponse)
@limiter.limit(ADMIN_RATE)
async def get_rotation_report(request: Request, admin: AdminUser, service: FeedService):
    """Which jobs have been on the front page, and how recently."""
    records = await service.rotation_report()
    return RotationReportResponse(
        records=[
            RotationEntry(
                job_id=r.job_id,
                last_front_page_at=r.last_front_page_at,
                front_page_duration_minutes=r.front_page_duration_minutes,
                rotation_cycle=r.rotation_cycle,
            )
            for r in records
        ],
        total=len(records),
    )
