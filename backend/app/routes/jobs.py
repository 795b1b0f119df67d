"""Job feed routes.

Endpoints for the ranked open-jobs feed, applications, worker capacity and
per-user hidden jobs.
"""

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from gigboard.feed import (
    ApplicationNotFoundError,
    ApplicationRejectedError,
    ApplicationUpdate,
    FeedFilters,
    FeedServiceError,
    FeedValidationError,
    HiddenJob,
    InvalidTransitionError,
    Job,
    JobApplication,
    JobNotFoundError,
    NotJobOwnerError,
    StatusChange,
)
from gigboard.feed.capacity import REASON_ALREADY_APPLIED

from ..auth import CurrentUser, OptionalUser
from ..database import FeedService
from ..logging_config import get_logger, log_application_event, log_feed_request
from ..rate_limit import APPLY_RATE, FEED_RATE, OWNER_ACTION_RATE, limiter

logger = get_logger("gigboard.routes.jobs")
router = APIRouter(prefix="/jobs", tags=["jobs"])


# =============================================================================
# Request/Response Models
# =============================================================================

JobStatus = Literal["open", "in_progress", "completed"]
ApplicationStatus = Literal["pending", "accepted", "rejected", "completed", "cancelled"]


class JobResponse(BaseModel):
    """Job listing."""

    id: str
    owner_id: str
    title: str
    description: str
    category: str | None = None
    location: str | None = None
    is_remote: bool
    budget: float | None = None
    workers_needed: int
    status: JobStatus
    created_at: datetime
    updated_at: datetime | None = None


class AlgorithmInfoResponse(BaseModel):
    """Ranking policy that produced a feed."""

    type: str
    enabled: bool
    rotation_hours: float


class FeedResponse(BaseModel):
    """Ranked feed of open jobs."""

    jobs: list[JobResponse]
    algorithm: AlgorithmInfoResponse


class AvailabilityResponse(BaseModel):
    """Whether the caller may apply."""

    available: bool
    reason: str | None = None
    spots_left: int | None = None


class ApplicationCreate(BaseModel):
    """Request to apply to a job."""

    cover_letter: str = Field("", max_length=5000)
    proposed_budget: float | None = Field(None, gt=0)


class ApplicationResponse(BaseModel):
    """Job application."""

    id: str
    job_id: str
    applicant_id: str
    status: ApplicationStatus
    cover_letter: str
    proposed_budget: float | None = None
    created_at: datetime
    accepted_at: datetime | None = None
    rejected_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None


class ApplicationActionResponse(BaseModel):
    """Result of accepting, rejecting, completing or cancelling an application."""

    application: ApplicationResponse
    job_status: JobStatus | None = None
    job_status_changed: bool = False


class WorkerCountUpdate(BaseModel):
    """Request to change how many workers a job needs."""

    workers_needed: int


class WorkerCountResponse(BaseModel):
    """Result of a worker count change."""

    job: JobResponse
    previous_count: int
    new_count: int
    accepted_count: int
    job_status_changed: bool = False


class HideJobRequest(BaseModel):
    """Request to hide a job from the caller's feed."""

    reason: str | None = Field(None, max_length=500)


class HiddenJobResponse(BaseModel):
    """A job the caller has hidden."""

    job_id: str
    reason: str | None = None
    hidden_at: datetime


class HiddenJobListResponse(BaseModel):
    hidden: list[HiddenJobResponse]
    total: int


# =============================================================================
# Helper Functions
# =============================================================================


def to_job_response(job: Job) -> JobResponse:
    """Convert a feed Job to the response model."""
    return JobResponse(
        id=job.id,
        owner_id=job.owner_id,
        title=job.title,
        description=job.description,
        category=job.category,
        location=job.location,
        is_remote=job.is_remote,
        budget=job.budget,
        workers_needed=job.workers_needed,
        status=job.status,
        created_at=job.created_at,
        updated_at=job.updated_at,
    )


def to_application_response(app: JobApplication) -> ApplicationResponse:
    """Convert a JobApplication to the response model."""
    return ApplicationResponse(
        id=app.id,
        job_id=app.job_id,
        applicant_id=app.applicant_id,
        status=app.status,
        cover_letter=app.cover_letter,
        proposed_budget=app.proposed_budget,
        created_at=app.created_at,
        accepted_at=app.accepted_at,
        rejected_at=app.rejected_at,
        completed_at=app.completed_at,
        cancelled_at=app.cancelled_at,
    )


def to_action_response(
    app: JobApplication, change: StatusChange | None
) -> ApplicationActionResponse:
    return ApplicationActionResponse(
        application=to_application_response(app),
        job_status=change.status if change else None,
        job_status_changed=bool(change and change.changed),
    )


def to_hidden_response(hidden: HiddenJob) -> HiddenJobResponse:
    return HiddenJobResponse(job_id=hidden.job_id, reason=hidden.reason, hidden_at=hidden.hidden_at)


def to_http_error(error: FeedServiceError) -> HTTPException:
    """Map feed service errors to HTTP errors."""
    if isinstance(error, JobNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    if isinstance(error, ApplicationNotFoundError):
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Application not found for this job",
        )
    if isinstance(error, NotJobOwnerError):
        return HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the job owner can manage this job",
        )
    if isinstance(error, ApplicationRejectedError) and error.reason == REASON_ALREADY_APPLIED:
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=error.reason)
    if isinstance(error, InvalidTransitionError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=error.reason)
    if isinstance(error, FeedValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.reason)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))


# =============================================================================
# Feed
# =============================================================================


@router.get("", response_model=FeedResponse)
@limiter.limit(FEED_RATE)
async def get_job_feed(
    request: Request,
    service: FeedService,
    viewer: OptionalUser,
    category: str | None = Query(None, max_length=100),
    location: str | None = Query(None, max_length=200),
    search: str | None = Query(None, max_length=200),
    remote: bool | None = Query(None),
    budget_min: float | None = Query(None, ge=0),
    budget_max: float | None = Query(None, ge=0),
    limit: str | None = Query(None, description="1-100; invalid values are ignored"),
    preview: bool = Query(False, description="Rank without recording front-page exposure"),
):
    """
    Ranked feed of open jobs.

    The active feed algorithm decides the order. Under time rotation, the
    jobs on the front page are recorded as shown unless ``preview`` is set.
    """
    viewer_id = viewer.user_id if viewer else None
    filters = FeedFilters(
        category=category,
        location=location,
        search=search,
        remote=remote,
        budget_min=budget_min,
        budget_max=budget_max,
        limit=FeedFilters.parse_limit(limit, service.config.max_feed_limit),
    )

    feed = await service.get_feed(filters, viewer_id=viewer_id, preview=preview)

    log_feed_request(
        viewer_id, feed.algorithm.type, feed.algorithm.enabled, len(feed.jobs), preview
    )
    return FeedResponse(
        jobs=[to_job_response(j) for j in feed.jobs],
        algorithm=AlgorithmInfoResponse(
            type=feed.algorithm.type,
            enabled=feed.algorithm.enabled,
            rotation_hours=feed.algorithm.rotation_hours,
        ),
    )


# =============================================================================
# Hidden jobs
# =============================================================================


@router.get("/hidden", response_model=HiddenJobListResponse)
@limiter.limit(FEED_RATE)
async def list_hidden_jobs(request: Request, auth: CurrentUser, service: FeedService):
    """List jobs the caller has hidden."""
    hidden = await service.hidden_jobs(auth.user_id)
    return HiddenJobListResponse(hidden=[to_hidden_response(h) for h in hidden], total=len(hidden))


@router.post("/hidden/{job_id}", response_model=HiddenJobResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(OWNER_ACTION_RATE)
async def hide_job(
    request: Request,
    job_id: str,
    auth: CurrentUser,
    service: FeedService,
    body: HideJobRequest | None = None,
):
    """Hide a job from the caller's feed. Hiding twice is a no-op."""
    try:
        hidden = await service.hide_job(auth.user_id, job_id, body.reason if body else None)
    except FeedServiceError as e:
        raise to_http_error(e)
    logger.info(f"Job hidden | job={job_id} | user={auth.user_id}")
    return to_hidden_response(hidden)


@router.delete("/hidden/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(OWNER_ACTION_RATE)
async def unhide_job(request: Request, job_id: str, auth: CurrentUser, service: FeedService):
    """Show a previously hidden job again."""
    if not await service.unhide_job(auth.user_id, job_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job is not hidden")


# =============================================================================
# Applications
# =============================================================================


@router.get("/{job_id}/availability", response_model=AvailabilityResponse)
@limiter.limit(FEED_RATE)
async def check_availability(
    request: Request, job_id: str, viewer: OptionalUser, service: FeedService
):
    """Whether the caller can apply, with the number of open slots."""
    result = await service.check_availability(job_id, viewer.user_id if viewer else None)
    return AvailabilityResponse(**result.to_dict())


@router.post(
    "/{job_id}/apply", response_model=ApplicationResponse, status_code=status.HTTP_201_CREATED
)
@limiter.limit(APPLY_RATE)
async def apply_to_job(
    request: Request,
    job_id: str,
    application: ApplicationCreate,
    auth: CurrentUser,
    service: FeedService,
):
    """
    Apply to work on a job.

    Owners cannot apply to their own jobs, full jobs accept no new
    applications and each user may apply once.
    """
    logger.info(f"POST /jobs/{job_id}/apply | user={auth.user_id}")
    try:
        created = await service.apply(
            job_id,
            auth.user_id,
            cover_letter=application.cover_letter,
            proposed_budget=application.proposed_budget,
        )
    except FeedServiceError as e:
        log_application_event("apply", job_id, None, auth.user_id, False, str(e))
        raise to_http_error(e)

    log_application_event("apply", job_id, created.id, auth.user_id, True)
    return to_application_response(created)


@router.post(
    "/{job_id}/applications/{application_id}/accept", response_model=ApplicationActionResponse
)
@limiter.limit(OWNER_ACTION_RATE)
async def accept_application(
    request: Request,
    job_id: str,
    application_id: str,
    auth: CurrentUser,
    service: FeedService,
):
    """
    Accept a pending application.

    Only the job owner can accept. If every slot was filled in the meantime
    the request fails with 409 and the application stays pending.
    """
    try:
        result = await service.accept_application(job_id, application_id, auth.user_id)
    except FeedServiceError as e:
        log_application_event("accept", job_id, application_id, auth.user_id, False, str(e))
        raise to_http_error(e)

    if not result.accepted:
        log_application_event("accept", job_id, application_id, auth.user_id, False, result.reason)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.reason)

    log_application_event("accept", job_id, application_id, auth.user_id, True)
    return to_action_response(result.application, result.status_change)


async def _run_transition(event: str, action, job_id: str, application_id: str, user_id: str):
    try:
        update: ApplicationUpdate = await action(job_id, application_id, user_id)
    except FeedServiceError as e:
        log_application_event(event, job_id, application_id, user_id, False, str(e))
        raise to_http_error(e)
    log_application_event(event, job_id, application_id, user_id, True)
    return to_action_response(update.application, update.status_change)


@router.post(
    "/{job_id}/applications/{application_id}/reject", response_model=ApplicationActionResponse
)
@limiter.limit(OWNER_ACTION_RATE)
async def reject_application(
    request: Request,
    job_id: str,
    application_id: str,
    auth: CurrentUser,
    service: FeedService,
):
    """Reject a pending application."""
    return await _run_transition(
        "reject", service.reject_application, job_id, application_id, auth.user_id
    )


@router.post(
    "/{job_id}/applications/{application_id}/complete", response_model=ApplicationActionResponse
)
@limiter.limit(OWNER_ACTION_RATE)
async def complete_application(
    request: Request,
    job_id: str,
    application_id: str,
    auth: CurrentUser,
    service: FeedService,
):
    """Approve an accepted worker's work. The job completes once every worker is done."""
    return await _run_transition(
        "complete", service.complete_application, job_id, application_id, auth.user_id
    )


@router.post(
    "/{job_id}/applications/{application_id}/cancel", response_model=ApplicationActionResponse
)
@limiter.limit(OWNER_ACTION_RATE)
async def cancel_application(
    request: Request,
    job_id: str,
    application_id: str,
    auth: CurrentUser,
    service: FeedService,
):
    """Cancel a pending or accepted application, freeing its slot."""
    return await _run_transition(
        "cancel", service.cancel_application, job_id, application_id, auth.user_id
    )


# =============================================================================
# Worker capacity
# =============================================================================


@router.put("/{job_id}/workers", response_model=WorkerCountResponse)
@limiter.limit(OWNER_ACTION_RATE)
async def update_workers_needed(
    request: Request,
    job_id: str,
    update: WorkerCountUpdate,
    auth: CurrentUser,
    service: FeedService,
):
    """
    Change how many workers a job needs.

    The count cannot drop below the number of accepted applications.
    Raising it reopens a filled or completed job.
    """
    logger.info(f"PUT /jobs/{job_id}/workers | user={auth.user_id} | count={update.workers_needed}")
    try:
        change = await service.update_worker_count(job_id, auth.user_id, update.workers_needed)
    except FeedServiceError as e:
        raise to_http_error(e)

    job = to_job_response(change.job)
    if change.status_change and change.status_change.status:
        # The row was read back before the status was recomputed
        job.status = change.status_change.status
    return WorkerCountResponse(
        job=job,
        previous_count=change.previous_count,
        new_count=change.new_count,
        accepted_count=change.accepted_count,
        job_status_changed=bool(change.status_change and change.status_change.changed),
    )
