"""
Job feed service.

Request-level orchestration over the repository, the settings store and the
rotation store: building ranked feeds, admitting applications, accepting and
completing work, and changing a job's worker count. Expected business
outcomes come back as structured results; invalid requests raise the
exceptions below. Repository errors propagate unchanged.
"""

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, List, Optional

from gigboard.config import FeedConfig
from gigboard.feed.capacity import (
    REASON_ALREADY_APPLIED,
    REASON_NOT_FOUND,
    AvailabilityResult,
    CapacityEvaluator,
    worker_count_error,
)
from gigboard.feed.models import (
    KNOWN_ALGORITHM_TYPES,
    AlgorithmSettings,
    ApplicationStatus,
    HiddenJob,
    Job,
    JobApplication,
    RotationRecord,
    utc_now,
)
from gigboard.feed.ranking import RankEngine
from gigboard.feed.rotation import RotationTracker
from gigboard.feed.status import StatusChange, StatusResolver
from gigboard.feed.storage import (
    AcceptOutcome,
    AlgorithmSettingsStore,
    DuplicateApplicationError,
    FeedFilters,
    JobRepository,
    RotationStore,
)

logger = logging.getLogger(__name__)

REASON_ACCEPT_RACE_LOST = "job no longer accepting applications"


# =============================================================================
# Errors
# =============================================================================


class FeedServiceError(Exception):
    """Base exception for job feed operations."""

    pass


class JobNotFoundError(FeedServiceError):
    """Job does not exist."""

    pass


class ApplicationNotFoundError(FeedServiceError):
    """Application does not exist for the given job."""

    pass


class NotJobOwnerError(FeedServiceError):
    """Actor is not the owner of the job."""

    pass


class FeedValidationError(FeedServiceError):
    """Request rejected by a business rule.

    ``reason`` is the user-facing reason string.
    """

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ApplicationRejectedError(FeedValidationError):
    """Application could not be admitted."""

    pass


class WorkerCountError(FeedValidationError):
    """Worker count change not allowed."""

    pass


class InvalidTransitionError(FeedValidationError):
    """Application status transition not allowed."""

    pass


class InvalidSettingsError(FeedValidationError):
    """Algorithm settings rejected."""

    pass


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class AlgorithmInfo:
    """Algorithm metadata echoed with every feed."""

    type: str
    enabled: bool
    rotation_hours: float

    @classmethod
    def from_settings(cls, settings: AlgorithmSettings) -> "AlgorithmInfo":
        return cls(
            type=settings.algorithm_type,
            enabled=settings.is_enabled,
            rotation_hours=settings.rotation_hours,
        )


@dataclass
class FeedResult:
    """A ranked feed."""

    jobs: List[Job]
    algorithm: AlgorithmInfo


@dataclass
class AcceptanceResult:
    """Outcome of accepting an application."""

    accepted: bool
    reason: Optional[str] = None
    application: Optional[JobApplication] = None
    status_change: Optional[StatusChange] = None


@dataclass
class ApplicationUpdate:
    """Outcome of a reject/complete/cancel."""

    application: JobApplication
    status_change: Optional[StatusChange] = None


@dataclass
class WorkerCountChange:
    """Outcome of a worker count change."""

    job: Job
    previous_count: int
    new_count: int
    accepted_count: int
    status_change: Optional[StatusChange] = None


# =============================================================================
# Service
# =============================================================================


class JobFeedService:
    """Job feed operations.

    The stores are injected; one object may implement all three protocols.
    ``clock`` returns the current aware UTC time.
    """

    def __init__(
        self,
        repository: JobRepository,
        settings_store: Optional[AlgorithmSettingsStore] = None,
        rotation_store: Optional[RotationStore] = None,
        config: Optional[FeedConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository
        self.settings_store = settings_store if settings_store is not None else repository
        self.rotation_store = rotation_store if rotation_store is not None else repository
        self.config = config or FeedConfig()
        self.clock = clock or utc_now

        self.capacity = CapacityEvaluator(repository)
        self.status_resolver = StatusResolver(repository, clock=self.clock)
        self.rotation_tracker = RotationTracker(self.rotation_store)
        self.rank_engine = RankEngine(self.rotation_tracker, self.config.front_page_size)

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    async def get_algorithm_settings(self) -> AlgorithmSettings:
        """Active settings, or the configured defaults if they cannot be read."""
        try:
            settings = await self.settings_store.get_algorithm_settings()
        except Exception:
            logger.exception("Failed to load feed algorithm settings; using defaults")
            return self.config.default_settings()
        if settings is None:
            logger.info("No feed algorithm settings saved; using defaults")
            return self.config.default_settings()
        return settings

    async def update_algorithm_settings(
        self,
        algorithm_type: str,
        is_enabled: bool,
        rotation_hours: float,
    ) -> AlgorithmSettings:
        """Validate and save new algorithm settings."""
        if algorithm_type not in KNOWN_ALGORITHM_TYPES:
            raise InvalidSettingsError(f"unknown algorithm type: {algorithm_type}")
        if rotation_hours is None or rotation_hours <= 0:
            raise InvalidSettingsError("rotation hours must be positive")

        settings = AlgorithmSettings(
            algorithm_type=algorithm_type,
            is_enabled=is_enabled,
            rotation_hours=rotation_hours,
        )
        saved = await self.settings_store.save_algorithm_settings(settings)
        logger.info(
            "Feed algorithm updated: type=%s enabled=%s rotation_hours=%s",
            saved.algorithm_type,
            saved.is_enabled,
            saved.rotation_hours,
        )
        return saved

    async def rotation_report(self) -> List[RotationRecord]:
        """Rotation records, least recently exposed first."""
        return await self.rotation_tracker.report()

    # -------------------------------------------------------------------------
    # Feed
    # -------------------------------------------------------------------------

    async def get_feed(
        self,
        filters: Optional[FeedFilters] = None,
        viewer_id: Optional[str] = None,
        preview: bool = False,
    ) -> FeedResult:
        """Build the ranked open-jobs feed.

        Under time_rotation the front-page jobs are stamped unless
        ``preview`` is set.
        """
        filters = filters or FeedFilters()
        if viewer_id:
            hidden = await self.repository.list_hidden_jobs(viewer_id)
            if hidden:
                filters = replace(filters, exclude_job_ids=frozenset(h.job_id for h in hidden))

        jobs = await self.repository.list_open_jobs(filters)

        settings = await self.get_algorithm_settings()
        ranked = await self.rank_engine.rank(jobs, settings, now=self.clock(), stamp=not preview)

        return FeedResult(jobs=ranked, algorithm=AlgorithmInfo.from_settings(settings))

    # -------------------------------------------------------------------------
    # Applications
    # -------------------------------------------------------------------------

    async def check_availability(
        self, job_id: str, applicant_id: Optional[str] = None
    ) -> AvailabilityResult:
        """Read-only admission check."""
        return await self.capacity.check_availability(job_id, applicant_id)

    async def apply(
        self,
        job_id: str,
        applicant_id: str,
        cover_letter: str = "",
        proposed_budget: Optional[float] = None,
    ) -> JobApplication:
        """Submit a pending application.

        Raises:
            JobNotFoundError: If the job doesn't exist
            ApplicationRejectedError: If admission rules reject the applicant
        """
        availability = await self.check_availability(job_id, applicant_id)
        if not availability.available:
            if availability.reason == REASON_NOT_FOUND:
                raise JobNotFoundError(f"Job {job_id} not found")
            raise ApplicationRejectedError(availability.reason)

        application = JobApplication(
            id=str(uuid.uuid4()),
            job_id=job_id,
            applicant_id=applicant_id,
            cover_letter=cover_letter,
            proposed_budget=proposed_budget,
            created_at=self.clock(),
        )
        try:
            created = await self.repository.create_application(application)
        except DuplicateApplicationError:
            raise ApplicationRejectedError(REASON_ALREADY_APPLIED)

        logger.info("Application %s created | job=%s | applicant=%s", created.id, job_id, applicant_id)
        return created

    async def _get_owned_job(self, job_id: str, owner_id: str) -> Job:
        job = await self.repository.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        if job.owner_id != owner_id:
            raise NotJobOwnerError(f"Only the job owner can manage job {job_id}")
        return job

    async def _get_job_application(self, job_id: str, application_id: str) -> JobApplication:
        application = await self.repository.get_application(application_id)
        if application is None or application.job_id != job_id:
            raise ApplicationNotFoundError(f"Application {application_id} not found for job {job_id}")
        return application

    async def accept_application(
        self, job_id: str, application_id: str, owner_id: str
    ) -> AcceptanceResult:
        """Accept a pending application if a slot is still free.

        Losing a race for the last slot is an ordinary outcome
        (``accepted=False``), not an error.
        """
        await self._get_owned_job(job_id, owner_id)
        application = await self._get_job_application(job_id, application_id)
        if application.status != ApplicationStatus.PENDING.value:
            raise InvalidTransitionError(f"application is already {application.status}")

        outcome = await self.repository.accept_application_if_capacity(
            job_id, application_id, self.clock()
        )

        if outcome == AcceptOutcome.NOT_FOUND:
            raise ApplicationNotFoundError(f"Application {application_id} not found for job {job_id}")
        if outcome == AcceptOutcome.NOT_PENDING:
            current = await self.repository.get_application(application_id)
            logger.warning(
                "Application %s changed concurrently (now %s)",
                application_id,
                current.status if current else "missing",
            )
            raise InvalidTransitionError(
                f"application is already {current.status if current else 'gone'}"
            )
        if outcome == AcceptOutcome.FULL:
            logger.info("Acceptance refused, job %s is full | application=%s", job_id, application_id)
            return AcceptanceResult(accepted=False, reason=REASON_ACCEPT_RACE_LOST)

        status_change = await self.status_resolver.recompute(job_id)
        accepted = await self.repository.get_application(application_id)
        logger.info("Application %s accepted | job=%s", application_id, job_id)
        return AcceptanceResult(
            accepted=True, application=accepted, status_change=status_change
        )

    async def _transition(
        self,
        job_id: str,
        application_id: str,
        owner_id: str,
        new_status: ApplicationStatus,
        recompute: bool,
    ) -> ApplicationUpdate:
        await self._get_owned_job(job_id, owner_id)
        application = await self._get_job_application(job_id, application_id)
        if not application.can_transition_to(new_status.value):
            raise InvalidTransitionError(
                f"cannot move application from {application.status} to {new_status.value}"
            )

        updated = await self.repository.update_application_status(
            application_id, application.status, new_status.value, self.clock()
        )
        if updated is None:
            raise InvalidTransitionError(
                "application status was modified by another request, please refresh and try again"
            )

        status_change = await self.status_resolver.recompute(job_id) if recompute else None
        logger.info(
            "Application %s %s -> %s | job=%s",
            application_id,
            application.status,
            new_status.value,
            job_id,
        )
        return ApplicationUpdate(application=updated, status_change=status_change)

    async def reject_application(
        self, job_id: str, application_id: str, owner_id: str
    ) -> ApplicationUpdate:
        """Reject a pending application. Counts are unaffected."""
        return await self._transition(
            job_id, application_id, owner_id, ApplicationStatus.REJECTED, recompute=False
        )

    async def complete_application(
        self, job_id: str, application_id: str, owner_id: str
    ) -> ApplicationUpdate:
        """Approve an accepted worker's work."""
        return await self._transition(
            job_id, application_id, owner_id, ApplicationStatus.COMPLETED, recompute=True
        )

    async def cancel_application(
        self, job_id: str, application_id: str, owner_id: str
    ) -> ApplicationUpdate:
        """Cancel a pending or accepted application, freeing its slot."""
        return await self._transition(
            job_id, application_id, owner_id, ApplicationStatus.CANCELLED, recompute=True
        )

    # -------------------------------------------------------------------------
    # Worker count
    # -------------------------------------------------------------------------

    async def update_worker_count(
        self, job_id: str, owner_id: str, new_count: int
    ) -> WorkerCountChange:
        """Change how many workers a job needs.

        Raises:
            JobNotFoundError: If the job doesn't exist
            NotJobOwnerError: If the actor doesn't own the job
            WorkerCountError: If the count is invalid or below accepted workers
        """
        job = await self._get_owned_job(job_id, owner_id)
        previous_count = job.workers_needed

        accepted = await self.repository.get_accepted_count(job_id)
        error = worker_count_error(new_count, accepted)
        if error:
            raise WorkerCountError(error)

        updated, accepted_at_write = await self.repository.set_workers_needed_if_capacity(
            job_id, new_count, self.clock()
        )
        if updated is None:
            error = worker_count_error(new_count, accepted_at_write)
            if error is None:
                raise JobNotFoundError(f"Job {job_id} not found")
            raise WorkerCountError(error)

        status_change = await self.status_resolver.recompute(job_id)
        if status_change.changed:
            updated = replace(updated, status=status_change.status)
        logger.info(
            "Job %s workers needed %d -> %d (accepted=%d)",
            job_id,
            previous_count,
            new_count,
            accepted_at_write,
        )
        return WorkerCountChange(
            job=updated,
            previous_count=previous_count,
            new_count=new_count,
            accepted_count=accepted_at_write,
            status_change=status_change,
        )

    # -------------------------------------------------------------------------
    # Hidden jobs
    # -------------------------------------------------------------------------

    async def hide_job(self, user_id: str, job_id: str, reason: Optional[str] = None) -> HiddenJob:
        """Hide a job from one user's feed."""
        if await self.repository.get_job(job_id) is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return await self.repository.hide_job(
            HiddenJob(user_id=user_id, job_id=job_id, reason=reason, hidden_at=self.clock())
        )

    async def unhide_job(self, user_id: str, job_id: str) -> bool:
        return await self.repository.unhide_job(user_id, job_id)

    async def hidden_jobs(self, user_id: str) -> List[HiddenJob]:
        return await self.repository.list_hidden_jobs(user_id)
