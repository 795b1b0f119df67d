"""
Job feed storage layer.

Defines the persistence contracts the feed core consumes and an in-memory
implementation for tests and local development. The production backend
implements the same protocols on Supabase (see ``app.repository``).

Writes that guard capacity (``accept_application_if_capacity`` and
``set_workers_needed_if_capacity``) must re-check the accepted count at write
time. Callers treat any earlier availability check as a hint only.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Protocol, Tuple

from gigboard.config import MAX_FEED_LIMIT, MIN_FEED_LIMIT
from gigboard.feed.models import (
    ApplicationStatus,
    AlgorithmSettings,
    HiddenJob,
    Job,
    JobApplication,
    JobStatus,
    RotationRecord,
    SLOT_HOLDING_STATUSES,
    utc_now,
)
from gigboard.feed.status import StatusChange, resolve_status

logger = logging.getLogger(__name__)


class DuplicateApplicationError(Exception):
    """Raised by a store when (job_id, applicant_id) already has an application."""


class AcceptOutcome(str, Enum):
    """Result of a conditional acceptance write."""

    ACCEPTED = "accepted"
    FULL = "full"  # accepted count already reached workers needed
    NOT_PENDING = "not_pending"
    NOT_FOUND = "not_found"


@dataclass
class FeedFilters:
    """Filters for the open-jobs listing."""

    category: Optional[str] = None
    location: Optional[str] = None
    search: Optional[str] = None
    remote: Optional[bool] = None
    budget_min: Optional[float] = None
    budget_max: Optional[float] = None
    limit: Optional[int] = None
    # Removed before the limit applies
    exclude_job_ids: FrozenSet[str] = frozenset()

    @staticmethod
    def parse_limit(raw: Any, max_limit: int = MAX_FEED_LIMIT) -> Optional[int]:
        """Validate a requested result cap.

        Returns None (no cap) for anything that is not an integer between 1
        and ``max_limit``; invalid values are ignored rather than rejected.
        """
        if raw is None or isinstance(raw, bool) or raw == "":
            return None
        try:
            value = float(raw)
        except (TypeError, ValueError):
            logger.info("Ignoring invalid feed limit %r", raw)
            return None
        if not math.isfinite(value) or not value.is_integer():
            logger.info("Ignoring invalid feed limit %r", raw)
            return None
        if not MIN_FEED_LIMIT <= value <= max_limit:
            logger.info("Ignoring out-of-range feed limit %r", raw)
            return None
        return int(value)


# =============================================================================
# Protocols
# =============================================================================


class JobRepository(Protocol):
    """Protocol for job and application persistence backends."""

    # Jobs
    async def list_open_jobs(self, filters: FeedFilters) -> List[Job]:
        """List open jobs matching the filters, newest first."""
        ...

    async def get_job(self, job_id: str) -> Optional[Job]:
        """Get a job by ID."""
        ...

    async def recompute_job_status(
        self, job_id: str, changed_at: datetime
    ) -> Optional[StatusChange]:
        """Re-derive a job's status from its counts in one locked step.

        On change the job's ``updated_at`` becomes ``changed_at``. Returns
        None if the job does not exist.
        """
        ...

    async def set_workers_needed_if_capacity(
        self, job_id: str, workers_needed: int, updated_at: datetime
    ) -> Tuple[Optional[Job], int]:
        """Change workers needed unless it would drop below the accepted count.

        Returns (updated job or None, accepted count seen at write time).
        """
        ...

    # Applications
    async def get_application(self, application_id: str) -> Optional[JobApplication]:
        """Get an application by ID."""
        ...

    async def list_applications(
        self, job_id: str, status: Optional[str] = None
    ) -> List[JobApplication]:
        """List applications for a job."""
        ...

    async def has_existing_application(self, job_id: str, applicant_id: str) -> bool:
        """Whether the applicant already applied to the job."""
        ...

    async def create_application(self, application: JobApplication) -> JobApplication:
        """Insert an application. Raises DuplicateApplicationError on conflict."""
        ...

    async def get_accepted_count(self, job_id: str) -> int:
        """Number of applications holding a worker slot."""
        ...

    async def get_completed_count(self, job_id: str) -> int:
        """Number of completed applications."""
        ...

    async def accept_application_if_capacity(
        self, job_id: str, application_id: str, accepted_at: datetime
    ) -> AcceptOutcome:
        """Accept a pending application only while a slot is free."""
        ...

    async def update_application_status(
        self,
        application_id: str,
        expected_status: str,
        new_status: str,
        changed_at: datetime,
    ) -> Optional[JobApplication]:
        """Conditionally move an application between statuses.

        Returns the updated application, or None if it was not found or its
        status no longer matched ``expected_status``.
        """
        ...

    # Hidden jobs
    async def hide_job(self, hidden: HiddenJob) -> HiddenJob:
        ...

    async def unhide_job(self, user_id: str, job_id: str) -> bool:
        ...

    async def list_hidden_jobs(self, user_id: str) -> List[HiddenJob]:
        ...


class AlgorithmSettingsStore(Protocol):
    """Protocol for the feed algorithm settings singleton."""

    async def get_algorithm_settings(self) -> Optional[AlgorithmSettings]:
        """Get the active settings, or None if none were saved."""
        ...

    async def save_algorithm_settings(self, settings: AlgorithmSettings) -> AlgorithmSettings:
        """Replace the active settings."""
        ...


class RotationStore(Protocol):
    """Protocol for front-page rotation records."""

    async def get_rotation_records(self) -> List[RotationRecord]:
        """All rotation records, least recently exposed first."""
        ...

    async def upsert_rotation_record(
        self, job_id: str, stamped_at: datetime, duration_minutes: int
    ) -> RotationRecord:
        """Atomically insert or bump the rotation record for a job."""
        ...


# =============================================================================
# In-memory implementation
# =============================================================================


class InMemoryJobRepository:
    """In-memory storage implementing all three feed protocols.

    A single ``asyncio.Lock`` serializes the capacity-guarded writes so that
    concurrent tasks observe the same guarantees as the database functions.
    """

    def __init__(self, settings: Optional[AlgorithmSettings] = None):
        """Initialize empty storage."""
        self._jobs: Dict[str, Job] = {}
        self._applications: Dict[str, JobApplication] = {}
        self._rotation: Dict[str, RotationRecord] = {}
        self._hidden: Dict[Tuple[str, str], HiddenJob] = {}
        self._settings = settings
        self._lock = asyncio.Lock()

    # === Jobs ===

    def save_job(self, job: Job) -> str:
        """Save a copy of a job listing."""
        self._jobs[job.id] = replace(job)
        return job.id

    async def list_open_jobs(self, filters: FeedFilters) -> List[Job]:
        jobs = [j for j in self._jobs.values() if j.status == JobStatus.OPEN.value]

        if filters.category:
            jobs = [j for j in jobs if (j.category or "").lower() == filters.category.lower()]
        if filters.location:
            needle = filters.location.lower()
            jobs = [j for j in jobs if needle in (j.location or "").lower()]
        if filters.search:
            needle = filters.search.lower()
            jobs = [
                j for j in jobs if needle in j.title.lower() or needle in j.description.lower()
            ]
        if filters.remote is not None:
            jobs = [j for j in jobs if j.is_remote == filters.remote]
        if filters.budget_min is not None:
            jobs = [j for j in jobs if j.budget is not None and j.budget >= filters.budget_min]
        if filters.budget_max is not None:
            jobs = [j for j in jobs if j.budget is not None and j.budget <= filters.budget_max]
        if filters.exclude_job_ids:
            jobs = [j for j in jobs if j.id not in filters.exclude_job_ids]

        # Sort by created_at desc
        jobs.sort(key=lambda j: j.created_at, reverse=True)

        if filters.limit is not None:
            jobs = jobs[: filters.limit]
        return [replace(j) for j in jobs]

    async def get_job(self, job_id: str) -> Optional[Job]:
        job = self._jobs.get(job_id)
        return replace(job) if job else None

    async def recompute_job_status(
        self, job_id: str, changed_at: datetime
    ) -> Optional[StatusChange]:
        async with self._lock:
            job = self._jobs.get(job_id)
            if not job:
                return None
            previous = job.status
            status = resolve_status(
                job.workers_needed,
                self._count(job_id, SLOT_HOLDING_STATUSES),
                self._count(job_id, {ApplicationStatus.COMPLETED.value}),
            )
            if status == previous:
                return StatusChange(job_id=job_id, previous=previous, status=status, changed=False)
            job.status = status
            job.updated_at = changed_at
            return StatusChange(job_id=job_id, previous=previous, status=status, changed=True)

    async def set_workers_needed_if_capacity(
        self, job_id: str, workers_needed: int, updated_at: datetime
    ) -> Tuple[Optional[Job], int]:
        async with self._lock:
            job = self._jobs.get(job_id)
            if not job:
                return None, 0
            accepted = self._count(job_id, SLOT_HOLDING_STATUSES)
            if workers_needed < accepted:
                return None, accepted
            job.workers_needed = workers_needed
            job.updated_at = updated_at
            return replace(job), accepted

    # === Applications ===

    def _count(self, job_id: str, statuses) -> int:
        return sum(
            1 for a in self._applications.values() if a.job_id == job_id and a.status in statuses
        )

    async def get_application(self, application_id: str) -> Optional[JobApplication]:
        app = self._applications.get(application_id)
        return replace(app) if app else None

    async def list_applications(
        self, job_id: str, status: Optional[str] = None
    ) -> List[JobApplication]:
        apps = [a for a in self._applications.values() if a.job_id == job_id]
        if status is not None:
            apps = [a for a in apps if a.status == status]
        # Sort by created_at desc
        apps.sort(key=lambda a: a.created_at, reverse=True)
        return [replace(a) for a in apps]

    async def has_existing_application(self, job_id: str, applicant_id: str) -> bool:
        return any(
            a.job_id == job_id and a.applicant_id == applicant_id
            for a in self._applications.values()
        )

    async def create_application(self, application: JobApplication) -> JobApplication:
        async with self._lock:
            if await self.has_existing_application(application.job_id, application.applicant_id):
                raise DuplicateApplicationError(
                    f"Applicant {application.applicant_id} already applied to {application.job_id}"
                )
            self._applications[application.id] = replace(application)
            return application

    async def get_accepted_count(self, job_id: str) -> int:
        return self._count(job_id, SLOT_HOLDING_STATUSES)

    async def get_completed_count(self, job_id: str) -> int:
        return self._count(job_id, {ApplicationStatus.COMPLETED.value})

    async def accept_application_if_capacity(
        self, job_id: str, application_id: str, accepted_at: datetime
    ) -> AcceptOutcome:
        async with self._lock:
            job = self._jobs.get(job_id)
            app = self._applications.get(application_id)
            if not job or not app or app.job_id != job_id:
                return AcceptOutcome.NOT_FOUND
            if app.status != ApplicationStatus.PENDING.value:
                return AcceptOutcome.NOT_PENDING
            accepted = self._count(job_id, SLOT_HOLDING_STATUSES)
            # Yield between the count and the write, as a remote store would
            await asyncio.sleep(0)
            if accepted >= job.workers_needed:
                return AcceptOutcome.FULL
            app.status = ApplicationStatus.ACCEPTED.value
            app.accepted_at = accepted_at
            return AcceptOutcome.ACCEPTED

    async def update_application_status(
        self,
        application_id: str,
        expected_status: str,
        new_status: str,
        changed_at: datetime,
    ) -> Optional[JobApplication]:
        async with self._lock:
            app = self._applications.get(application_id)
            if not app or app.status != expected_status:
                return None
            app.status = new_status
            timestamp_field = f"{new_status}_at"
            if hasattr(app, timestamp_field):
                setattr(app, timestamp_field, changed_at)
            return replace(app)

    # === Hidden jobs ===

    async def hide_job(self, hidden: HiddenJob) -> HiddenJob:
        key = (hidden.user_id, hidden.job_id)
        existing = self._hidden.get(key)
        if existing:
            return existing
        self._hidden[key] = hidden
        return hidden

    async def unhide_job(self, user_id: str, job_id: str) -> bool:
        return self._hidden.pop((user_id, job_id), None) is not None

    async def list_hidden_jobs(self, user_id: str) -> List[HiddenJob]:
        hidden = [h for (uid, _), h in self._hidden.items() if uid == user_id]
        hidden.sort(key=lambda h: h.hidden_at, reverse=True)
        return hidden

    # === Algorithm settings ===

    async def get_algorithm_settings(self) -> Optional[AlgorithmSettings]:
        return self._settings

    async def save_algorithm_settings(self, settings: AlgorithmSettings) -> AlgorithmSettings:
        now = utc_now()
        if settings.created_at is None:
            settings.created_at = self._settings.created_at if self._settings else now
        settings.updated_at = now
        self._settings = settings
        return settings

    # === Rotation ===

    async def get_rotation_records(self) -> List[RotationRecord]:
        return sorted(self._rotation.values(), key=lambda r: r.last_front_page_at)

    async def upsert_rotation_record(
        self, job_id: str, stamped_at: datetime, duration_minutes: int
    ) -> RotationRecord:
        async with self._lock:
            record = self._rotation.get(job_id)
            if record is None:
                record = RotationRecord(
                    job_id=job_id,
                    last_front_page_at=stamped_at,
                    front_page_duration_minutes=duration_minutes,
                    rotation_cycle=1,
                )
                self._rotation[job_id] = record
            else:
                record.last_front_page_at = max(record.last_front_page_at, stamped_at)
                record.front_page_duration_minutes = duration_minutes
                record.rotation_cycle += 1
            return record
