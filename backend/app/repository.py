"""Supabase-backed storage for the job feed.

Implements the ``JobRepository``, ``AlgorithmSettingsStore`` and
``RotationStore`` protocols from ``gigboard.feed.storage``. The Supabase
client is synchronous, so every request runs in a worker thread.

Capacity-guarded writes and rotation stamping go through database functions
that lock the job row, so concurrent API workers cannot overfill a job.
"""

import asyncio
from datetime import datetime
from typing import Any

from gigboard.feed import (
    AcceptOutcome,
    AlgorithmSettings,
    DuplicateApplicationError,
    FeedFilters,
    HiddenJob,
    Job,
    JobApplication,
    RotationRecord,
    StatusChange,
)
from gigboard.feed.models import SLOT_HOLDING_STATUSES, ApplicationStatus, JobStatus
from supabase import Client

from .database import (
    ACCEPT_APPLICATION_RPC,
    ALGORITHM_SETTINGS_TABLE,
    HIDDEN_JOBS_TABLE,
    JOB_APPLICATIONS_TABLE,
    JOBS_TABLE,
    RECOMPUTE_STATUS_RPC,
    ROTATION_TABLE,
    SET_WORKERS_NEEDED_RPC,
    STAMP_ROTATION_RPC,
)
from .logging_config import get_logger

logger = get_logger("gigboard.repository")

# Postgres unique_violation
UNIQUE_VIOLATION = "23505"

# The settings table holds a single row
SETTINGS_ROW_ID = 1


def _is_unique_violation(error: Exception) -> bool:
    return getattr(error, "code", None) == UNIQUE_VIOLATION


def _single(data: Any) -> dict | None:
    """First row of an RPC/query payload, which may be a row or a list of rows."""
    if not data:
        return None
    if isinstance(data, list):
        return data[0]
    return data


def _escape_like(value: str) -> str:
    # PostgREST filter values: escape LIKE wildcards and the or() separators
    for char in ("\\", "%", "_"):
        value = value.replace(char, "\\" + char)
    return value.replace(",", " ").replace("(", " ").replace(")", " ")


class SupabaseJobRepository:
    """Job feed storage on Supabase."""

    def __init__(self, db: Client):
        self.db = db

    async def _execute(self, query):
        return await asyncio.to_thread(query.execute)

    # =========================================================================
    # Jobs
    # =========================================================================

    async def list_open_jobs(self, filters: FeedFilters) -> list[Job]:
        query = self.db.table(JOBS_TABLE).select("*").eq("status", JobStatus.OPEN.value)

        if filters.category:
            query = query.ilike("category", _escape_like(filters.category))
        if filters.location:
            query = query.ilike("location", f"%{_escape_like(filters.location)}%")
        if filters.search:
            term = _escape_like(filters.search)
            query = query.or_(f"title.ilike.%{term}%,description.ilike.%{term}%")
        if filters.remote is not None:
            query = query.eq("is_remote", filters.remote)
        if filters.budget_min is not None:
            query = query.gte("budget", filters.budget_min)
        if filters.budget_max is not None:
            query = query.lte("budget", filters.budget_max)
        if filters.exclude_job_ids:
            query = query.not_.in_("id", sorted(filters.exclude_job_ids))

        query = query.order("created_at", desc=True)
        if filters.limit is not None:
            query = query.limit(filters.limit)

        result = await self._execute(query)
        return [Job.from_row(row) for row in result.data or []]

    async def get_job(self, job_id: str) -> Job | None:
        result = await self._execute(
            self.db.table(JOBS_TABLE).select("*").eq("id", job_id).limit(1)
        )
        return Job.from_row(result.data[0]) if result.data else None

    async def recompute_job_status(
        self, job_id: str, changed_at: datetime
    ) -> StatusChange | None:
        result = await self._execute(
            self.db.rpc(
                RECOMPUTE_STATUS_RPC,
                {"p_job_id": job_id, "p_changed_at": changed_at.isoformat()},
            )
        )
        payload = _single(result.data)
        if not payload:
            return None
        return StatusChange(
            job_id=job_id,
            previous=payload["previous_status"],
            status=payload["status"],
            changed=bool(payload["changed"]),
        )

    async def set_workers_needed_if_capacity(
        self, job_id: str, workers_needed: int, updated_at: datetime
    ) -> tuple[Job | None, int]:
        result = await self._execute(
            self.db.rpc(
                SET_WORKERS_NEEDED_RPC,
                {
                    "p_job_id": job_id,
                    "p_workers_needed": workers_needed,
                    "p_updated_at": updated_at.isoformat(),
                },
            )
        )
        payload = _single(result.data) or {}
        row = payload.get("job")
        accepted = int(payload.get("accepted_count") or 0)
        return (Job.from_row(row) if row else None), accepted

    # =========================================================================
    # Applications
    # =========================================================================

    async def get_application(self, application_id: str) -> JobApplication | None:
        result = await self._execute(
            self.db.table(JOB_APPLICATIONS_TABLE).select("*").eq("id", application_id).limit(1)
        )
        return JobApplication.from_row(result.data[0]) if result.data else None

    async def list_applications(
        self, job_id: str, status: str | None = None
    ) -> list[JobApplication]:
        query = self.db.table(JOB_APPLICATIONS_TABLE).select("*").eq("job_id", job_id)
        if status is not None:
            query = query.eq("status", status)
        result = await self._execute(query.order("created_at", desc=True))
        return [JobApplication.from_row(row) for row in result.data or []]

    async def has_existing_application(self, job_id: str, applicant_id: str) -> bool:
        result = await self._execute(
            self.db.table(JOB_APPLICATIONS_TABLE)
            .select("id")
            .eq("job_id", job_id)
            .eq("applicant_id", applicant_id)
            .limit(1)
        )
        return bool(result.data)

    async def create_application(self, application: JobApplication) -> JobApplication:
        data = application.to_dict()
        try:
            result = await self._execute(self.db.table(JOB_APPLICATIONS_TABLE).insert(data))
        except Exception as e:
            if _is_unique_violation(e):
                raise DuplicateApplicationError(
                    f"Applicant {application.applicant_id} already applied to {application.job_id}"
                ) from e
            raise
        if not result.data:
            raise RuntimeError(f"Failed to create application for job {application.job_id}")
        return JobApplication.from_row(result.data[0])

    async def _count(self, job_id: str, statuses) -> int:
        result = await self._execute(
            self.db.table(JOB_APPLICATIONS_TABLE)
            .select("id", count="exact")
            .eq("job_id", job_id)
            .in_("status", sorted(statuses))
        )
        return result.count or 0

    async def get_accepted_count(self, job_id: str) -> int:
        return await self._count(job_id, SLOT_HOLDING_STATUSES)

    async def get_completed_count(self, job_id: str) -> int:
        return await self._count(job_id, {ApplicationStatus.COMPLETED.value})

    async def accept_application_if_capacity(
        self, job_id: str, application_id: str, accepted_at: datetime
    ) -> AcceptOutcome:
        result = await self._execute(
            self.db.rpc(
                ACCEPT_APPLICATION_RPC,
                {
                    "p_job_id": job_id,
                    "p_application_id": application_id,
                    "p_accepted_at": accepted_at.isoformat(),
                },
            )
        )
        outcome = result.data
        if isinstance(outcome, list):
            outcome = outcome[0] if outcome else None
        if isinstance(outcome, dict):
            outcome = next(iter(outcome.values()), None)
        if outcome is None:
            raise RuntimeError(f"{ACCEPT_APPLICATION_RPC} returned no outcome for {application_id}")
        return AcceptOutcome(outcome)

    async def update_application_status(
        self,
        application_id: str,
        expected_status: str,
        new_status: str,
        changed_at: datetime,
    ) -> JobApplication | None:
        """Atomically update an application with optimistic locking.

        Uses UPDATE ... WHERE status = expected_status; no row back means
        the application is gone or another request moved it first.
        """
        result = await self._execute(
            self.db.table(JOB_APPLICATIONS_TABLE)
            .update({"status": new_status, f"{new_status}_at": changed_at.isoformat()})
            .eq("id", application_id)
            .eq("status", expected_status)
        )
        if result.data:
            return JobApplication.from_row(result.data[0])

        logger.warning(
            f"Conditional update missed on application {application_id}: "
            f"expected status '{expected_status}'"
        )
        return None

    # =========================================================================
    # Hidden jobs
    # =========================================================================

    async def _get_hidden(self, user_id: str, job_id: str) -> HiddenJob | None:
        result = await self._execute(
            self.db.table(HIDDEN_JOBS_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .eq("job_id", job_id)
            .limit(1)
        )
        return HiddenJob.from_row(result.data[0]) if result.data else None

    async def hide_job(self, hidden: HiddenJob) -> HiddenJob:
        existing = await self._get_hidden(hidden.user_id, hidden.job_id)
        if existing:
            return existing

        data = {
            "user_id": hidden.user_id,
            "job_id": hidden.job_id,
            "reason": hidden.reason,
            "hidden_at": hidden.hidden_at.isoformat(),
        }
        try:
            result = await self._execute(self.db.table(HIDDEN_JOBS_TABLE).insert(data))
        except Exception as e:
            if not _is_unique_violation(e):
                raise
            # Hidden concurrently by another request
            return await self._get_hidden(hidden.user_id, hidden.job_id) or hidden
        return HiddenJob.from_row(result.data[0]) if result.data else hidden

    async def unhide_job(self, user_id: str, job_id: str) -> bool:
        result = await self._execute(
            self.db.table(HIDDEN_JOBS_TABLE).delete().eq("user_id", user_id).eq("job_id", job_id)
        )
        return bool(result.data)

    async def list_hidden_jobs(self, user_id: str) -> list[HiddenJob]:
        result = await self._execute(
            self.db.table(HIDDEN_JOBS_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .order("hidden_at", desc=True)
        )
        return [HiddenJob.from_row(row) for row in result.data or []]

    # =========================================================================
    # Algorithm settings
    # =========================================================================

    async def get_algorithm_settings(self) -> AlgorithmSettings | None:
        result = await self._execute(
            self.db.table(ALGORITHM_SETTINGS_TABLE)
            .select("*")
            .order("updated_at", desc=True)
            .limit(1)
        )
        return AlgorithmSettings.from_row(result.data[0]) if result.data else None

    async def save_algorithm_settings(self, settings: AlgorithmSettings) -> AlgorithmSettings:
        data = {
            "id": SETTINGS_ROW_ID,
            "algorithm_type": settings.algorithm_type,
            "is_enabled": settings.is_enabled,
            "rotation_hours": settings.rotation_hours,
        }
        result = await self._execute(
            self.db.table(ALGORITHM_SETTINGS_TABLE).upsert(data, on_conflict="id")
        )
        if not result.data:
            raise RuntimeError("Failed to save feed algorithm settings")
        return AlgorithmSettings.from_row(result.data[0])

    # =========================================================================
    # Rotation
    # =========================================================================

    async def get_rotation_records(self) -> list[RotationRecord]:
        result = await self._execute(
            self.db.table(ROTATION_TABLE).select("*").order("last_front_page_at", desc=False)
        )
        return [RotationRecord.from_row(row) for row in result.data or []]

    async def upsert_rotation_record(
        self, job_id: str, stamped_at: datetime, duration_minutes: int
    ) -> RotationRecord:
        result = await self._execute(
            self.db.rpc(
                STAMP_ROTATION_RPC,
                {
                    "p_job_id": job_id,
                    "p_stamped_at": stamped_at.isoformat(),
                    "p_duration_minutes": duration_minutes,
                },
            )
        )
        row = _single(result.data)
        if row is None:
            raise RuntimeError(f"{STAMP_ROTATION_RPC} returned no row for job {job_id}")
        return RotationRecord.from_row(row)
