"""Capacity evaluation for job applications.

Decides whether a worker may apply to a job. The evaluation is a read-only
hint used to gate the apply form and the apply request; the acceptance write
in the repository is what actually enforces ``accepted <= workers_needed``.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from gigboard.feed.models import Job

if TYPE_CHECKING:
    from gigboard.feed.storage import JobRepository

REASON_NOT_FOUND = "not found"
REASON_OWN_JOB = "cannot apply to own job"
REASON_FULL = "no longer accepting applications"
REASON_ALREADY_APPLIED = "already applied"


@dataclass(frozen=True)
class AvailabilityResult:
    """Whether a job can take an application right now."""

    available: bool
    reason: Optional[str] = None
    spots_left: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "available": self.available,
            "reason": self.reason,
            "spots_left": self.spots_left,
        }


def spots_left(job: Job, accepted_count: int) -> int:
    """Remaining worker slots, never negative."""
    return max(0, job.workers_needed - accepted_count)


def evaluate_availability(
    job: Optional[Job],
    accepted_count: int,
    already_applied: bool = False,
    applicant_id: Optional[str] = None,
) -> AvailabilityResult:
    """Apply the admission rules in order; the first match wins."""
    if job is None:
        return AvailabilityResult(available=False, reason=REASON_NOT_FOUND)

    remaining = spots_left(job, accepted_count)

    if applicant_id is not None and applicant_id == job.owner_id:
        return AvailabilityResult(available=False, reason=REASON_OWN_JOB, spots_left=remaining)

    if accepted_count >= job.workers_needed:
        return AvailabilityResult(available=False, reason=REASON_FULL, spots_left=0)

    if applicant_id is not None and already_applied:
        return AvailabilityResult(
            available=False, reason=REASON_ALREADY_APPLIED, spots_left=remaining
        )

    return AvailabilityResult(available=True, spots_left=remaining)


def worker_count_error(new_count: int, accepted_count: int) -> Optional[str]:
    """Validate a requested workers-needed value.

    Returns an error message, or None if the change is allowed.
    """
    if isinstance(new_count, bool) or not isinstance(new_count, int) or new_count < 1:
        return "invalid worker count"
    if new_count < accepted_count:
        return (
            f"cannot reduce worker count below {accepted_count} "
            "(current accepted applications)"
        )
    return None


class CapacityEvaluator:
    """Gathers job, count and duplicate data and evaluates admission."""

    def __init__(self, repository: "JobRepository"):
        self.repository = repository

    async def check_availability(
        self, job_id: str, applicant_id: Optional[str] = None
    ) -> AvailabilityResult:
        """Read-only admission check for ``applicant_id`` (or anyone)."""
        job = await self.repository.get_job(job_id)
        if job is None:
            return evaluate_availability(None, 0)
        accepted = await self.repository.get_accepted_count(job_id)
        already_applied = False
        if applicant_id is not None and applicant_id != job.owner_id:
            already_applied = await self.repository.has_existing_application(job_id, applicant_id)
        return evaluate_availability(job, accepted, already_applied, applicant_id)
