"""Job status resolution.

A job's lifecycle status is derived from its application counts:

- completed: every slot is filled and every slot's work is completed
- in_progress: every slot is filled
- open: otherwise

``StatusResolver.recompute`` must run after an acceptance, a completion, a
cancellation of an accepted application and a worker-count change.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Optional

from gigboard.feed.models import JobStatus, utc_now

if TYPE_CHECKING:
    from gigboard.feed.storage import JobRepository

logger = logging.getLogger(__name__)


def resolve_status(workers_needed: int, accepted_count: int, completed_count: int) -> str:
    """Derive a job status from its counts."""
    if accepted_count >= workers_needed and completed_count >= workers_needed:
        return JobStatus.COMPLETED.value
    if accepted_count >= workers_needed:
        return JobStatus.IN_PROGRESS.value
    return JobStatus.OPEN.value


@dataclass(frozen=True)
class StatusChange:
    """Outcome of a status recomputation."""

    job_id: str
    previous: Optional[str]
    status: Optional[str]
    changed: bool


class StatusResolver:
    """Recomputes and persists job statuses.

    The read, resolve and write happen inside the repository under the job's
    lock, so concurrent events cannot leave a stale status behind.
    """

    def __init__(
        self,
        repository: "JobRepository",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository
        self.clock = clock or utc_now

    async def recompute(self, job_id: str) -> StatusChange:
        """Recompute a job's status, writing only when it changed.

        A changed job is touched so that a reopened listing resurfaces in the
        newest-first feed. Returns a StatusChange with ``status=None`` if the
        job is missing.
        """
        change = await self.repository.recompute_job_status(job_id, self.clock())
        if change is None:
            return StatusChange(job_id=job_id, previous=None, status=None, changed=False)

        if change.changed:
            logger.info("Job %s status %s -> %s", job_id, change.previous, change.status)
        return change
