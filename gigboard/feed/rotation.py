"""Front-page rotation tracking.

Each time a ``time_rotation`` feed is computed, the jobs occupying the
front-page slots are stamped with the current time. Jobs that have waited
longest since their last stamp rank first on the next request.
"""

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

from gigboard.feed.models import RotationRecord

if TYPE_CHECKING:
    from gigboard.feed.storage import RotationStore

logger = logging.getLogger(__name__)


class RotationStampError(Exception):
    """Raised when one or more rotation records could not be written."""

    def __init__(self, failed_job_ids: List[str], cause: Exception):
        super().__init__(
            f"Failed to stamp rotation for {len(failed_job_ids)} job(s): {cause}"
        )
        self.failed_job_ids = failed_job_ids
        self.cause = cause


class RotationTracker:
    """Records front-page exposure per job."""

    def __init__(self, store: "RotationStore"):
        self.store = store

    async def records_by_job(self) -> Dict[str, RotationRecord]:
        """Current rotation records keyed by job ID."""
        records = await self.store.get_rotation_records()
        return {r.job_id: r for r in records}

    async def stamp(
        self, job_ids: Iterable[str], rotation_hours: float, now: datetime
    ) -> List[RotationRecord]:
        """Stamp front-page exposure for ``job_ids``.

        Every job is attempted even if an earlier upsert fails; failures are
        collected and raised together as a RotationStampError.
        """
        duration_minutes = int(round(rotation_hours * 60))
        stamped: List[RotationRecord] = []
        failed: List[str] = []
        first_error: Optional[Exception] = None

        for job_id in job_ids:
            try:
                stamped.append(await self.store.upsert_rotation_record(job_id, now, duration_minutes))
            except Exception as e:
                failed.append(job_id)
                if first_error is None:
                    first_error = e

        if failed:
            raise RotationStampError(failed, first_error)

        logger.debug("Stamped front-page rotation for %d job(s)", len(stamped))
        return stamped

    async def report(self) -> List[RotationRecord]:
        """All records, least recently exposed first."""
        records = await self.store.get_rotation_records()
        return sorted(records, key=lambda r: r.last_front_page_at)
