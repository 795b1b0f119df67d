"""Job feed ranking.

Two policies order the open-jobs feed:

- newest_first: most recent of creation or last update first, so an edited
  job (reopened, worker count raised) resurfaces like a new post.
- time_rotation: longest time since last front-page exposure first; jobs
  never shown sort as if last shown at the epoch.

Both sorts are stable, so ties keep their input order. A disabled policy or
an unknown algorithm type leaves the input order untouched.

NOTE: ``RankEngine.rank`` under time_rotation is not side-effect free. It
stamps the front-page jobs through the RotationTracker. Pass ``stamp=False``
for a preview that must not affect future rotation.
"""

import logging
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Sequence

from gigboard.config import DEFAULT_FRONT_PAGE_SIZE
from gigboard.feed.models import (
    EPOCH,
    AlgorithmSettings,
    AlgorithmType,
    Job,
    RotationRecord,
    utc_now,
)
from gigboard.feed.rotation import RotationStampError, RotationTracker

logger = logging.getLogger(__name__)


def rank_newest_first(jobs: Sequence[Job]) -> List[Job]:
    """Order by max(created_at, updated_at), descending."""
    return sorted(jobs, key=lambda j: j.last_activity_at, reverse=True)


def rank_time_rotation(
    jobs: Sequence[Job],
    rotation_records: Mapping[str, RotationRecord],
    now: datetime,
) -> List[Job]:
    """Order by time since last front-page exposure, descending."""

    def time_since_shown(job: Job):
        record = rotation_records.get(job.id)
        last_shown = record.last_front_page_at if record else EPOCH
        return now - last_shown

    return sorted(jobs, key=time_since_shown, reverse=True)


def rank_jobs(
    jobs: Sequence[Job],
    settings: AlgorithmSettings,
    rotation_records: Optional[Mapping[str, RotationRecord]] = None,
    now: Optional[datetime] = None,
) -> List[Job]:
    """Order jobs according to ``settings``. Pure."""
    if not settings.is_enabled:
        return list(jobs)

    if settings.algorithm_type == AlgorithmType.NEWEST_FIRST.value:
        return rank_newest_first(jobs)

    if settings.algorithm_type == AlgorithmType.TIME_ROTATION.value:
        return rank_time_rotation(jobs, rotation_records or {}, now or utc_now())

    logger.warning(
        "Unknown feed algorithm type %r; serving jobs in repository order",
        settings.algorithm_type,
    )
    return list(jobs)


class RankEngine:
    """Ranks feeds and keeps the rotation tracker current."""

    def __init__(self, tracker: RotationTracker, front_page_size: int = DEFAULT_FRONT_PAGE_SIZE):
        self.tracker = tracker
        self.front_page_size = front_page_size

    async def _load_rotation(self) -> Dict[str, RotationRecord]:
        try:
            return await self.tracker.records_by_job()
        except Exception:
            logger.exception("Failed to load rotation records; ranking without them")
            return {}

    async def rank(
        self,
        jobs: Sequence[Job],
        settings: AlgorithmSettings,
        now: Optional[datetime] = None,
        stamp: bool = True,
    ) -> List[Job]:
        """Rank ``jobs`` and, for time_rotation, stamp the front page.

        Stamping failures are logged and never fail the ranking.
        """
        now = now or utc_now()
        rotating = settings.is_enabled and settings.algorithm_type == AlgorithmType.TIME_ROTATION.value

        rotation_records = await self._load_rotation() if rotating else None
        ordered = rank_jobs(jobs, settings, rotation_records, now)

        if rotating and stamp and ordered:
            front_page = [j.id for j in ordered[: self.front_page_size]]
            try:
                await self.tracker.stamp(front_page, settings.rotation_hours, now)
            except RotationStampError as e:
                logger.error(
                    "Rotation stamping failed for jobs %s: %s",
                    e.failed_job_ids,
                    e.cause,
                    exc_info=e.cause,
                )

        return ordered
