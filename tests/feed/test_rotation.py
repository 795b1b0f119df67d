"""Tests for front-page rotation tracking."""

from datetime import timedelta

import pytest

from gigboard.feed.rotation import RotationStampError, RotationTracker


class TestRotationTracker:
    """Tests for stamping and reporting."""

    @pytest.mark.asyncio
    async def test_first_stamp_creates_record(self, repo, t0):
        tracker = RotationTracker(repo)

        stamped = await tracker.stamp(["job-1"], rotation_hours=8, now=t0)

        assert len(stamped) == 1
        record = stamped[0]
        assert record.job_id == "job-1"
        assert record.last_front_page_at == t0
        assert record.front_page_duration_minutes == 480
        assert record.rotation_cycle == 1

    @pytest.mark.asyncio
    async def test_restamp_increments_cycle(self, repo, t0):
        tracker = RotationTracker(repo)
        await tracker.stamp(["job-1"], rotation_hours=8, now=t0)
        await tracker.stamp(["job-1"], rotation_hours=2, now=t0 + timedelta(hours=1))

        records = await tracker.records_by_job()

        assert records["job-1"].rotation_cycle == 2
        assert records["job-1"].last_front_page_at == t0 + timedelta(hours=1)
        assert records["job-1"].front_page_duration_minutes == 120

    @pytest.mark.asyncio
    async def test_last_front_page_at_never_moves_backwards(self, repo, t0):
        tracker = RotationTracker(repo)
        await tracker.stamp(["job-1"], rotation_hours=8, now=t0)
        await tracker.stamp(["job-1"], rotation_hours=8, now=t0 - timedelta(minutes=10))

        records = await tracker.records_by_job()

        assert records["job-1"].last_front_page_at == t0
        assert records["job-1"].rotation_cycle == 2

    @pytest.mark.asyncio
    async def test_fractional_hours(self, repo, t0):
        stamped = await RotationTracker(repo).stamp(["job-1"], rotation_hours=1.5, now=t0)
        assert stamped[0].front_page_duration_minutes == 90

    @pytest.mark.asyncio
    async def test_failures_are_collected(self, repo, t0):
        """One failing job doesn't stop the others from being stamped."""
        original = repo.upsert_rotation_record

        async def flaky_upsert(job_id, stamped_at, duration_minutes):
            if job_id == "bad":
                raise TimeoutError("write timed out")
            return await original(job_id, stamped_at, duration_minutes)

        repo.upsert_rotation_record = flaky_upsert
        tracker = RotationTracker(repo)

        with pytest.raises(RotationStampError) as exc_info:
            await tracker.stamp(["good-1", "bad", "good-2"], rotation_hours=8, now=t0)

        assert exc_info.value.failed_job_ids == ["bad"]
        assert isinstance(exc_info.value.cause, TimeoutError)
        assert set(await tracker.records_by_job()) == {"good-1", "good-2"}

    @pytest.mark.asyncio
    async def test_report_orders_least_recent_first(self, repo, t0):
        tracker = RotationTracker(repo)
        await tracker.stamp(["recent"], rotation_hours=8, now=t0)
        await tracker.stamp(["older"], rotation_hours=8, now=t0 - timedelta(hours=3))

        report = await tracker.report()

        assert [r.job_id for r in report] == ["older", "recent"]
