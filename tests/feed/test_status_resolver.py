"""Tests for job status resolution."""

import logging
from datetime import timedelta

import pytest

from gigboard.feed.status import StatusResolver, resolve_status


class TestResolveStatus:
    """Tests for the pure status function."""

    def test_all_slots_filled_no_completions(self):
        assert resolve_status(3, 3, 0) == "in_progress"

    def test_all_slots_filled_all_completed(self):
        assert resolve_status(3, 3, 3) == "completed"

    def test_slots_remaining(self):
        assert resolve_status(3, 2, 0) == "open"

    def test_partial_completion_stays_in_progress(self):
        assert resolve_status(3, 3, 2) == "in_progress"

    def test_completions_without_full_acceptance_stay_open(self):
        """Completed work only completes the job once every slot is filled."""
        assert resolve_status(3, 2, 2) == "open"

    def test_idempotent(self):
        first = resolve_status(2, 2, 1)
        second = resolve_status(2, 2, 1)
        assert first == second == "in_progress"


class TestStatusResolver:
    """Tests for recomputing and persisting statuses."""

    @pytest.mark.asyncio
    async def test_missing_job(self, repo):
        change = await StatusResolver(repo).recompute("missing")
        assert change.status is None
        assert change.changed is False

    @pytest.mark.asyncio
    async def test_recompute_writes_change(self, repo, make_job, add_application):
        repo.save_job(make_job("job-1", workers_needed=1))
        add_application("a1", "job-1", "w1", status="accepted")

        change = await StatusResolver(repo).recompute("job-1")

        assert change.previous == "open"
        assert change.status == "in_progress"
        assert change.changed is True
        assert (await repo.get_job("job-1")).status == "in_progress"

    @pytest.mark.asyncio
    async def test_change_touches_updated_at(self, repo, make_job, add_application, clock, t0):
        repo.save_job(make_job("job-1", workers_needed=1))
        add_application("a1", "job-1", "w1", status="accepted")
        clock.advance(hours=3)

        await StatusResolver(repo, clock=clock).recompute("job-1")

        assert (await repo.get_job("job-1")).updated_at == t0 + timedelta(hours=3)

    @pytest.mark.asyncio
    async def test_second_recompute_skips_write(self, repo, make_job, add_application, clock):
        """Recomputing with unchanged counts leaves the job untouched."""
        repo.save_job(make_job("job-1", workers_needed=1))
        add_application("a1", "job-1", "w1", status="accepted")
        resolver = StatusResolver(repo, clock=clock)
        await resolver.recompute("job-1")
        touched_at = (await repo.get_job("job-1")).updated_at

        clock.advance(hours=1)
        change = await resolver.recompute("job-1")

        assert change.changed is False
        assert change.previous == change.status == "in_progress"
        assert (await repo.get_job("job-1")).updated_at == touched_at

    @pytest.mark.asyncio
    async def test_reopens_when_slot_frees(self, repo, make_job, add_application):
        repo.save_job(make_job("job-1", workers_needed=1, status="in_progress"))
        add_application("a1", "job-1", "w1", status="cancelled")

        change = await StatusResolver(repo).recompute("job-1")

        assert change.previous == "in_progress"
        assert change.status == "open"
        assert change.changed is True

    @pytest.mark.asyncio
    async def test_logs_transition(self, repo, make_job, add_application, caplog):
        repo.save_job(make_job("job-1", workers_needed=1))
        add_application("a1", "job-1", "w1", status="accepted")

        with caplog.at_level(logging.INFO, logger="gigboard.feed.status"):
            await StatusResolver(repo).recompute("job-1")

        assert "Job job-1 status open -> in_progress" in caplog.text
