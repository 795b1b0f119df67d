"""Tests for application capacity evaluation."""

import pytest

from gigboard.feed.capacity import (
    REASON_ALREADY_APPLIED,
    REASON_FULL,
    REASON_NOT_FOUND,
    REASON_OWN_JOB,
    evaluate_availability,
    spots_left,
    worker_count_error,
)


class TestEvaluateAvailability:
    """Tests for the pure admission rules."""

    def test_missing_job(self):
        result = evaluate_availability(None, 0, applicant_id="worker-1")
        assert result.available is False
        assert result.reason == REASON_NOT_FOUND
        assert result.spots_left is None

    def test_full_job_rejects_everyone(self, make_job):
        """A job with all slots filled rejects any applicant."""
        job = make_job("job-1", workers_needed=2)
        for applicant in ("worker-1", "worker-2", None):
            result = evaluate_availability(job, 2, applicant_id=applicant)
            assert result.available is False
            assert result.reason == "no longer accepting applications"
            assert result.spots_left == 0

    def test_owner_cannot_apply_even_with_slots(self, make_job):
        job = make_job("job-1", owner_id="owner-1", workers_needed=3)
        result = evaluate_availability(job, 0, applicant_id="owner-1")
        assert result.available is False
        assert result.reason == "cannot apply to own job"
        assert result.spots_left == 3

    def test_owner_check_precedes_full_check(self, make_job):
        job = make_job("job-1", owner_id="owner-1", workers_needed=1)
        result = evaluate_availability(job, 1, applicant_id="owner-1")
        assert result.reason == REASON_OWN_JOB

    def test_full_check_precedes_duplicate_check(self, make_job):
        job = make_job("job-1", workers_needed=1)
        result = evaluate_availability(job, 1, already_applied=True, applicant_id="worker-1")
        assert result.reason == REASON_FULL

    def test_already_applied(self, make_job):
        job = make_job("job-1", workers_needed=2)
        result = evaluate_availability(job, 1, already_applied=True, applicant_id="worker-1")
        assert result.available is False
        assert result.reason == REASON_ALREADY_APPLIED

    def test_available_reports_spots_left(self, make_job):
        job = make_job("job-1", workers_needed=5)
        result = evaluate_availability(job, 2, applicant_id="worker-1")
        assert result.available is True
        assert result.reason is None
        assert result.spots_left == 3

    def test_anonymous_check(self, make_job):
        """Without an applicant only capacity is evaluated."""
        job = make_job("job-1", workers_needed=1)
        result = evaluate_availability(job, 0, already_applied=True)
        assert result.available is True
        assert result.spots_left == 1

    def test_spots_left_never_negative(self, make_job):
        job = make_job("job-1", workers_needed=1)
        assert spots_left(job, 3) == 0


class TestWorkerCountValidation:
    """Tests for worker count change validation."""

    @pytest.mark.parametrize("value", [0, -1, True, 2.5, "3", None])
    def test_invalid_values(self, value):
        assert worker_count_error(value, 0) == "invalid worker count"

    def test_below_accepted(self):
        error = worker_count_error(2, 3)
        assert error is not None
        assert "below 3" in error

    def test_equal_to_accepted_is_allowed(self):
        assert worker_count_error(3, 3) is None

    def test_increase_is_allowed(self):
        assert worker_count_error(10, 3) is None


class TestCapacityEvaluator:
    """Tests for the repository-backed availability check."""

    @pytest.mark.asyncio
    async def test_check_unknown_job(self, service):
        result = await service.check_availability("nope", "worker-1")
        assert result.available is False
        assert result.reason == REASON_NOT_FOUND

    @pytest.mark.asyncio
    async def test_check_counts_accepted_and_completed(self, service, repo, make_job, add_application):
        repo.save_job(make_job("job-1", workers_needed=3))
        add_application("a1", "job-1", "w1", status="accepted")
        add_application("a2", "job-1", "w2", status="completed")
        add_application("a3", "job-1", "w3", status="rejected")
        add_application("a4", "job-1", "w4", status="cancelled")

        result = await service.check_availability("job-1", "w5")
        assert result.available is True
        assert result.spots_left == 1

    @pytest.mark.asyncio
    async def test_check_detects_existing_application(self, service, repo, make_job, add_application):
        repo.save_job(make_job("job-1", workers_needed=3))
        add_application("a1", "job-1", "w1", status="rejected")

        result = await service.check_availability("job-1", "w1")
        assert result.available is False
        assert result.reason == REASON_ALREADY_APPLIED

    @pytest.mark.asyncio
    async def test_check_has_no_side_effects(self, service, repo, make_job):
        repo.save_job(make_job("job-1", workers_needed=1))
        await service.check_availability("job-1", "w1")
        assert await repo.list_applications("job-1") == []
        assert (await repo.get_job("job-1")).status == "open"
