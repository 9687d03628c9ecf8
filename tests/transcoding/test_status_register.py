"""Tests for job phase tracking and per-job leases."""

import asyncio

import pytest
from hypothesis import given, settings, strategies as st

from hls_pipeline.modules.transcoding.errors import InvalidPhaseTransition, JobInProgressError
from hls_pipeline.modules.transcoding.models import JobPhase
from hls_pipeline.modules.transcoding.status import (
    JobLeaseRegistry,
    StatusRegister,
    is_valid_transition,
)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


phase_strategy = st.sampled_from(list(JobPhase))


class TestPhaseTransitions:

    def test_happy_path(self, status_reg) -> None:
        for phase in (JobPhase.CONVERTING, JobPhase.UPLOADING, JobPhase.COMPLETED):
            status_reg.set_phase("job-1", phase)
            assert status_reg.get_phase("job-1") == phase

    @pytest.mark.parametrize("current", [JobPhase.CONVERTING, JobPhase.UPLOADING])
    def test_error_from_any_running_phase(self, status_reg, current: JobPhase) -> None:
        status_reg.set_phase("job-1", current)

        status_reg.set_phase("job-1", JobPhase.ERROR)

        assert status_reg.get_phase("job-1") == JobPhase.ERROR

    @pytest.mark.parametrize("current,new", [
        (JobPhase.UPLOADING, JobPhase.CONVERTING),
        (JobPhase.COMPLETED, JobPhase.UPLOADING),
        (JobPhase.ERROR, JobPhase.UPLOADING),
        (JobPhase.ERROR, JobPhase.COMPLETED),
    ])
    def test_reversal_is_rejected(self, status_reg, current: JobPhase, new: JobPhase) -> None:
        status_reg.set_phase("job-1", current)

        with pytest.raises(InvalidPhaseTransition):
            status_reg.set_phase("job-1", new)

        assert status_reg.get_phase("job-1") == current

    @pytest.mark.parametrize("terminal", [JobPhase.COMPLETED, JobPhase.ERROR])
    def test_terminal_job_can_restart(self, status_reg, terminal: JobPhase) -> None:
        status_reg.set_phase("job-1", terminal)

        status_reg.set_phase("job-1", JobPhase.CONVERTING)

        assert status_reg.get_phase("job-1") == JobPhase.CONVERTING

    @given(sequence=st.lists(phase_strategy, min_size=1, max_size=12))
    @settings(max_examples=200)
    def test_accepted_writes_never_move_backwards(self, sequence: list[JobPhase]) -> None:
        """Within one run, accepted phases follow the lifecycle order."""
        register = StatusRegister(ttl_seconds=3600, max_entries=10)
        order = [JobPhase.CONVERTING, JobPhase.UPLOADING, JobPhase.COMPLETED]
        previous = None

        for phase in sequence:
            try:
                register.set_phase("job", phase)
            except InvalidPhaseTransition:
                assert not is_valid_transition(previous, phase)
                continue
            if previous in order and phase in order and previous not in (JobPhase.COMPLETED,):
                assert order.index(phase) >= order.index(previous)
            previous = phase
            assert register.get_phase("job") == phase

    def test_unknown_job(self, status_reg) -> None:
        assert status_reg.get_phase("nope") is None


class TestBoundsAndExpiry:

    def test_entries_expire_after_ttl(self) -> None:
        clock = FakeClock()
        register = StatusRegister(ttl_seconds=60, max_entries=10, clock=clock)
        register.set_phase("job-1", JobPhase.CONVERTING)

        clock.now += 59
        assert register.get_phase("job-1") == JobPhase.CONVERTING

        clock.now += 1
        assert register.get_phase("job-1") is None
        assert len(register) == 0

    def test_write_refreshes_ttl(self) -> None:
        clock = FakeClock()
        register = StatusRegister(ttl_seconds=60, max_entries=10, clock=clock)
        register.set_phase("job-1", JobPhase.CONVERTING)

        clock.now += 50
        register.set_phase("job-1", JobPhase.UPLOADING)
        clock.now += 50

        assert register.get_phase("job-1") == JobPhase.UPLOADING

    def test_expired_terminal_entry_does_not_block_new_run(self) -> None:
        clock = FakeClock()
        register = StatusRegister(ttl_seconds=60, max_entries=10, clock=clock)
        register.set_phase("job-1", JobPhase.UPLOADING)
        clock.now += 120

        register.set_phase("job-1", JobPhase.CONVERTING)

        assert register.get_phase("job-1") == JobPhase.CONVERTING

    def test_oldest_entry_is_evicted(self) -> None:
        register = StatusRegister(ttl_seconds=3600, max_entries=3)
        for job_id in ("a", "b", "c"):
            register.set_phase(job_id, JobPhase.CONVERTING)

        register.set_phase("a", JobPhase.UPLOADING)
        register.set_phase("d", JobPhase.CONVERTING)

        assert len(register) == 3
        assert register.get_phase("b") is None
        assert register.get_phase("a") == JobPhase.UPLOADING
        assert register.get_phase("d") == JobPhase.CONVERTING

    @given(count=st.integers(min_value=0, max_value=50), limit=st.integers(min_value=1, max_value=10))
    @settings(max_examples=100)
    def test_size_never_exceeds_limit(self, count: int, limit: int) -> None:
        register = StatusRegister(ttl_seconds=3600, max_entries=limit)

        for i in range(count):
            register.set_phase(f"job-{i}", JobPhase.CONVERTING)

        assert len(register) == min(count, limit)


class TestJobLeases:

    @pytest.mark.asyncio
    async def test_second_request_for_same_id_fails_fast(self, leases) -> None:
        async with leases.acquire("job-1"):
            assert leases.is_active("job-1")
            with pytest.raises(JobInProgressError) as exc_info:
                async with leases.acquire("job-1"):
                    pass  # pragma: no cover

        assert exc_info.value.object_id == "job-1"
        assert not leases.is_active("job-1")

    @pytest.mark.asyncio
    async def test_different_ids_run_concurrently(self, leases) -> None:
        entered = []

        async def hold(job_id: str) -> None:
            async with leases.acquire(job_id):
                entered.append(job_id)
                await asyncio.sleep(0.01)

        await asyncio.gather(hold("job-1"), hold("job-2"))

        assert sorted(entered) == ["job-1", "job-2"]

    @pytest.mark.asyncio
    async def test_lease_released_on_error(self) -> None:
        leases = JobLeaseRegistry()

        with pytest.raises(RuntimeError):
            async with leases.acquire("job-1"):
                raise RuntimeError("boom")

        async with leases.acquire("job-1"):
            assert leases.is_active("job-1")
