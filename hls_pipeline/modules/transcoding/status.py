"""In-memory job phase tracking and per-job leases.

Both registries are process-local; nothing survives a restart.
"""

import time
from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from hls_pipeline.core.config import settings
from hls_pipeline.modules.transcoding.errors import (
    InvalidPhaseTransition,
    JobInProgressError,
)
from hls_pipeline.modules.transcoding.models import JobPhase

_PHASE_ORDER = {
    JobPhase.CONVERTING: 0,
    JobPhase.UPLOADING: 1,
    JobPhase.COMPLETED: 2,
}

TERMINAL_PHASES = frozenset({JobPhase.COMPLETED, JobPhase.ERROR})


def is_valid_transition(current: Optional[JobPhase], new: JobPhase) -> bool:
    """Check a phase change against the forward-only lifecycle.

    Phases only move forward along converting -> uploading -> completed;
    error may be entered from anywhere. A terminal job may be restarted by
    writing converting again.
    """
    if current is None or current == new or new == JobPhase.ERROR:
        return True
    if current in TERMINAL_PHASES:
        return new == JobPhase.CONVERTING
    return _PHASE_ORDER[new] > _PHASE_ORDER[current]


class StatusRegister:
    """Bounded mapping of job id to phase with a time-to-live.

    Entries expire ttl_seconds after their last write. When full, the entry
    written least recently is evicted.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.STATUS_TTL_SECONDS
        self.max_entries = max_entries if max_entries is not None else settings.STATUS_MAX_ENTRIES
        self._clock = clock
        self._entries: "OrderedDict[str, tuple[JobPhase, float]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def _live_phase(self, job_id: str) -> Optional[JobPhase]:
        entry = self._entries.get(job_id)
        if entry is None:
            return None
        phase, written_at = entry
        if self._clock() - written_at >= self.ttl_seconds:
            del self._entries[job_id]
            return None
        return phase

    def set_phase(self, job_id: str, phase: JobPhase) -> None:
        """Record a job's phase.

        Raises:
            InvalidPhaseTransition: If the write would move the job backwards
        """
        current = self._live_phase(job_id)
        if not is_valid_transition(current, phase):
            raise InvalidPhaseTransition(
                f"Cannot move job {job_id} from {current.value} to {phase.value}"
            )

        self._entries[job_id] = (phase, self._clock())
        self._entries.move_to_end(job_id)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def get_phase(self, job_id: str) -> Optional[JobPhase]:
        """Current phase of a job, or None if unknown or expired."""
        return self._live_phase(job_id)

    def clear(self) -> None:
        self._entries.clear()


class JobLeaseRegistry:
    """Exclusive per-job leases.

    A second request for a job id that is already leased fails fast
    instead of waiting.
    """

    def __init__(self):
        self._active: set[str] = set()

    def is_active(self, job_id: str) -> bool:
        return job_id in self._active

    @asynccontextmanager
    async def acquire(self, job_id: str) -> AsyncIterator[None]:
        """Hold the lease for job_id for the duration of the block.

        Raises:
            JobInProgressError: If the lease is already held
        """
        if job_id in self._active:
            raise JobInProgressError(job_id)
        self._active.add(job_id)
        try:
            yield
        finally:
            self._active.discard(job_id)


status_register = StatusRegister()
job_leases = JobLeaseRegistry()
