"""Stateless simulated provider.

Used when no live provider credentials are configured. The job id itself
carries the time at which the job is considered finished, so any gateway
instance can answer a status request without shared storage:

    submit at T  ->  "sim_<T + delay in epoch milliseconds>"
    status(id)   ->  processing before that instant, completed from it on
"""

import logging
import time
from typing import Callable

from clipchain.schemas.wire import JobPhase, JobStatus
from clipchain.services.providers.base import JobNotFoundError, VideoProvider

logger = logging.getLogger(__name__)

SIM_JOB_PREFIX = "sim_"


def encode_job_id(ready_at_ms: int) -> str:
    """Encode a ready-at timestamp (epoch milliseconds) into a simulated job id."""
    if isinstance(ready_at_ms, bool) or not isinstance(ready_at_ms, int) or ready_at_ms <= 0:
        raise ValueError(f"ready_at_ms must be a positive integer, got {ready_at_ms!r}")
    return f"{SIM_JOB_PREFIX}{ready_at_ms}"


def decode_job_id(job_id: str) -> int:
    """Recover the ready-at timestamp from a simulated job id.

    Raises:
        JobNotFoundError: If the id lacks the simulation tag or does not
            carry a positive integer timestamp.
    """
    if not isinstance(job_id, str) or not job_id.startswith(SIM_JOB_PREFIX):
        raise JobNotFoundError(f"Not a simulated job: {job_id!r}")

    raw = job_id[len(SIM_JOB_PREFIX):]
    if not (raw.isascii() and raw.isdigit()):
        raise JobNotFoundError(f"Malformed simulated job id: {job_id!r}")

    ready_at_ms = int(raw)
    if ready_at_ms <= 0:
        raise JobNotFoundError(f"Malformed simulated job id: {job_id!r}")
    return ready_at_ms


class SimulationBackend(VideoProvider):
    """Simulated provider whose answers depend only on (job id, current time)."""

    name = "simulation"

    def __init__(
        self,
        generation_delay_seconds: float,
        sample_video_url: str,
        clock: Callable[[], float] = time.time,
    ):
        self.generation_delay_ms = round(generation_delay_seconds * 1000)
        self.sample_video_url = sample_video_url
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def submit(self, image: str, prompt: str) -> str:
        job_id = encode_job_id(self._now_ms() + self.generation_delay_ms)
        logger.info("Simulated job %s accepted (prompt=%d chars)", job_id, len(prompt))
        return job_id

    async def status(self, job_id: str) -> JobStatus:
        ready_at_ms = decode_job_id(job_id)
        if self._now_ms() < ready_at_ms:
            return JobStatus(phase=JobPhase.PROCESSING)
        return JobStatus(phase=JobPhase.COMPLETED, video_url=self.sample_video_url)
