"""Shared fixtures and fakes for the clipchain test suite."""

import asyncio
from typing import Optional

import pytest

from clipchain.chain import ClipChainStore
from clipchain.config import PollingConfig
from clipchain.orchestrator.cancellation import CancellationToken
from clipchain.schemas.wire import JobPhase, JobStatus


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------

class FakeClock:
    """Manually advanced clock, usable for time.monotonic and time.time."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_fake_sleep(clock: FakeClock):
    """Sleep that advances the fake clock instead of waiting."""

    async def sleep(delay: float, token: CancellationToken) -> None:
        clock.advance(delay)
        await asyncio.sleep(0)

    return sleep


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

class FakeTransport:
    """Scripted stand-in for JobTransport.

    ``statuses`` is consumed one entry per status check; the last entry is
    repeated once the script runs out. An entry may be a JobStatus or an
    exception instance to raise.
    """

    def __init__(
        self,
        statuses=None,
        job_id: str = "job-1",
        submit_error: Optional[Exception] = None,
    ):
        self.statuses = list(statuses or [JobStatus(phase=JobPhase.PROCESSING)])
        self.job_id = job_id
        self.submit_error = submit_error
        self.submitted: list[tuple[str, str]] = []
        self.checked: list[str] = []

    async def submit(self, image_ref: str, prompt_text: str) -> str:
        self.submitted.append((image_ref, prompt_text))
        if self.submit_error is not None:
            raise self.submit_error
        return self.job_id

    async def check_status(self, job_id: str) -> JobStatus:
        self.checked.append(job_id)
        entry = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(entry, Exception):
            raise entry
        return entry


def processing() -> JobStatus:
    return JobStatus(phase=JobPhase.PROCESSING)


def completed(url: Optional[str] = "https://cdn.example/clip.mp4") -> JobStatus:
    return JobStatus(phase=JobPhase.COMPLETED, video_url=url)


def failed() -> JobStatus:
    return JobStatus(phase=JobPhase.FAILED)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def polling() -> PollingConfig:
    return PollingConfig(
        initial_delay=3.0, backoff_factor=1.3, max_delay=10.0, timeout_seconds=300.0,
    )


@pytest.fixture
def released() -> list:
    return []


@pytest.fixture
def store(released) -> ClipChainStore:
    return ClipChainStore(release=released.append)
