"""Tests for PollingController: backoff schedule, deadline and cancellation."""

import asyncio

import pytest

from clipchain.config import PollingConfig
from clipchain.errors import (
    GenerationCancelled,
    GenerationTimeout,
    ProtocolError,
    ProviderError,
    ProviderReportedFailure,
    SubmissionRejected,
)
from clipchain.orchestrator.cancellation import CancellationToken
from clipchain.orchestrator.poller import PollingController
from clipchain.orchestrator.state import PollState, is_terminal

from conftest import FakeTransport, completed, failed, make_fake_sleep, processing


def _controller(transport, clock, polling, **kwargs) -> PollingController:
    return PollingController(
        transport, polling=polling, clock=clock, sleep=make_fake_sleep(clock), **kwargs,
    )


# ---------------------------------------------------------------------------
# Success and failure
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_succeeds_when_job_completes(clock, polling):
    transport = FakeTransport([processing(), processing(), completed("https://cdn/v.mp4")])
    submitted = []
    labels = []
    controller = _controller(transport, clock, polling, on_status=labels.append)

    outcome = await controller.run("start.jpg", "prompt", CancellationToken(), submitted.append)

    assert outcome.state is PollState.SUCCEEDED
    assert is_terminal(controller.state)
    assert outcome.video_url == "https://cdn/v.mp4"
    assert outcome.error is None
    assert outcome.status_checks == 3
    assert submitted == ["job-1"]
    assert transport.submitted == [("start.jpg", "prompt")]
    assert labels == ["Starting generation...", "Generating video...", "Video ready"]


@pytest.mark.asyncio
async def test_backoff_schedule_grows_and_caps(clock, polling):
    transport = FakeTransport([processing()] * 8 + [completed()])
    controller = _controller(transport, clock, polling)

    await controller.run("start.jpg", "prompt", CancellationToken())

    assert controller.delays == pytest.approx(
        [3.0, 3.9, 5.07, 6.591, 8.5683, 10.0, 10.0, 10.0, 10.0]
    )


@pytest.mark.asyncio
async def test_provider_failure_is_reported_once(clock, polling):
    transport = FakeTransport([processing(), failed(), completed()])
    controller = _controller(transport, clock, polling)

    outcome = await controller.run("start.jpg", "prompt", CancellationToken())

    assert outcome.state is PollState.FAILED
    assert isinstance(outcome.error, ProviderReportedFailure)
    assert outcome.status_checks == 2
    assert len(transport.checked) == 2


@pytest.mark.asyncio
async def test_completed_without_url_keeps_polling(clock, polling):
    transport = FakeTransport([completed(url=None), completed("https://cdn/v.mp4")])
    controller = _controller(transport, clock, polling)

    outcome = await controller.run("start.jpg", "prompt", CancellationToken())

    assert outcome.state is PollState.SUCCEEDED
    assert outcome.status_checks == 2


@pytest.mark.asyncio
async def test_status_check_error_fails_attempt(clock, polling):
    transport = FakeTransport([processing(), ProviderError("Status check failed", status_code=502)])
    controller = _controller(transport, clock, polling)

    outcome = await controller.run("start.jpg", "prompt", CancellationToken())

    assert outcome.state is PollState.FAILED
    assert isinstance(outcome.error, ProviderError)
    assert outcome.status_checks == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [
    SubmissionRejected("Generation request rejected", status_code=400, body="bad image"),
    ProtocolError("Submit response missing jobId"),
])
async def test_submission_failure_never_polls(clock, polling, error):
    transport = FakeTransport(submit_error=error)
    submitted = []
    controller = _controller(transport, clock, polling)

    outcome = await controller.run("start.jpg", "prompt", CancellationToken(), submitted.append)

    assert outcome.state is PollState.FAILED
    assert outcome.error is error
    assert outcome.job_id is None
    assert submitted == []
    assert transport.checked == []
    assert controller.delays == []


# ---------------------------------------------------------------------------
# Deadline
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_always_processing_times_out_after_bounded_checks(clock, polling):
    transport = FakeTransport([processing()])
    controller = _controller(transport, clock, polling)

    outcome = await controller.run("start.jpg", "prompt", CancellationToken())

    assert outcome.state is PollState.TIMED_OUT
    assert isinstance(outcome.error, GenerationTimeout)
    # 3 + 3.9 + 5.07 + 6.591 + 8.5683 then 10s steps until 300s have elapsed
    assert outcome.status_checks == 33
    assert len(transport.checked) == 33
    assert clock.now >= polling.timeout_seconds


@pytest.mark.asyncio
async def test_deadline_is_measured_from_start_of_polling(clock):
    polling = PollingConfig(initial_delay=1.0, backoff_factor=1.0, max_delay=1.0, timeout_seconds=5.0)
    transport = FakeTransport([processing()])

    async def slow_submit(image_ref, prompt_text):
        clock.advance(100)
        return "job-1"

    transport.submit = slow_submit
    controller = _controller(transport, clock, polling)

    outcome = await controller.run("start.jpg", "prompt", CancellationToken())

    assert outcome.state is PollState.TIMED_OUT
    assert outcome.status_checks == 5


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_cancel_before_submit_does_nothing(clock, polling):
    transport = FakeTransport()
    token = CancellationToken()
    token.cancel()
    controller = _controller(transport, clock, polling)

    outcome = await controller.run("start.jpg", "prompt", token)

    assert outcome.state is PollState.CANCELLED
    assert isinstance(outcome.error, GenerationCancelled)
    assert transport.submitted == []
    assert transport.checked == []


@pytest.mark.asyncio
async def test_cancel_during_first_wait_skips_status_check(polling):
    transport = FakeTransport([completed()])
    token = CancellationToken()
    controller = PollingController(
        transport,
        polling=PollingConfig(initial_delay=60.0, timeout_seconds=300.0),
    )

    asyncio.get_running_loop().call_later(0.05, token.cancel)
    outcome = await asyncio.wait_for(controller.run("start.jpg", "prompt", token), timeout=5)

    assert outcome.state is PollState.CANCELLED
    assert outcome.job_id == "job-1"
    assert transport.checked == []


@pytest.mark.asyncio
async def test_cancel_during_status_check_ignores_response(polling):
    token = CancellationToken()
    transport = FakeTransport()
    release = asyncio.Event()

    async def hanging_check(job_id):
        transport.checked.append(job_id)
        await release.wait()
        return completed()

    transport.check_status = hanging_check

    async def no_sleep(delay, token):
        await asyncio.sleep(0)

    controller = PollingController(transport, polling=polling, sleep=no_sleep)

    asyncio.get_running_loop().call_later(0.05, token.cancel)
    outcome = await asyncio.wait_for(controller.run("start.jpg", "prompt", token), timeout=5)

    assert outcome.state is PollState.CANCELLED
    assert outcome.video_url is None
    assert outcome.status_checks == 0
    assert transport.checked == ["job-1"]


@pytest.mark.asyncio
async def test_controller_is_single_use(clock, polling):
    controller = _controller(FakeTransport([completed()]), clock, polling)
    await controller.run("start.jpg", "prompt", CancellationToken())

    with pytest.raises(RuntimeError):
        await controller.run("start.jpg", "prompt", CancellationToken())
