"""Polling controller: submit a generation job and poll it to a terminal state.

Implements the attempt state machine from clipchain.orchestrator.state:
- Submit once; a rejected submission never reaches polling
- Poll with multiplicative backoff (3s, 3.9s, 5.07s ... capped at 10s)
- Give up after a wall-clock deadline measured from entry into polling
- Check cancellation before every sleep, after every sleep and around every
  network call, so a cancel ends the attempt without another status check

The controller never raises for terminal outcomes; it returns a PollOutcome
whose error carries the single cause of a non-success outcome.

Usage:
    controller = PollingController(transport, on_status=print)
    outcome = await controller.run("start.jpg", full_prompt, token)
    if outcome.state is PollState.SUCCEEDED:
        ...
"""

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from clipchain.config import PollingConfig, settings
from clipchain.errors import (
    GenerationCancelled,
    GenerationError,
    GenerationTimeout,
    ProviderReportedFailure,
)
from clipchain.orchestrator.cancellation import CancellationToken
from clipchain.orchestrator.state import (
    POLL_STATES,
    STATUS_LABELS,
    PollState,
    can_transition,
)
from clipchain.schemas.wire import JobPhase
from clipchain.services.job_transport import JobTransport

logger = logging.getLogger(__name__)

SleepFn = Callable[[float, CancellationToken], Awaitable[None]]


async def _token_sleep(delay: float, token: CancellationToken) -> None:
    await token.sleep(delay)


@dataclass
class PollOutcome:
    """Terminal result of one attempt."""

    state: PollState
    job_id: Optional[str] = None
    video_url: Optional[str] = None
    error: Optional[GenerationError] = None
    status_checks: int = 0


class PollingController:
    """Drive one generation attempt from submission to a terminal state.

    A controller is single-use: once it has left idle it cannot run again.
    Time is read through ``clock`` and waited through ``sleep`` so tests can
    drive the schedule without real delays.
    """

    def __init__(
        self,
        transport: JobTransport,
        *,
        polling: Optional[PollingConfig] = None,
        on_status: Optional[Callable[[str], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: SleepFn = _token_sleep,
    ):
        self.transport = transport
        self.polling = polling or settings.polling
        self.on_status = on_status
        self._clock = clock
        self._sleep = sleep
        self.state = PollState.IDLE
        self.delays: list[float] = []

    def _transition(self, target: PollState) -> None:
        if not can_transition(self.state, target):
            raise RuntimeError(f"Invalid transition {self.state.value} -> {target.value}")
        logger.info("Attempt %s -> %s: %s", self.state.value, target.value, POLL_STATES[target])
        self.state = target
        if self.on_status:
            self.on_status(STATUS_LABELS[target])

    def _finish(self, target: PollState, outcome: PollOutcome) -> PollOutcome:
        self._transition(target)
        outcome.state = target
        return outcome

    async def run(
        self,
        image_ref: str,
        prompt_text: str,
        token: CancellationToken,
        on_submitted: Optional[Callable[[str], None]] = None,
    ) -> PollOutcome:
        """Submit the job and poll until it succeeds, fails, times out or is cancelled.

        Args:
            image_ref: Local path of the seed image
            prompt_text: Prompt to submit (already enriched with narrative context)
            token: Cancellation token shared with the caller
            on_submitted: Called with the job id as soon as submission succeeds

        Returns:
            PollOutcome in one of the terminal states

        Raises:
            RuntimeError: If this controller already ran.
        """
        if self.state is not PollState.IDLE:
            raise RuntimeError(f"Controller already used (state={self.state.value})")

        outcome = PollOutcome(state=self.state)

        if token.cancelled:
            outcome.error = GenerationCancelled("Cancelled before submission")
            return self._finish(PollState.CANCELLED, outcome)

        # --- Submit ---
        self._transition(PollState.SUBMITTING)
        try:
            job_id = await token.guard(self.transport.submit(image_ref, prompt_text))
        except GenerationCancelled as e:
            outcome.error = e
            return self._finish(PollState.CANCELLED, outcome)
        except GenerationError as e:
            logger.error("Submission failed: %s", e)
            outcome.error = e
            return self._finish(PollState.FAILED, outcome)

        outcome.job_id = job_id
        if on_submitted:
            on_submitted(job_id)

        # --- Poll ---
        self._transition(PollState.POLLING)
        delay = self.polling.initial_delay
        deadline = self._clock() + self.polling.timeout_seconds

        while True:
            if token.cancelled:
                outcome.error = GenerationCancelled("Cancelled by user")
                return self._finish(PollState.CANCELLED, outcome)

            if self._clock() >= deadline:
                logger.error(
                    "Job %s did not complete after %d status checks (%.0fs budget)",
                    job_id, outcome.status_checks, self.polling.timeout_seconds,
                )
                outcome.error = GenerationTimeout(
                    f"Job {job_id} did not complete within "
                    f"{self.polling.timeout_seconds:.0f} seconds"
                )
                return self._finish(PollState.TIMED_OUT, outcome)

            self.delays.append(delay)
            await self._sleep(delay, token)

            # Woken by cancellation or timer; never issue a check after a cancel
            if token.cancelled:
                outcome.error = GenerationCancelled("Cancelled by user")
                return self._finish(PollState.CANCELLED, outcome)

            try:
                status = await token.guard(self.transport.check_status(job_id))
            except GenerationCancelled as e:
                outcome.error = e
                return self._finish(PollState.CANCELLED, outcome)
            except GenerationError as e:
                logger.error("Status check for %s failed: %s", job_id, e)
                outcome.error = e
                return self._finish(PollState.FAILED, outcome)
            outcome.status_checks += 1

            if status.phase is JobPhase.COMPLETED and status.video_url:
                outcome.video_url = status.video_url
                logger.info(
                    "Job %s completed after %d status checks", job_id, outcome.status_checks,
                )
                return self._finish(PollState.SUCCEEDED, outcome)

            if status.phase is JobPhase.FAILED:
                outcome.error = ProviderReportedFailure(f"Provider reported job {job_id} failed")
                return self._finish(PollState.FAILED, outcome)

            if status.phase is JobPhase.COMPLETED:
                logger.warning("Job %s reported completed without a video URL; polling on", job_id)

            delay = min(delay * self.polling.backoff_factor, self.polling.max_delay)
