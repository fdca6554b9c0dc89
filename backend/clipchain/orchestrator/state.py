"""State machine constants and transition logic for the polling controller.

One generation attempt walks idle -> submitting -> polling and ends in
exactly one terminal state. Idle is the only state a controller starts from;
every other state is entered at most once per attempt.
"""

from enum import Enum


class PollState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


# Controller states with descriptions
POLL_STATES = {
    PollState.IDLE: "No attempt started",
    PollState.SUBMITTING: "Submitting the job to the provider",
    PollState.POLLING: "Waiting for the provider to finish the job",
    PollState.SUCCEEDED: "Job finished and produced a video",
    PollState.FAILED: "Submission or job failed",
    PollState.CANCELLED: "Attempt cancelled by user",
    PollState.TIMED_OUT: "Job did not finish within the time budget",
}

# Allowed transitions for one attempt
STATE_TRANSITIONS = {
    PollState.IDLE: {PollState.SUBMITTING, PollState.CANCELLED},
    PollState.SUBMITTING: {PollState.POLLING, PollState.FAILED, PollState.CANCELLED},
    PollState.POLLING: {
        PollState.SUCCEEDED,
        PollState.FAILED,
        PollState.CANCELLED,
        PollState.TIMED_OUT,
    },
}

TERMINAL_STATES = frozenset({
    PollState.SUCCEEDED,
    PollState.FAILED,
    PollState.CANCELLED,
    PollState.TIMED_OUT,
})

# Human-readable labels reported to observers on every transition
STATUS_LABELS = {
    PollState.IDLE: "Ready",
    PollState.SUBMITTING: "Starting generation...",
    PollState.POLLING: "Generating video...",
    PollState.SUCCEEDED: "Video ready",
    PollState.FAILED: "Generation failed",
    PollState.CANCELLED: "Generation cancelled",
    PollState.TIMED_OUT: "Generation timed out",
}


def can_transition(current: PollState, target: PollState) -> bool:
    """Check whether an attempt may move from current to target.

    Args:
        current: State the controller is in
        target: State it wants to enter

    Returns:
        True if the transition is part of the state machine, False otherwise
    """
    return target in STATE_TRANSITIONS.get(current, set())


def is_terminal(state: PollState) -> bool:
    return state in TERMINAL_STATES
