"""Clip chain store: the single source of truth for a generation chain.

Holds the ordered clip records, the currently selected input image and the
interaction phase. Derived queries (last good clip, narrative context) are
computed from the records on demand and never stored.

Usage:
    store = ClipChainStore()
    full_prompt = store.narrative_context(prompt)   # once per attempt
    clip_id = store.append(image_path, prompt)
    store.patch(clip_id, job_id="sim_1700000000000")
"""

import logging
import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class ClipStatus(str, Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    DONE = "done"
    FAILED = "failed"


class Phase(str, Enum):
    """Interaction phase of the chain (what the user is doing next)."""

    CAPTURE = "capture"
    PROMPT = "prompt"
    GENERATING = "generating"
    PREVIEW = "preview"


# Forward-only ordering; done and failed share the terminal rank
_STATUS_RANK = {
    ClipStatus.PENDING: 0,
    ClipStatus.IN_FLIGHT: 1,
    ClipStatus.DONE: 2,
    ClipStatus.FAILED: 2,
}

_TERMINAL_STATUSES = frozenset({ClipStatus.DONE, ClipStatus.FAILED})

_CONTINUITY_INSTRUCTION = "Maintain smooth visual and motion continuity."


class ChainBusyError(RuntimeError):
    """Raised when appending while another clip is still in flight."""


class InvalidTransitionError(ValueError):
    """Raised when a patch would move a clip status backwards."""


@dataclass
class ClipRecord:
    """One attempted or completed generation unit."""

    id: str
    input_image_ref: str
    prompt_text: str
    status: ClipStatus = ClipStatus.PENDING
    job_id: Optional[str] = None
    output_video_ref: Optional[str] = None
    continuation_frame_ref: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


_PATCHABLE_FIELDS = frozenset(f.name for f in fields(ClipRecord)) - {"id", "created_at"}


def _new_clip_id() -> str:
    return uuid.uuid4().hex[:12]


def _release_local_file(ref: str) -> None:
    """Delete a downloaded artifact referenced by a clip record."""
    Path(ref).unlink(missing_ok=True)


class ClipChainStore:
    """Ordered clip chain plus the current input image and interaction phase.

    Mutated only through its operations. Callers get ClipRecord instances by
    reference for reading; all writes go through patch().
    """

    def __init__(self, release: Callable[[str], None] = _release_local_file):
        self._release = release
        self._clips: list[ClipRecord] = []
        self.selected_image_ref: Optional[str] = None
        self.phase: Phase = Phase.CAPTURE

    # -- Queries -----------------------------------------------------------

    @property
    def clips(self) -> tuple[ClipRecord, ...]:
        return tuple(self._clips)

    def get(self, clip_id: str) -> Optional[ClipRecord]:
        for clip in self._clips:
            if clip.id == clip_id:
                return clip
        return None

    def done_clips(self) -> list[ClipRecord]:
        return [c for c in self._clips if c.status == ClipStatus.DONE]

    def in_flight_clip(self) -> Optional[ClipRecord]:
        return next((c for c in self._clips if c.status == ClipStatus.IN_FLIGHT), None)

    def last_good_clip(self) -> Optional[ClipRecord]:
        """Return the latest clip with status done, skipping failed and in-flight ones."""
        for clip in reversed(self._clips):
            if clip.status == ClipStatus.DONE:
                return clip
        return None

    def narrative_context(self, prompt_text: str) -> str:
        """Build the enriched prompt for a new clip from the two latest done clips.

        With no done clips the prompt is returned unchanged. Otherwise the
        recent prompts are framed by ordinal ("Two scenes ago", "Previous
        scene"), followed by the new prompt framed as the current scene and a
        continuity instruction.
        """
        recent = self.done_clips()[-2:]
        if not recent:
            return prompt_text

        lines = []
        if len(recent) == 2:
            lines.append(f'Two scenes ago: "{recent[0].prompt_text}"')
        lines.append(f'Previous scene: "{recent[-1].prompt_text}"')
        lines.append(f'Current scene (continuing from the last frame): "{prompt_text}"')
        lines.append(_CONTINUITY_INSTRUCTION)
        return "\n".join(lines)

    # -- Mutations ---------------------------------------------------------

    def select_image(self, image_ref: str) -> None:
        self.selected_image_ref = image_ref

    def set_phase(self, phase: Phase) -> None:
        if phase != self.phase:
            logger.debug("Chain phase %s -> %s", self.phase.value, phase.value)
        self.phase = phase

    def append(self, input_image_ref: str, prompt_text: str) -> str:
        """Append a new in-flight clip and return its id.

        The prompt is stored as authored; enrichment is the caller's job.

        Raises:
            ValueError: If the prompt is blank.
            ChainBusyError: If another clip is still in flight.
        """
        if not prompt_text or not prompt_text.strip():
            raise ValueError("prompt_text must not be empty")

        busy = self.in_flight_clip()
        if busy is not None:
            raise ChainBusyError(f"Clip {busy.id} is still in flight")

        clip = ClipRecord(
            id=_new_clip_id(),
            input_image_ref=input_image_ref,
            prompt_text=prompt_text,
            status=ClipStatus.IN_FLIGHT,
        )
        self._clips.append(clip)
        logger.info("Appended clip %s at position %d", clip.id, len(self._clips) - 1)
        return clip.id

    def patch(self, clip_id: str, **updates) -> Optional[ClipRecord]:
        """Merge fields into a clip record.

        Returns the updated record, or None when the id is unknown (for
        example after reset()), in which case nothing changes.

        Raises:
            TypeError: If a field is unknown or immutable.
            InvalidTransitionError: If the status would move backwards or
                leave a terminal state.
        """
        invalid = set(updates) - _PATCHABLE_FIELDS
        if invalid:
            raise TypeError(f"Cannot patch clip fields: {sorted(invalid)}")

        clip = self.get(clip_id)
        if clip is None:
            logger.warning("Ignoring patch for unknown clip %s", clip_id)
            return None

        if "status" in updates:
            new_status = ClipStatus(updates["status"])
            _check_transition(clip, new_status)
            updates["status"] = new_status

        for name, value in updates.items():
            setattr(clip, name, value)
        return clip

    def use_last_frame(self) -> bool:
        """Seed the next clip from the last good clip's continuation frame.

        Returns True and moves to the prompt phase when a frame is available,
        otherwise moves back to capture so the user supplies a new image.
        """
        last = self.last_good_clip()
        if last is not None and last.continuation_frame_ref:
            self.select_image(last.continuation_frame_ref)
            self.set_phase(Phase.PROMPT)
            return True
        self.set_phase(Phase.CAPTURE)
        return False

    def release(self, ref: str) -> None:
        """Release one artifact; failures are logged, never raised."""
        try:
            self._release(ref)
        except OSError as e:
            logger.warning("Failed to release %s: %s", ref, e)

    def reset(self) -> None:
        """Clear the chain and release files the records reference."""
        for clip in self._clips:
            for ref in (clip.output_video_ref, clip.continuation_frame_ref):
                if ref:
                    self.release(ref)

        count = len(self._clips)
        self._clips = []
        self.selected_image_ref = None
        self.phase = Phase.CAPTURE
        logger.info("Chain reset (%d clips cleared)", count)


def _check_transition(clip: ClipRecord, new_status: ClipStatus) -> None:
    if new_status == clip.status:
        return
    if clip.status in _TERMINAL_STATUSES or _STATUS_RANK[new_status] < _STATUS_RANK[clip.status]:
        raise InvalidTransitionError(
            f"Clip {clip.id}: cannot move from {clip.status.value} to {new_status.value}"
        )
