"""Clip generation orchestrator.

Coordinates one generation attempt end to end:
- Narrative context computed once, before the clip record is appended
- Submit and poll through the PollingController
- Video materialization and continuation-frame extraction on success
- Failure state persisted on the clip record for every non-success outcome
- Progress callback interface for CLI integration

Usage:
    store = ClipChainStore()
    store.select_image("start.jpg")
    result = await generate_clip(
        store, transport, "the fox runs into the forest",
        materialize=file_mgr.download_video,
        extract_frame=extract_continuation_frame,
    )
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from clipchain.chain import ClipChainStore, ClipRecord, ClipStatus, Phase
from clipchain.config import settings
from clipchain.errors import (
    FrameExtractionError,
    GenerationCancelled,
    GenerationError,
)
from clipchain.orchestrator.cancellation import CancellationToken
from clipchain.orchestrator.poller import PollingController
from clipchain.orchestrator.state import PollState
from clipchain.services.job_transport import JobTransport

logger = logging.getLogger(__name__)

Materializer = Callable[[str, str], Awaitable[str]]
FrameExtractor = Callable[[str, float], Awaitable[str]]
ControllerFactory = Callable[..., PollingController]


@dataclass
class GenerationResult:
    """Outcome of a generation attempt that did not fail.

    cancelled is True when the user cancelled; frame_error is set when the
    clip succeeded but its continuation frame could not be extracted.
    """

    clip: ClipRecord
    cancelled: bool = False
    frame_error: Optional[FrameExtractionError] = None


async def generate_clip(
    store: ClipChainStore,
    transport: JobTransport,
    prompt: str,
    *,
    materialize: Materializer,
    extract_frame: FrameExtractor,
    image_ref: Optional[str] = None,
    token: Optional[CancellationToken] = None,
    on_status: Optional[Callable[[str], None]] = None,
    controller_factory: ControllerFactory = PollingController,
    frame_offset_seconds: Optional[float] = None,
) -> GenerationResult:
    """Generate one clip and append it to the chain.

    Args:
        store: Chain the clip belongs to
        transport: Gateway transport
        prompt: User-authored scene description
        materialize: Downloads a finished video, returns a local reference
        extract_frame: Extracts the continuation frame from a local video
        image_ref: Seed image; defaults to the store's selected image
        token: Cancellation token shared with the caller
        on_status: Receives human-readable progress labels
        controller_factory: Builds the PollingController for this attempt
        frame_offset_seconds: Continuation frame position (default from settings)

    Returns:
        GenerationResult for success or user cancellation

    Raises:
        ValueError: If no image is selected or the prompt is blank.
        GenerationError: The single cause of a failed attempt (submission
            rejected, unreachable gateway, protocol error, provider failure,
            timeout, download).
        GenerationCancelled: If the chain was reset while the attempt ran.
    """
    prompt = (prompt or "").strip()
    image_ref = image_ref or store.selected_image_ref
    if not image_ref:
        raise ValueError("No input image selected")
    if not prompt:
        raise ValueError("Prompt must not be empty")

    token = token or CancellationToken()
    offset = (
        frame_offset_seconds
        if frame_offset_seconds is not None
        else settings.storage.frame_offset_seconds
    )

    def notify(label: str) -> None:
        if on_status:
            on_status(label)

    # Enrichment happens exactly once, against the chain as it was before this attempt
    full_prompt = store.narrative_context(prompt)
    clip_id = store.append(image_ref, prompt)
    store.set_phase(Phase.GENERATING)
    notify("Uploading image...")

    controller = controller_factory(transport, on_status=on_status)
    try:
        outcome = await controller.run(
            image_ref,
            full_prompt,
            token,
            on_submitted=lambda job_id: store.patch(clip_id, job_id=job_id),
        )
    except asyncio.CancelledError:
        _cancelled(store, clip_id, raise_if_reset=False)
        raise
    except Exception as e:
        logger.error("Clip %s: attempt aborted: %r", clip_id, e)
        _fail(store, clip_id, e)
        raise

    if outcome.state is PollState.CANCELLED:
        return _cancelled(store, clip_id)

    if outcome.state is not PollState.SUCCEEDED:
        _fail(store, clip_id, outcome.error)
        raise outcome.error

    # --- Materialize the finished video ---
    notify("Downloading video...")
    download = asyncio.ensure_future(materialize(outcome.video_url, clip_id))
    try:
        video_ref = await token.guard(download)
    except GenerationCancelled:
        await _discard_download(store, download)
        return _cancelled(store, clip_id)
    except asyncio.CancelledError:
        download.cancel()
        _cancelled(store, clip_id, raise_if_reset=False)
        raise
    except Exception as e:
        logger.error("Clip %s: %s", clip_id, e)
        _fail(store, clip_id, e)
        raise

    clip = store.patch(clip_id, output_video_ref=video_ref, status=ClipStatus.DONE)
    if clip is None:
        # Chain was reset while the job ran; nothing references the file
        store.release(video_ref)
        raise GenerationCancelled("Chain was reset during generation")

    # --- Continuation frame (the job already succeeded regardless) ---
    notify("Extracting last frame...")
    frame_error = None
    try:
        frame_ref = await extract_frame(video_ref, offset)
    except FrameExtractionError as e:
        logger.warning("Clip %s: continuation frame unavailable: %s", clip_id, e)
        frame_error = e
    else:
        store.patch(clip_id, continuation_frame_ref=frame_ref)
        store.select_image(frame_ref)

    store.set_phase(Phase.PREVIEW)
    notify("Clip ready")
    logger.info(
        "Clip %s done (%d done clips in chain)", clip_id, len(store.done_clips()),
    )
    return GenerationResult(clip=clip, frame_error=frame_error)


def _fail(store: ClipChainStore, clip_id: str, error: Optional[BaseException]) -> None:
    message = (str(error) or type(error).__name__) if error else "Generation failed"
    # After a reset the record is gone and the phase already belongs to the new chain
    if store.patch(clip_id, status=ClipStatus.FAILED, error_message=message) is not None:
        store.set_phase(Phase.PROMPT)


def _cancelled(
    store: ClipChainStore, clip_id: str, *, raise_if_reset: bool = True,
) -> Optional[GenerationResult]:
    logger.info("Clip %s cancelled by user", clip_id)
    clip = store.patch(clip_id, status=ClipStatus.FAILED, error_message="Cancelled by user")
    if clip is None:
        if raise_if_reset:
            raise GenerationCancelled("Chain was reset during generation")
        return None
    store.set_phase(Phase.PROMPT)
    return GenerationResult(clip=clip, cancelled=True)


async def _discard_download(store: ClipChainStore, download: asyncio.Future) -> None:
    """Stop a download abandoned by cancellation and release anything it wrote."""
    download.cancel()
    await asyncio.gather(download, return_exceptions=True)
    if not download.cancelled() and download.exception() is None:
        store.release(download.result())
