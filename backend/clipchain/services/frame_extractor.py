"""Continuation frame extraction with ffmpeg.

Grabs a single frame near the end of a finished clip; that frame seeds the
next clip in the chain. Runs ffmpeg in a worker thread so the event loop is
never blocked.
"""

import asyncio
import logging
import subprocess
from pathlib import Path
from typing import Optional

from clipchain.errors import FrameExtractionError

logger = logging.getLogger(__name__)


def _extract_frame_ffmpeg(video_path: Path, output_path: Path, offset_seconds: float) -> None:
    """Write the frame at offset_seconds of video_path to output_path.

    Falls back to the very last frame when the clip is shorter than the
    requested offset.
    """
    cmd = [
        "ffmpeg", "-y",
        "-ss", f"{offset_seconds:.3f}",
        "-i", str(video_path),
        "-frames:v", "1",
        "-q:v", "2",
        str(output_path),
    ]
    subprocess.run(cmd, capture_output=True, check=True)

    if not output_path.exists() or output_path.stat().st_size == 0:
        # Offset past the end of the clip: seek relative to the end instead
        cmd = [
            "ffmpeg", "-y",
            "-sseof", "-0.1",
            "-i", str(video_path),
            "-frames:v", "1",
            "-q:v", "2",
            str(output_path),
        ]
        subprocess.run(cmd, capture_output=True, check=True)


async def extract_continuation_frame(
    video_ref: str,
    offset_seconds: float,
    output_ref: Optional[str] = None,
) -> str:
    """Extract the continuation frame of a clip.

    Args:
        video_ref: Local path of the downloaded clip
        offset_seconds: Position of the frame, near the end of the clip
        output_ref: Where to write the JPEG (default: next to the video)

    Returns:
        Local path of the extracted frame

    Raises:
        FrameExtractionError: If ffmpeg fails or produces no image
    """
    video_path = Path(video_ref)
    output_path = Path(output_ref) if output_ref else video_path.with_name(
        f"{video_path.stem}_last.jpg"
    )

    if not video_path.exists():
        raise FrameExtractionError(f"Video not found: {video_path}")

    try:
        await asyncio.to_thread(_extract_frame_ffmpeg, video_path, output_path, offset_seconds)
    except subprocess.CalledProcessError as e:
        stderr = e.stderr.decode(errors="replace") if e.stderr else "No error output"
        logger.error("ffmpeg frame extraction failed for %s: %s", video_path, stderr[-500:])
        raise FrameExtractionError(f"ffmpeg failed: {stderr[-500:]}") from e
    except FileNotFoundError as e:
        raise FrameExtractionError("ffmpeg not found on PATH") from e

    if not output_path.exists() or output_path.stat().st_size == 0:
        raise FrameExtractionError(f"No frame extracted from {video_path}")

    logger.info("Extracted continuation frame at %.2fs -> %s", offset_seconds, output_path)
    return str(output_path)
