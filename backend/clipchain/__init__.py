"""clipchain: chained image-to-video generation.

Each clip in a chain is seeded by the last frame of the clip before it, so
the local ffmpeg binary is a hard requirement of the client. The gateway
service does not need it.
"""

import logging
import shutil
import subprocess

__version__ = "0.1.0"

logger = logging.getLogger(__name__)

_FFMPEG_INSTALL_HINT = (
    "clipchain needs ffmpeg to grab the last frame of each clip.\n"
    "  apt:   sudo apt-get install ffmpeg\n"
    "  brew:  brew install ffmpeg\n"
    "  other: https://ffmpeg.org/download.html"
)


def validate_dependencies() -> str:
    """Check that ffmpeg can run before a chain starts.

    Returns:
        The first line of ``ffmpeg -version``.

    Raises:
        RuntimeError: ffmpeg is missing from PATH or exits with an error.
    """
    binary = shutil.which("ffmpeg")
    if binary is None:
        raise RuntimeError(f"ffmpeg not found on PATH.\n{_FFMPEG_INSTALL_HINT}")

    try:
        result = subprocess.run(
            [binary, "-version"], capture_output=True, check=True, text=True,
        )
    except (subprocess.CalledProcessError, OSError) as e:
        raise RuntimeError(f"ffmpeg at {binary} is not usable: {e}\n{_FFMPEG_INSTALL_HINT}") from e

    version = result.stdout.splitlines()[0] if result.stdout else "unknown version"
    logger.debug("Using %s (%s)", binary, version)
    return version
