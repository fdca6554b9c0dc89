"""
File management service for clipchain.

Handles structured filesystem storage for downloaded clips and extracted
continuation frames, with path traversal protection.
"""
import logging
import uuid
from pathlib import Path
from typing import Optional

import httpx

from clipchain.config import settings
from clipchain.errors import DownloadError

logger = logging.getLogger(__name__)


class FileManager:
    """
    Manage filesystem artifacts for one clip chain.

    Creates structured directories:
    - {base_dir}/{chain_id}/clips/ - Downloaded video clips
    - {base_dir}/{chain_id}/frames/ - Extracted continuation frames

    Implements path traversal protection to prevent directory escape attacks.
    """

    def __init__(
        self,
        chain_id: str | uuid.UUID,
        base_dir: str | Path | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize FileManager for a chain.

        Args:
            chain_id: Identifier of the chain the artifacts belong to
            base_dir: Root directory for all chain artifacts.
                     If None, uses settings.storage.tmp_dir
            transport: Optional httpx transport used for downloads
        """
        if base_dir is None:
            base_dir = settings.storage.tmp_dir

        self.base_dir = Path(base_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._transport = transport

        chain_dir = (self.base_dir / str(chain_id)).resolve()

        # Path traversal protection
        if not chain_dir.is_relative_to(self.base_dir) or chain_dir == self.base_dir:
            raise ValueError("Invalid chain path")

        self.chain_dir = chain_dir
        (self.chain_dir / "clips").mkdir(parents=True, exist_ok=True)
        (self.chain_dir / "frames").mkdir(parents=True, exist_ok=True)

    def clip_path(self, clip_id: str) -> Path:
        return self._inside(self.chain_dir / "clips" / f"clip_{clip_id}.mp4")

    def frame_path(self, clip_id: str) -> Path:
        return self._inside(self.chain_dir / "frames" / f"clip_{clip_id}_last.jpg")

    def _inside(self, path: Path) -> Path:
        resolved = path.resolve()
        if not resolved.is_relative_to(self.chain_dir):
            raise ValueError("Invalid artifact path")
        return resolved

    async def download_video(self, video_url: str, clip_id: str) -> str:
        """
        Download a finished video into the chain's clips directory.

        Args:
            video_url: URL reported by the provider
            clip_id: Clip the video belongs to

        Returns:
            Local path of the downloaded file

        Raises:
            DownloadError: If the download fails for any transport, HTTP or disk reason

        A partial file never outlives a failed or cancelled download.
        """
        dest = self.clip_path(clip_id)
        logger.info("GET %s -> %s", video_url, dest)
        try:
            async with httpx.AsyncClient(
                follow_redirects=True,
                timeout=httpx.Timeout(120.0, connect=30.0),
                transport=self._transport,
            ) as client:
                async with client.stream("GET", video_url) as response:
                    response.raise_for_status()
                    size = 0
                    with open(dest, "wb") as f:
                        async for chunk in response.aiter_bytes():
                            f.write(chunk)
                            size += len(chunk)
        except (httpx.HTTPError, OSError) as e:
            dest.unlink(missing_ok=True)
            raise DownloadError(f"Video download failed: {e}") from e
        except BaseException:
            # Cancelled mid-stream
            dest.unlink(missing_ok=True)
            raise

        if size == 0:
            dest.unlink(missing_ok=True)
            raise DownloadError(f"Video download returned no data: {video_url}")

        logger.info("  downloaded %d bytes", size)
        return str(dest)

    def release(self, ref: str) -> None:
        """
        Delete an artifact previously created by this manager.

        References outside the chain directory are left untouched.
        """
        path = Path(ref).resolve()
        if not path.is_relative_to(self.chain_dir):
            logger.debug("Not releasing %s (outside %s)", ref, self.chain_dir)
            return
        path.unlink(missing_ok=True)
