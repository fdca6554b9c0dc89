"""Abstract base class for image-to-video providers behind the gateway.

Defines the async interface every provider implements. The gateway routes
translate provider exceptions into HTTP responses; providers never build
responses themselves.
"""

from abc import ABC, abstractmethod

from clipchain.schemas.wire import JobStatus


class JobNotFoundError(LookupError):
    """The job id is unknown to the provider."""


class UpstreamError(Exception):
    """The upstream provider answered with an error status."""

    def __init__(self, status_code: int, detail: str):
        super().__init__(f"Upstream error {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class VideoProvider(ABC):
    """Abstract base class for image-to-video providers.

    Implementations accept a data-URI image plus a prompt and hand back an
    opaque job id, then report job progress on the shared three-valued
    phase vocabulary.
    """

    name: str = "provider"

    @abstractmethod
    async def submit(self, image: str, prompt: str) -> str:
        """Start an image-to-video job.

        Args:
            image: Image as a data URI.
            prompt: Scene prompt.

        Returns:
            Provider job id.
        """
        ...

    @abstractmethod
    async def status(self, job_id: str) -> JobStatus:
        """Report the phase of a job and its video URL once completed.

        Raises:
            JobNotFoundError: If the job id is unknown.
        """
        ...

    async def close(self) -> None:
        """Release provider resources (HTTP clients)."""
        return None
