"""Exception taxonomy for clip generation.

Every terminal non-success outcome of a generation attempt is reported as
exactly one GenerationError subclass. GenerationCancelled is the only one the
orchestration layer does not surface to the user.
"""

from typing import Optional


class GenerationError(Exception):
    """Base class for failures of a single generation attempt."""


class ProviderError(GenerationError):
    """The provider (via the gateway) answered with a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is None:
            return base
        detail = f": {self.body}" if self.body else ""
        return f"{base} (HTTP {self.status_code}){detail}"


class SubmissionRejected(ProviderError):
    """The provider declined the job at submission time."""


class ProtocolError(GenerationError):
    """The provider response is malformed or lacks an expected field."""


class GatewayUnreachable(GenerationError):
    """The gateway could not be reached (connection refused, timeout, TLS)."""


class ImageReadError(GenerationError):
    """The input image could not be read before submission."""


class ProviderReportedFailure(GenerationError):
    """The job ran and the provider marked it failed."""


class GenerationTimeout(GenerationError):
    """The job did not reach a terminal state within the wall-clock budget."""


class GenerationCancelled(GenerationError):
    """The user cancelled the attempt."""


class DownloadError(GenerationError):
    """The finished video could not be materialized locally."""


class FrameExtractionError(Exception):
    """The continuation frame could not be extracted from a finished clip.

    Not a GenerationError: the job itself already succeeded.
    """
