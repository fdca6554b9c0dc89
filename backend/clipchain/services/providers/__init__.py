"""Image-to-video provider abstraction for the gateway.

Provides a unified async submit/status interface over the live Kling API
and the stateless simulation backend.

Usage:
    from clipchain.services.providers import get_provider

    provider = get_provider()
    job_id = await provider.submit(data_uri, prompt)
    status = await provider.status(job_id)
"""

from clipchain.services.providers.base import JobNotFoundError, UpstreamError, VideoProvider
from clipchain.services.providers.registry import get_provider

__all__ = ["JobNotFoundError", "UpstreamError", "VideoProvider", "get_provider"]
