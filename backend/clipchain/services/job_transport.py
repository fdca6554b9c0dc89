"""Async client for the clip generation gateway.

Provides one submission call and one status-check call, with no state kept
between calls. Credentials are attached by an httpx.Auth collaborator so
the transport never handles them directly.

Usage:
    async with JobTransport("http://127.0.0.1:8787", auth=ApiKeyAuth(key)) as transport:
        job_id = await transport.submit("start.jpg", "a fox turns its head")
        status = await transport.check_status(job_id)
"""

import asyncio
import base64
import logging
from pathlib import Path
from typing import Optional

import httpx

from clipchain.errors import (
    GatewayUnreachable,
    ImageReadError,
    ProtocolError,
    ProviderError,
    SubmissionRejected,
)
from clipchain.schemas.wire import JobStatus, normalize_phase

logger = logging.getLogger(__name__)


class ApiKeyAuth(httpx.Auth):
    """Attach the gateway API key as an X-API-Key header."""

    def __init__(self, api_key: str):
        self.api_key = api_key

    def auth_flow(self, request: httpx.Request):
        request.headers["X-API-Key"] = self.api_key
        yield request


def encode_image(image_ref: str) -> str:
    """Read a local image and return it base64-encoded."""
    return base64.b64encode(Path(image_ref).read_bytes()).decode("ascii")


class JobTransport:
    """Submit generation jobs and check their status through the gateway."""

    def __init__(
        self,
        base_url: str,
        *,
        auth: Optional[httpx.Auth] = None,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._auth = auth
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                auth=self._auth,
                timeout=httpx.Timeout(self._timeout, connect=30.0),
                transport=self._transport,
            )
        return self._client

    async def submit(self, image_ref: str, prompt_text: str) -> str:
        """Submit an image + prompt and return the external job id.

        Raises:
            SubmissionRejected: The gateway or provider declined the request.
            ProtocolError: The response carries no job id.
            ImageReadError: The input image cannot be read.
            GatewayUnreachable: The request never got an HTTP response.
        """
        try:
            image_b64 = await asyncio.to_thread(encode_image, image_ref)
        except OSError as e:
            raise ImageReadError(f"Cannot read input image {image_ref}: {e}") from e

        logger.info(
            "POST %s/generate image=%s (%d b64 chars) prompt=%d chars",
            self.base_url, image_ref, len(image_b64), len(prompt_text),
        )
        try:
            response = await self.client.post(
                "/generate",
                json={"image": image_b64, "prompt": prompt_text},
            )
        except httpx.HTTPError as e:
            raise GatewayUnreachable(f"Submit to {self.base_url} failed: {e!r}") from e
        logger.info("  submit response: HTTP %d", response.status_code)

        if response.is_error:
            raise SubmissionRejected(
                "Generation request rejected",
                status_code=response.status_code,
                body=response.text,
            )

        data = _json_object(response)
        job_id = data.get("jobId")
        if not isinstance(job_id, str) or not job_id:
            raise ProtocolError(f"Submit response missing jobId: {data!r}")

        logger.info("  job_id: %s", job_id)
        return job_id

    async def check_status(self, job_id: str) -> JobStatus:
        """Perform a single status check.

        Raises:
            ProviderError: The status endpoint answered with an error.
            ProtocolError: The response body is not a JSON object.
            GatewayUnreachable: The request never got an HTTP response.
        """
        try:
            response = await self.client.get(f"/status/{job_id}")
        except httpx.HTTPError as e:
            raise GatewayUnreachable(f"Status check for {job_id} failed: {e!r}") from e
        logger.debug(
            "GET %s/status/%s -> HTTP %d",
            self.base_url, job_id, response.status_code,
        )

        if response.is_error:
            raise ProviderError(
                "Status check failed",
                status_code=response.status_code,
                body=response.text,
            )

        data = _json_object(response)
        # Older gateways report the phase under "status"
        raw_phase = data.get("phase", data.get("status"))
        video_url = data.get("videoUrl")
        logger.debug("  raw phase=%s videoUrl=%s", raw_phase, video_url)
        return JobStatus(
            phase=normalize_phase(raw_phase),
            video_url=video_url if isinstance(video_url, str) and video_url else None,
        )

    async def close(self):
        """Close the underlying HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "JobTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


def _json_object(response: httpx.Response) -> dict:
    try:
        data = response.json()
    except ValueError as e:
        raise ProtocolError(f"Response is not JSON: {response.text[:200]!r}") from e
    if not isinstance(data, dict):
        raise ProtocolError(f"Expected a JSON object, got {type(data).__name__}")
    return data
