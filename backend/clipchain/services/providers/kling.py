"""Kling image-to-video API client.

Provides:
- Per-request JWT minting (HS256) via an httpx.Auth flow
- Async submit and status calls against /v1/videos/image2video
- Mapping of Kling task statuses onto the gateway phase vocabulary

Submission is never retried (one user action, at most one upstream job).
The status lookup is idempotent and is retried on 429/5xx and connection
errors.

Usage:
    provider = KlingProvider(settings.kling)
    task_id = await provider.submit(data_uri, prompt)
    status = await provider.status(task_id)
"""

import logging
import time
from typing import Callable, Optional

import httpx
import jwt
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from clipchain.config import KlingConfig
from clipchain.schemas.wire import JobPhase, JobStatus
from clipchain.services.providers.base import UpstreamError, VideoProvider

logger = logging.getLogger(__name__)

_SUBMIT_PATH = "/v1/videos/image2video"

# Kling task_status -> gateway phase; everything else is still running
_KLING_PHASES = {
    "succeed": JobPhase.COMPLETED,
    "failed": JobPhase.FAILED,
}


class KlingAuth(httpx.Auth):
    """Mint a short-lived HS256 bearer token for every outgoing request."""

    def __init__(
        self,
        access_key: str,
        secret_key: str,
        ttl_seconds: int = 1800,
        clock: Callable[[], float] = time.time,
    ):
        self.access_key = access_key
        self.secret_key = secret_key
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def mint_token(self) -> str:
        now = int(self._clock())
        payload = {
            "iss": self.access_key,
            "exp": now + self.ttl_seconds,
            # Backdated to tolerate clock skew on the provider side
            "iat": now - 5,
        }
        return jwt.encode(
            payload,
            self.secret_key,
            algorithm="HS256",
            headers={"typ": "JWT"},
        )

    def auth_flow(self, request: httpx.Request):
        request.headers["Authorization"] = f"Bearer {self.mint_token()}"
        yield request


# ---------------------------------------------------------------------------
# Error classification helpers
# ---------------------------------------------------------------------------
def _is_retriable(exc: BaseException) -> bool:
    """Return True only for transient errors worth retrying (429, 5xx, network)."""
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        return code == 429 or code >= 500
    return isinstance(exc, httpx.TransportError)


# ---------------------------------------------------------------------------
# Retry-decorated status lookup (guards the idempotent GET against 429/5xx)
# ---------------------------------------------------------------------------
@retry(
    stop=stop_after_attempt(4),
    wait=wait_exponential(multiplier=1, min=1, max=8) + wait_random(0, 1),
    retry=retry_if_exception(_is_retriable),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def _get_task(client: httpx.AsyncClient, task_id: str) -> dict:
    """Fetch a Kling task with retry on transient HTTP errors."""
    response = await client.get(f"{_SUBMIT_PATH}/{task_id}")
    logger.debug("GET %s/%s -> HTTP %d", _SUBMIT_PATH, task_id, response.status_code)
    response.raise_for_status()
    return response.json()


class KlingProvider(VideoProvider):
    """Async client for the Kling image-to-video API."""

    name = "kling"

    def __init__(
        self,
        config: KlingConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not (config.access_key and config.secret_key):
            raise ValueError(
                "Kling credentials not configured. Set CLIPCHAIN_KLING__ACCESS_KEY "
                "and CLIPCHAIN_KLING__SECRET_KEY."
            )
        self.config = config
        self.auth = KlingAuth(
            config.access_key, config.secret_key, ttl_seconds=config.token_ttl_seconds,
        )
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url.rstrip("/"),
                auth=self.auth,
                timeout=httpx.Timeout(120.0, connect=30.0),
                transport=self._transport,
            )
        return self._client

    async def submit(self, image: str, prompt: str) -> str:
        """Create an image-to-video task and return its task_id."""
        logger.info(
            "POST %s%s model=%s prompt=%d chars",
            self.config.base_url, _SUBMIT_PATH, self.config.model_name, len(prompt),
        )
        response = await self.client.post(
            _SUBMIT_PATH,
            json={
                "model_name": self.config.model_name,
                "image": image,
                "prompt": prompt,
                "duration": self.config.duration,
                "mode": self.config.mode,
                "cfg_scale": self.config.cfg_scale,
            },
        )
        logger.info("  submit response: HTTP %d", response.status_code)
        if response.is_error:
            raise UpstreamError(response.status_code, response.text)

        try:
            result = response.json()
        except ValueError:
            raise UpstreamError(500, "No task_id returned") from None
        task_id = ((result or {}).get("data") or {}).get("task_id")
        if not task_id:
            logger.error("Kling response without task_id: %s", result)
            raise UpstreamError(500, "No task_id returned")

        logger.info("  task_id: %s", task_id)
        return task_id

    async def status(self, job_id: str) -> JobStatus:
        """Look up a task and map its status onto the gateway phases."""
        try:
            result = await _get_task(self.client, job_id)
        except httpx.HTTPStatusError as e:
            raise UpstreamError(e.response.status_code, e.response.text) from e
        except httpx.TransportError as e:
            raise UpstreamError(502, f"Kling unreachable: {e}") from e

        data = (result or {}).get("data") or {}
        raw_status = data.get("task_status", "unknown")
        phase = _KLING_PHASES.get(raw_status, JobPhase.PROCESSING)
        logger.debug("  task %s raw status=%s -> %s", job_id, raw_status, phase.value)

        video_url = None
        if phase is JobPhase.COMPLETED:
            videos = (data.get("task_result") or {}).get("videos") or []
            if videos and isinstance(videos[0], dict):
                video_url = videos[0].get("url")

        return JobStatus(phase=phase, video_url=video_url)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
