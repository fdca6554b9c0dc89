"""Gateway route handlers.

The wire shape is stable regardless of the provider behind the gateway:

    POST /generate          {image, prompt}  -> {jobId}
    GET  /status/{job_id}                    -> {phase, videoUrl?}
    GET  /                                   -> health + active mode
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from clipchain.schemas.wire import GenerateRequest, GenerateResponse, JobStatus
from clipchain.services.providers import JobNotFoundError, UpstreamError, VideoProvider

logger = logging.getLogger(__name__)

# Base64 prefixes of common image signatures
_BASE64_MIME_PREFIXES = (
    ("iVBOR", "image/png"),
    ("R0lGOD", "image/gif"),
    ("UklGR", "image/webp"),
)


def ensure_data_uri(image_b64: str) -> str:
    """Return the image as a data URI, sniffing the MIME type when absent.

    JPEG (``/9j/``) and anything unrecognised default to image/jpeg.
    """
    if image_b64.startswith("data:"):
        return image_b64

    mime_type = "image/jpeg"
    for prefix, candidate in _BASE64_MIME_PREFIXES:
        if image_b64.startswith(prefix):
            mime_type = candidate
            break
    return f"data:{mime_type};base64,{image_b64}"


def get_provider(request: Request) -> VideoProvider:
    return request.app.state.provider


async def require_api_key(
    request: Request,
    x_api_key: Optional[str] = Header(None),
) -> None:
    """Reject requests without the configured X-API-Key (no-op when unset)."""
    expected = request.app.state.api_key
    if expected and x_api_key != expected:
        raise HTTPException(status_code=401, detail="Unauthorized")


router = APIRouter(dependencies=[Depends(require_api_key)])


@router.get("/")
async def health(provider: VideoProvider = Depends(get_provider)):
    return {"status": "clipchain gateway running", "mode": provider.name}


@router.post("/generate", response_model=GenerateResponse)
async def generate(
    request: GenerateRequest,
    provider: VideoProvider = Depends(get_provider),
):
    """Start an image-to-video job and return its id."""
    if not request.image or not request.prompt:
        raise HTTPException(status_code=400, detail="image and prompt required")

    image = ensure_data_uri(request.image)
    try:
        job_id = await provider.submit(image, request.prompt)
    except UpstreamError as e:
        logger.error("Provider %s rejected job: %s", provider.name, e)
        raise HTTPException(status_code=e.status_code, detail=e.detail)

    return GenerateResponse(job_id=job_id)


@router.get(
    "/status/{job_id}",
    response_model=JobStatus,
    response_model_exclude_none=True,
)
async def job_status(
    job_id: str,
    provider: VideoProvider = Depends(get_provider),
):
    """Report the phase of a job and, once completed, its video URL."""
    try:
        status = await provider.status(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UpstreamError as e:
        logger.error("Provider %s status lookup failed for %s: %s", provider.name, job_id, e)
        raise HTTPException(status_code=e.status_code, detail=e.detail)

    logger.debug("Job %s phase=%s", job_id, status.phase.value)
    return status
