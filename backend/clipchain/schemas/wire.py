"""Pydantic schemas for the gateway wire protocol.

The client and the gateway share these shapes regardless of which provider
the gateway fronts:

    POST /generate          {image, prompt}  -> {jobId}
    GET  /status/{jobId}                     -> {phase, videoUrl?}
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class JobPhase(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


_TERMINAL_PHASES = {
    "completed": JobPhase.COMPLETED,
    "failed": JobPhase.FAILED,
}


def normalize_phase(raw: Optional[str]) -> JobPhase:
    """Map a status string onto a job phase.

    Anything not recognised as terminal is treated as still running.
    """
    if not isinstance(raw, str):
        return JobPhase.PROCESSING
    return _TERMINAL_PHASES.get(raw.strip().lower(), JobPhase.PROCESSING)


class GenerateRequest(BaseModel):
    """Submission body. Fields default to empty so the route can answer 400."""

    image: str = Field("", description="Base64 image, optionally as a data URI")
    prompt: str = Field("", description="Scene prompt, already enriched with context")


class GenerateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId")


class JobStatus(BaseModel):
    """Status of one job as seen through the gateway."""

    model_config = ConfigDict(populate_by_name=True)

    phase: JobPhase
    video_url: Optional[str] = Field(None, alias="videoUrl")
