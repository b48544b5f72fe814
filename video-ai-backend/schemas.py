"""
Pydantic models for data validation in the Framepack Video Generator.
"""

from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Dict, List, Optional

from config import (
    MIN_DURATION, MAX_DURATION, DEFAULT_DURATION,
    MIN_STEPS, MAX_STEPS, DEFAULT_STEPS, DEFAULT_SEED,
    DEFAULT_QUALITY, DEFAULT_FRAME_RATE, MIN_FRAME_RATE, MAX_FRAME_RATE,
)
from models import GenerationParameters, Job


class GenerationRequest(BaseModel):
    """Generation parameters submitted alongside the source image."""
    prompt: str = Field(..., max_length=2000)
    negative_prompt: str = Field("", max_length=2000)
    duration: int = Field(DEFAULT_DURATION, ge=MIN_DURATION, le=MAX_DURATION)
    seed: int = DEFAULT_SEED
    steps: int = Field(DEFAULT_STEPS, ge=MIN_STEPS, le=MAX_STEPS)

    @field_validator("prompt")
    @classmethod
    def prompt_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("prompt must not be empty")
        return value.strip()

    def to_parameters(self) -> GenerationParameters:
        return GenerationParameters(
            prompt=self.prompt,
            negative_prompt=self.negative_prompt or "",
            duration=self.duration,
            seed=self.seed,
            steps=self.steps,
        )


class GenerateResponse(BaseModel):
    """Response when submitting a background generation job."""
    success: bool = True
    video_id: int
    message: str


class ParametersResponse(BaseModel):
    prompt: str
    negative_prompt: str
    duration: int
    seed: int
    steps: int


def format_time_ago(created_at: datetime, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    minutes = int((now - created_at).total_seconds() // 60)
    if minutes < 1:
        return "Just now"
    if minutes == 1:
        return "1 minute ago"
    if minutes < 60:
        return f"{minutes} minutes ago"
    hours = minutes // 60
    if hours == 1:
        return "1 hour ago"
    return f"{hours} hours ago"


class VideoResponse(BaseModel):
    """A job record as seen by the UI."""
    id: int
    filename: str
    status: str  # "pending" | "processing" | "completed" | "failed"
    progress: int
    video_path: Optional[str] = None
    error: Optional[str] = None
    simulated: bool = False
    parameters: ParametersResponse
    created_at: datetime
    created_ago: str

    @classmethod
    def from_job(cls, job: Job, now: Optional[datetime] = None) -> "VideoResponse":
        params = job.parameters
        return cls(
            id=job.id,
            filename=job.filename,
            status=job.status.value,
            progress=job.progress,
            video_path=job.output_video_path,
            error=job.error,
            simulated=job.simulated,
            parameters=ParametersResponse(
                prompt=params.prompt,
                negative_prompt=params.negative_prompt,
                duration=params.duration,
                seed=params.seed,
                steps=params.steps,
            ),
            created_at=job.created_at,
            created_ago=format_time_ago(job.created_at, now),
        )


class MergeRequest(BaseModel):
    """Request model for merging all completed videos.

    The web client sends `frameRate`; `frame_rate` is accepted as well.
    """
    model_config = ConfigDict(populate_by_name=True)

    quality: Optional[str] = DEFAULT_QUALITY  # unknown values fall back to "high"
    frame_rate: int = Field(DEFAULT_FRAME_RATE, alias="frameRate", ge=MIN_FRAME_RATE, le=MAX_FRAME_RATE)


class ClearCompletedResponse(BaseModel):
    success: bool = True
    cleared: int


class StatsResponse(BaseModel):
    total: int
    pending: int
    processing: int
    completed: int
    failed: int


class HealthResponse(BaseModel):
    status: str
    framepack_available: bool
    active_jobs: List[int] = []


def validation_messages(errors: List[Dict]) -> str:
    """Flattens pydantic errors into one readable line."""
    parts = []
    for error in errors:
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        parts.append(f"{location}: {error.get('msg')}" if location else error.get("msg", "invalid value"))
    return ", ".join(parts)
