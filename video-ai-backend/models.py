# models.py

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class GenerationParameters:
    """Everything Framepack needs besides the image itself."""

    prompt: str
    negative_prompt: str = ""
    duration: int = 5
    seed: int = 31337
    steps: int = 25


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Job:
    """Job model for tracking image-to-video generation requests.

    Records are immutable values; the store swaps in a new record on every
    update, so a reader never observes a half-applied change.
    """

    id: int
    parameters: GenerationParameters
    source_image_path: str
    filename: str
    status: JobStatus = JobStatus.PENDING
    progress: int = 0  # only meaningful while processing
    output_video_path: Optional[str] = None
    error: Optional[str] = None
    simulated: bool = False  # completed through demo mode, `error` holds the notice
    created_at: datetime = field(default_factory=_utcnow)