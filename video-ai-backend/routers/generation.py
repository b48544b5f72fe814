"""
Router for video generation endpoints.
Handles job submission, status polling, merging and downloads.
"""

import os
import uuid
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Body, HTTPException, File, Form, UploadFile, Depends
from fastapi.responses import FileResponse
from pydantic import ValidationError
from starlette.background import BackgroundTask

from config import UPLOAD_DIR, MAX_UPLOAD_SIZE, ALLOWED_IMAGE_TYPES
from merge import MergeEngine, MergeInputEmptyError, TranscodeError, get_merge_engine
from models import JobStatus
from schemas import (
    GenerationRequest,
    GenerateResponse,
    VideoResponse,
    MergeRequest,
    ClearCompletedResponse,
    StatsResponse,
    HealthResponse,
    validation_messages,
)
from services import AvailabilityProber
from storage import JobStore, get_store
from tasks import JobRunner, get_runner


# Create the router
router = APIRouter(tags=["generation"])


def get_prober() -> AvailabilityProber:
    return AvailabilityProber()


def _save_upload(contents: bytes, filename: str) -> str:
    os.makedirs(UPLOAD_DIR, exist_ok=True)
    file_path = os.path.join(UPLOAD_DIR, f"{uuid.uuid4()}_{os.path.basename(filename)}")
    with open(file_path, "wb") as buffer:
        buffer.write(contents)
    return file_path


@router.post("/generate", response_model=GenerateResponse)
async def generate_video(
    image: UploadFile = File(...),
    prompt: Optional[str] = Form(None),
    negative_prompt: Optional[str] = Form(None),
    negative_prompt_camel: Optional[str] = Form(None, alias="negativePrompt"),
    duration: Optional[str] = Form(None),
    seed: Optional[str] = Form(None),
    steps: Optional[str] = Form(None),
    store: JobStore = Depends(get_store),
    runner: JobRunner = Depends(get_runner),
):
    """
    Creates a pending job for the uploaded image and starts the generation
    pipeline in the background. Returns as soon as the job exists.
    """
    if negative_prompt is None:
        negative_prompt = negative_prompt_camel
    fields = {"prompt": prompt, "negative_prompt": negative_prompt, "duration": duration, "seed": seed, "steps": steps}
    try:
        request = GenerationRequest(**{k: v for k, v in fields.items() if v not in (None, "")})
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=validation_messages(e.errors()))

    if image.content_type not in ALLOWED_IMAGE_TYPES:
        raise HTTPException(status_code=400, detail="Only PNG and JPG images are allowed")
    # Never buffer more than one byte past the limit.
    contents = await image.read(MAX_UPLOAD_SIZE + 1)
    if not contents:
        raise HTTPException(status_code=400, detail="No image file provided")
    if len(contents) > MAX_UPLOAD_SIZE:
        raise HTTPException(status_code=400, detail="Image exceeds the 10MB upload limit")

    filename = image.filename or "image.png"
    try:
        source_path = _save_upload(contents, filename)
    except OSError as e:
        logging.error(f"Failed to save uploaded image: {e}")
        raise HTTPException(status_code=500, detail="Failed to start video generation")

    job = None
    try:
        job = store.create(request.to_parameters(), source_path, filename)
        runner.spawn(job.id, source_path, job.parameters)
    except Exception as e:
        logging.error(f"Failed to start generation job: {e}")
        if job is not None:
            store.update(job.id, status=JobStatus.FAILED, error="Failed to start video generation")
        if os.path.exists(source_path):
            os.remove(source_path)
        raise HTTPException(status_code=500, detail="Failed to start video generation")

    logging.info(f"✨ Job {job.id} submitted for prompt: '{request.prompt}'")
    return GenerateResponse(video_id=job.id, message="Video generation started")


@router.get("/video/{video_id}", response_model=VideoResponse)
async def get_video(video_id: int, store: JobStore = Depends(get_store)):
    job = store.get(video_id)
    if not job:
        raise HTTPException(status_code=404, detail="Video not found")
    return VideoResponse.from_job(job)


@router.get("/videos", response_model=List[VideoResponse])
async def list_videos(store: JobStore = Depends(get_store)):
    return [VideoResponse.from_job(job) for job in store.list()]


@router.get("/stats", response_model=StatsResponse)
async def get_stats(store: JobStore = Depends(get_store)):
    return StatsResponse(**store.stats())


@router.post("/merge")
async def merge_videos(
    payload: Optional[Dict[str, Any]] = Body(None),
    engine: MergeEngine = Depends(get_merge_engine),
):
    """Concatenates every completed video and streams the result back."""
    try:
        request = MergeRequest(**(payload or {}))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=validation_messages(e.errors()))

    try:
        result = await engine.merge(request.quality, request.frame_rate)
    except MergeInputEmptyError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TranscodeError as e:
        raise HTTPException(status_code=500, detail=str(e))

    try:
        # Temporary files go away once the download has been streamed.
        return FileResponse(
            result.output_path,
            media_type="video/mp4",
            filename="merged_video.mp4",
            background=BackgroundTask(result.cleanup),
        )
    except Exception as e:
        logging.error(f"Failed to send merged video: {e}")
        result.cleanup()
        raise HTTPException(status_code=500, detail="Failed to merge videos")


@router.get("/download/{video_id}")
async def download_video(video_id: int, store: JobStore = Depends(get_store)):
    job = store.get(video_id)
    if not job or job.status != JobStatus.COMPLETED:
        raise HTTPException(status_code=404, detail="Video not found or not completed")
    if not job.output_video_path or not os.path.exists(job.output_video_path):
        raise HTTPException(status_code=404, detail="Video file not found on server")

    return FileResponse(
        job.output_video_path,
        media_type="video/mp4",
        filename=f"{Path(job.filename).stem}.mp4",
    )


@router.post("/clear-completed", response_model=ClearCompletedResponse)
async def clear_completed(store: JobStore = Depends(get_store)):
    cleared = store.clear_completed()
    logging.info(f"🧹 Cleared {cleared} completed videos")
    return ClearCompletedResponse(cleared=cleared)


@router.get("/health", response_model=HealthResponse)
async def health(
    prober: AvailabilityProber = Depends(get_prober),
    runner: JobRunner = Depends(get_runner),
):
    available = await prober.probe_async()
    return HealthResponse(status="ok", framepack_available=available, active_jobs=runner.active())
