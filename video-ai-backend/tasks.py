# tasks.py

import os
import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional
from fastapi.concurrency import run_in_threadpool

from config import OUTPUT_DIR, SIMULATION_CHECKPOINTS, SIMULATION_STEP_DELAY, DEMO_MODE_NOTICE
from models import GenerationParameters, JobStatus
from services import AvailabilityProber, FramepackClient, extract_output_reference
from storage import JobStore, get_store


class GenerationStrategy(ABC):
    """One way of carrying a processing job to completion."""

    name = "base"

    def __init__(self, pipeline: "GenerationPipeline"):
        self.pipeline = pipeline

    @abstractmethod
    async def run(self, job_id: int, source_image_path: str, params: GenerationParameters):
        ...


class RealInvocation(GenerationStrategy):
    name = "framepack"

    async def run(self, job_id: int, source_image_path: str, params: GenerationParameters):
        pipeline = self.pipeline
        client = pipeline.client

        pipeline.advance(job_id, 30)
        image_bytes = await run_in_threadpool(Path(source_image_path).read_bytes)

        pipeline.advance(job_id, 50)
        filename = os.path.basename(source_image_path)
        result = await run_in_threadpool(client.process, image_bytes, filename, params)

        pipeline.advance(job_id, 80)
        video_url = extract_output_reference(result, client.base_url)
        video_path = await run_in_threadpool(client.download, video_url, pipeline.output_dir, job_id)

        pipeline.store.update(
            job_id,
            status=JobStatus.COMPLETED,
            progress=100,
            output_video_path=video_path,
        )
        logging.info(f"✅ Job {job_id} finished. Video at: {video_path}")


class Simulation(GenerationStrategy):
    """Demo mode, used when Framepack is not running. Paces progress like a real call."""

    name = "simulation"

    async def run(self, job_id: int, source_image_path: str, params: GenerationParameters):
        logging.info(f"🎭 Demo mode: simulating video generation for '{params.prompt}'")
        for checkpoint in self.pipeline.checkpoints:
            self.pipeline.advance(job_id, checkpoint)
            await asyncio.sleep(self.pipeline.step_delay)

        # Placeholder only, nothing is transcoded in demo mode.
        placeholder = os.path.join(self.pipeline.output_dir, f"demo_video_{job_id}.mp4")
        self.pipeline.store.update(
            job_id,
            status=JobStatus.COMPLETED,
            progress=100,
            output_video_path=placeholder,
            error=DEMO_MODE_NOTICE,
            simulated=True,
        )
        logging.info(f"✅ Job {job_id} finished in demo mode.")


class GenerationPipeline:
    """
    Drives a single job from pending to a terminal state.
    The pipeline is the only writer of job status, progress, paths and errors.
    """

    def __init__(
        self,
        store: JobStore,
        prober: Optional[AvailabilityProber] = None,
        client: Optional[FramepackClient] = None,
        output_dir: str = OUTPUT_DIR,
        step_delay: float = SIMULATION_STEP_DELAY,
        checkpoints=SIMULATION_CHECKPOINTS,
    ):
        self.store = store
        self.prober = prober or AvailabilityProber()
        self.client = client or FramepackClient()
        self.output_dir = output_dir
        self.step_delay = step_delay
        self.checkpoints = tuple(checkpoints)

    def advance(self, job_id: int, progress: int):
        """Raises progress, never lowers it."""
        job = self.store.get(job_id)
        if job is None or progress <= job.progress:
            return
        self.store.update(job_id, progress=min(progress, 100))

    async def select_strategy(self) -> GenerationStrategy:
        if await self.prober.probe_async():
            return RealInvocation(self)
        return Simulation(self)

    async def run(self, job_id: int, source_image_path: str, params: GenerationParameters):
        try:
            self.store.update(job_id, status=JobStatus.PROCESSING, progress=10)
            strategy = await self.select_strategy()
            logging.info(f"🎬 Job {job_id} running with strategy '{strategy.name}'")
            await strategy.run(job_id, source_image_path, params)
        except asyncio.CancelledError:
            self.store.update(job_id, status=JobStatus.FAILED, error="Generation was cancelled.")
            raise
        except Exception as e:
            logging.error(f"❌ Job {job_id} failed. Error: {e}")
            self.store.update(job_id, status=JobStatus.FAILED, error=str(e) or e.__class__.__name__)
        finally:
            await run_in_threadpool(self._release_source, job_id, source_image_path)

    @staticmethod
    def _release_source(job_id: int, source_image_path: str):
        try:
            if os.path.exists(source_image_path):
                os.remove(source_image_path)
        except OSError as e:
            logging.warning(f"Could not delete source image for job {job_id}: {e}")


class JobRunner:
    """Spawns one asyncio task per job and keeps a handle to it while it runs."""

    def __init__(self, pipeline: GenerationPipeline):
        self.pipeline = pipeline
        self._tasks: Dict[int, asyncio.Task] = {}

    def spawn(self, job_id: int, source_image_path: str, params: GenerationParameters) -> asyncio.Task:
        task = asyncio.create_task(
            self.pipeline.run(job_id, source_image_path, params),
            name=f"generate-{job_id}",
        )
        self._tasks[job_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job_id, None))
        return task

    def get(self, job_id: int) -> Optional[asyncio.Task]:
        return self._tasks.get(job_id)

    def active(self) -> List[int]:
        return list(self._tasks)

    async def shutdown(self):
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


job_runner = JobRunner(GenerationPipeline(get_store()))


def get_runner() -> JobRunner:
    return job_runner
