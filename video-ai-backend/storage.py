# storage.py

import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Dict, List, Optional

from models import GenerationParameters, Job, JobStatus


class JobStore(ABC):
    """Interface for job persistence.

    Only the generation pipeline is allowed to call `update`; everything else
    treats the store as read-only apart from `create` and `clear_completed`.
    """

    @abstractmethod
    def create(self, parameters: GenerationParameters, source_image_path: str, filename: str) -> Job:
        ...

    @abstractmethod
    def get(self, job_id: int) -> Optional[Job]:
        ...

    @abstractmethod
    def update(self, job_id: int, **fields) -> Optional[Job]:
        ...

    @abstractmethod
    def list(self) -> List[Job]:
        ...

    @abstractmethod
    def list_by_status(self, status: JobStatus) -> List[Job]:
        ...

    @abstractmethod
    def clear_completed(self) -> int:
        ...

    def stats(self) -> Dict[str, int]:
        jobs = self.list()
        counts = {status.value: 0 for status in JobStatus}
        for job in jobs:
            counts[job.status.value] += 1
        counts["total"] = len(jobs)
        return counts


class MemoryJobStore(JobStore):
    """In-process store. A restart clears all jobs."""

    def __init__(self):
        self._jobs: Dict[int, Job] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def create(self, parameters: GenerationParameters, source_image_path: str, filename: str) -> Job:
        with self._lock:
            job = Job(
                id=self._next_id,
                parameters=parameters,
                source_image_path=source_image_path,
                filename=filename,
            )
            self._next_id += 1
            self._jobs[job.id] = job
            return job

    def get(self, job_id: int) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def update(self, job_id: int, **fields) -> Optional[Job]:
        # No transition checks here; the pipeline owns that discipline.
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            updated = replace(job, **fields)
            self._jobs[job_id] = updated
            return updated

    def list(self) -> List[Job]:
        with self._lock:
            return list(self._jobs.values())

    def list_by_status(self, status: JobStatus) -> List[Job]:
        with self._lock:
            return [job for job in self._jobs.values() if job.status == status]

    def clear_completed(self) -> int:
        with self._lock:
            completed = [job_id for job_id, job in self._jobs.items() if job.status == JobStatus.COMPLETED]
            for job_id in completed:
                del self._jobs[job_id]
            return len(completed)


# Process-wide store, handed out through a FastAPI dependency like a DB session
job_store = MemoryJobStore()


def get_store() -> JobStore:
    return job_store
