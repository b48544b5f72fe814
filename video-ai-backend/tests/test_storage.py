# video-ai-backend/tests/test_storage.py

import os
import sys

# Add the parent directory to the Python path so we can import from it
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models import GenerationParameters, JobStatus
from storage import MemoryJobStore


PARAMS = GenerationParameters(prompt="a cat walking", duration=5, seed=42, steps=20)


def _create(store, name="cat.png"):
    return store.create(PARAMS, f"/tmp/uploads/{name}", name)


def test_create_starts_pending_with_fresh_ids():
    store = MemoryJobStore()
    first = _create(store)
    second = _create(store, "dog.png")

    assert first.status == JobStatus.PENDING
    assert first.progress == 0
    assert first.output_video_path is None
    assert (first.id, second.id) == (1, 2)
    assert store.get(first.id) == first


def test_get_unknown_job_returns_none():
    assert MemoryJobStore().get(99) is None


def test_update_merges_fields_and_returns_new_record():
    store = MemoryJobStore()
    job = _create(store)

    updated = store.update(job.id, status=JobStatus.PROCESSING, progress=10)

    assert updated.status == JobStatus.PROCESSING
    assert updated.progress == 10
    assert updated.parameters == PARAMS
    assert updated.created_at == job.created_at
    # the old record is untouched
    assert job.status == JobStatus.PENDING


def test_update_unknown_job_returns_none():
    assert MemoryJobStore().update(5, progress=50) is None


def test_list_keeps_insertion_order_and_filters_by_status():
    store = MemoryJobStore()
    jobs = [_create(store, f"{i}.png") for i in range(4)]
    store.update(jobs[1].id, status=JobStatus.COMPLETED)
    store.update(jobs[3].id, status=JobStatus.COMPLETED)

    assert [job.id for job in store.list()] == [job.id for job in jobs]
    assert [job.id for job in store.list_by_status(JobStatus.COMPLETED)] == [jobs[1].id, jobs[3].id]


def test_clear_completed_removes_only_completed_and_ids_are_not_reused():
    store = MemoryJobStore()
    done = _create(store)
    failed = _create(store)
    running = _create(store)
    store.update(done.id, status=JobStatus.COMPLETED, progress=100)
    store.update(failed.id, status=JobStatus.FAILED, error="boom")
    store.update(running.id, status=JobStatus.PROCESSING, progress=30)

    assert store.clear_completed() == 1
    assert store.get(done.id) is None
    assert [job.id for job in store.list()] == [failed.id, running.id]
    assert store.clear_completed() == 0

    assert _create(store).id == 4


def test_stats_counts_each_status():
    store = MemoryJobStore()
    a, b, _ = _create(store), _create(store), _create(store)
    store.update(a.id, status=JobStatus.COMPLETED)
    store.update(b.id, status=JobStatus.FAILED)

    assert store.stats() == {"pending": 1, "processing": 0, "completed": 1, "failed": 1, "total": 3}
