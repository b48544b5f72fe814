# video-ai-backend/tests/test_merge.py

import os
import sys
import asyncio

import ffmpeg
import pytest

# Add the parent directory to the Python path so we can import from it
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from merge import (
    MergeEngine,
    MergeInputEmptyError,
    QualityParams,
    TranscodeError,
    build_concat_list,
    resolve_quality,
)
from models import GenerationParameters, JobStatus
from storage import MemoryJobStore


PARAMS = GenerationParameters(prompt="a cat walking", duration=5, seed=42, steps=20)


def _value_after(args, flag):
    return args[args.index(flag) + 1]


class FakeTranscoder:
    """Stands in for ffmpeg: records the arguments and writes an output file."""

    def __init__(self, error=None):
        self.error = error
        self.calls = []
        self.inputs = []

    def __call__(self, stream):
        args = ffmpeg.get_args(stream)
        self.calls.append(args)
        with open(_value_after(args, "-i"), encoding="utf-8") as f:
            self.inputs.append(f.read().splitlines())
        if self.error:
            raise self.error
        with open(args[-2], "wb") as f:
            f.write(b"merged")


def _completed_store(tmp_path, count):
    store = MemoryJobStore()
    paths = []
    for i in range(count):
        clip = tmp_path / f"clip_{i}.mp4"
        clip.write_bytes(b"clip")
        job = store.create(PARAMS, f"/tmp/uploads/{i}.png", f"{i}.png")
        store.update(job.id, status=JobStatus.COMPLETED, progress=100, output_video_path=str(clip))
        paths.append(str(clip))
    return store, paths


def _engine(store, tmp_path, transcoder):
    engine = MergeEngine(store, work_dir=str(tmp_path / "merge"))
    engine._transcode = transcoder
    return engine


@pytest.mark.parametrize(
    "profile, expected",
    [
        ("high", QualityParams("medium", 18)),
        ("medium", QualityParams("fast", 23)),
        ("low", QualityParams("fast", 28)),
        ("ultra", QualityParams("medium", 18)),
        (None, QualityParams("medium", 18)),
        ("", QualityParams("medium", 18)),
    ],
)
def test_resolve_quality(profile, expected):
    assert resolve_quality(profile) == expected


def test_concat_list_quotes_paths():
    store = MemoryJobStore()
    job = store.create(PARAMS, "/tmp/a.png", "a.png")
    job = store.update(job.id, output_video_path="/videos/it's here.mp4")

    assert build_concat_list([job]) == "file '/videos/it'\\''s here.mp4'\n"


def test_merge_low_quality_two_clips_in_store_order(tmp_path):
    """
    Two completed jobs merged with profile 'low' at 24 fps.
    """
    store, paths = _completed_store(tmp_path, 2)
    transcoder = FakeTranscoder()
    engine = _engine(store, tmp_path, transcoder)

    result = asyncio.run(engine.merge("low", 24))

    args = transcoder.calls[0]
    assert args[:4] == ["-f", "concat", "-safe", "0"]
    assert _value_after(args, "-c:v") == "libx264"
    assert _value_after(args, "-preset") == "fast"
    assert _value_after(args, "-crf") == "28"
    assert _value_after(args, "-r") == "24"
    assert args[-1] == "-y"
    assert transcoder.inputs[0] == [f"file '{path}'" for path in paths]

    assert result.clip_count == 2
    assert os.path.exists(result.output_path)
    result.cleanup()
    assert not os.path.exists(result.output_path)
    assert not os.path.exists(result.list_path)


def test_merge_without_completed_jobs_never_transcodes(tmp_path):
    store = MemoryJobStore()
    pending = store.create(PARAMS, "/tmp/a.png", "a.png")
    store.update(pending.id, status=JobStatus.FAILED, error="boom")
    transcoder = FakeTranscoder()

    with pytest.raises(MergeInputEmptyError):
        asyncio.run(_engine(store, tmp_path, transcoder).merge("high", 30))

    assert transcoder.calls == []


def test_merge_only_takes_completed_jobs(tmp_path):
    store, paths = _completed_store(tmp_path, 3)
    running = store.create(PARAMS, "/tmp/x.png", "x.png")
    store.update(running.id, status=JobStatus.PROCESSING, progress=50)
    transcoder = FakeTranscoder()

    result = asyncio.run(_engine(store, tmp_path, transcoder).merge("medium", 30))

    assert len(transcoder.inputs[0]) == 3
    assert result.clip_count == 3
    result.cleanup()


def test_merge_failure_removes_artifacts(tmp_path):
    store, _ = _completed_store(tmp_path, 2)
    transcoder = FakeTranscoder(error=ffmpeg.Error("ffmpeg", b"", b"concat: invalid data\nConversion failed!"))
    engine = _engine(store, tmp_path, transcoder)

    with pytest.raises(TranscodeError) as excinfo:
        asyncio.run(engine.merge("high", 30))

    assert "Conversion failed!" in str(excinfo.value)
    assert os.listdir(engine.work_dir) == []


def test_merge_spawn_error_is_transcode_failure(tmp_path):
    store, _ = _completed_store(tmp_path, 1)
    engine = _engine(store, tmp_path, FakeTranscoder(error=FileNotFoundError("ffmpeg")))

    with pytest.raises(TranscodeError):
        asyncio.run(engine.merge("high", 30))

    assert os.listdir(engine.work_dir) == []


def test_each_merge_gets_its_own_output(tmp_path):
    store, _ = _completed_store(tmp_path, 1)
    engine = _engine(store, tmp_path, FakeTranscoder())

    first = asyncio.run(engine.merge())
    second = asyncio.run(engine.merge())

    assert first.output_path != second.output_path
    first.cleanup()
    second.cleanup()
