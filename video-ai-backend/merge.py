"""
Merging of completed clips into a single exported video.
"""

import os
import uuid
import logging
import ffmpeg
from dataclasses import dataclass
from typing import List, Optional
from fastapi.concurrency import run_in_threadpool

from config import (
    MERGE_DIR,
    FFMPEG_BINARY,
    VIDEO_CODEC,
    QUALITY_PRESETS,
    DEFAULT_QUALITY,
    DEFAULT_FRAME_RATE,
)
from models import Job, JobStatus
from storage import JobStore, get_store


class MergeError(Exception):
    """Base class for merge failures reported back to the caller."""


class MergeInputEmptyError(MergeError):
    pass


class TranscodeError(MergeError):
    pass


@dataclass(frozen=True)
class QualityParams:
    preset: str
    crf: int


def resolve_quality(profile: Optional[str]) -> QualityParams:
    """Unknown or missing profiles fall back to the default (high) profile."""
    preset, crf = QUALITY_PRESETS.get(profile or DEFAULT_QUALITY, QUALITY_PRESETS[DEFAULT_QUALITY])
    return QualityParams(preset=preset, crf=crf)


def _quote_concat_path(path: str) -> str:
    # concat demuxer syntax: a quote inside a quoted string is written as '\''
    return "'" + path.replace("'", "'\\''") + "'"


def build_concat_list(jobs: List[Job]) -> str:
    return "\n".join(f"file {_quote_concat_path(os.path.abspath(job.output_video_path))}" for job in jobs) + "\n"


@dataclass
class MergeResult:
    """Merged output plus its input list. Both are removed by cleanup()."""

    output_path: str
    list_path: str
    clip_count: int

    def cleanup(self):
        for path in (self.list_path, self.output_path):
            try:
                if os.path.exists(path):
                    os.remove(path)
            except OSError as e:
                logging.warning(f"Could not delete merge artifact {path}: {e}")


class MergeEngine:
    """Concatenates every completed job's video with ffmpeg."""

    def __init__(self, store: JobStore, work_dir: str = MERGE_DIR, ffmpeg_binary: str = FFMPEG_BINARY):
        self.store = store
        self.work_dir = work_dir
        self.ffmpeg_binary = ffmpeg_binary

    def build_stream(self, list_path: str, output_path: str, quality: QualityParams, frame_rate: int):
        stream = ffmpeg.input(list_path, f="concat", safe=0)
        stream = ffmpeg.output(
            stream,
            output_path,
            **{"c:v": VIDEO_CODEC, "preset": quality.preset, "crf": quality.crf, "r": frame_rate},
        )
        return stream.overwrite_output()

    def _transcode(self, stream):
        logging.info(f"🎬 Running FFmpeg command: {' '.join(stream.compile(cmd=self.ffmpeg_binary))}")
        stream.run(cmd=self.ffmpeg_binary, capture_stdout=True, capture_stderr=True)

    async def merge(self, quality: Optional[str] = DEFAULT_QUALITY, frame_rate: int = DEFAULT_FRAME_RATE) -> MergeResult:
        # Snapshot: jobs completing after this line are not part of the merge.
        jobs = self.store.list_by_status(JobStatus.COMPLETED)
        if not jobs:
            raise MergeInputEmptyError("No completed videos to merge")

        params = resolve_quality(quality)
        os.makedirs(self.work_dir, exist_ok=True)
        token = uuid.uuid4().hex
        result = MergeResult(
            output_path=os.path.join(self.work_dir, f"merged_video_{token}.mp4"),
            list_path=os.path.join(self.work_dir, f"input_{token}.txt"),
            clip_count=len(jobs),
        )

        logging.info(f"Stitching {len(jobs)} clips (preset={params.preset}, crf={params.crf}, fps={frame_rate})...")
        try:
            with open(result.list_path, "w", encoding="utf-8") as f:
                f.write(build_concat_list(jobs))
            stream = self.build_stream(result.list_path, result.output_path, params, frame_rate)
            await run_in_threadpool(self._transcode, stream)
        except ffmpeg.Error as e:
            result.cleanup()
            error_details = e.stderr.decode("utf8", errors="replace").strip() if e.stderr else "Unknown FFmpeg error"
            logging.error(f"FFmpeg merge failed: {error_details}")
            last_line = error_details.splitlines()[-1] if error_details else "Unknown FFmpeg error"
            raise TranscodeError(f"Failed to merge videos: {last_line}") from e
        except OSError as e:
            result.cleanup()
            logging.error(f"Could not run FFmpeg: {e}")
            raise TranscodeError(f"Failed to merge videos: {e}") from e
        except BaseException:
            result.cleanup()
            raise

        logging.info(f"Successfully merged {len(jobs)} clips into {result.output_path}")
        return result


merge_engine = MergeEngine(get_store())


def get_merge_engine() -> MergeEngine:
    return merge_engine
