"""
Service classes for the Framepack Video Generator.
Contains the AvailabilityProber and the FramepackClient that speaks the
Gradio HTTP protocol of a locally running Framepack instance.
"""

import os
import json
import time
import uuid
import logging
import requests
from typing import Any, Iterable, List, Optional
from fastapi.concurrency import run_in_threadpool

from config import (
    FRAMEPACK_URL,
    FRAMEPACK_API_NAME,
    FRAMEPACK_TIMEOUT,
    PROBE_TIMEOUT,
    DOWNLOAD_CHUNK_SIZE,
)
from models import GenerationParameters


class FramepackError(Exception):
    """Framepack could not be reached or reported a failure."""


class MalformedResponseError(FramepackError):
    """Framepack answered, but without a usable video reference."""


class AvailabilityProber:
    """Cheap reachability check used to choose between real and demo generation."""

    def __init__(self, url: str = FRAMEPACK_URL, timeout: float = PROBE_TIMEOUT):
        self.url = url
        self.timeout = timeout

    def probe(self) -> bool:
        try:
            response = requests.get(self.url, timeout=self.timeout)
        except requests.RequestException as e:
            logging.info(f"🔌 Framepack not reachable at {self.url}: {e}")
            return False
        return response.ok

    async def probe_async(self) -> bool:
        return await run_in_threadpool(self.probe)


def parse_event_stream(lines: Iterable[str]) -> List[Any]:
    """
    Reads a Gradio `/gradio_api/call/<name>/<event_id>` SSE stream and returns
    the payload of the `complete` event.
    """
    event = None
    for raw in lines:
        if raw is None:
            continue
        line = raw.strip()
        if not line:
            continue
        if line.startswith("event:"):
            event = line[len("event:"):].strip()
            continue
        if not line.startswith("data:"):
            continue

        payload = line[len("data:"):].strip()
        if event == "error":
            raise FramepackError(f"Framepack reported an error: {payload or 'no details'}")
        if event == "complete":
            try:
                return json.loads(payload)
            except ValueError:
                raise MalformedResponseError("Invalid response from Framepack API: undecodable result")

    raise MalformedResponseError("Invalid response from Framepack API: stream ended without a result")


def extract_output_reference(data: Any, base_url: str = FRAMEPACK_URL) -> str:
    """Returns a downloadable URL for the first output of a Gradio prediction."""
    if not isinstance(data, list) or not data or not data[0]:
        raise MalformedResponseError("Invalid response from Framepack API")

    output = data[0]
    # gr.Video outputs arrive as {"video": FileData, "subtitles": ...}
    if isinstance(output, dict) and isinstance(output.get("video"), dict):
        output = output["video"]

    if isinstance(output, dict):
        if output.get("url"):
            return output["url"]
        if output.get("path"):
            return f"{base_url}/gradio_api/file={output['path']}"
    elif isinstance(output, str):
        if output.startswith(("http://", "https://")):
            return output
        return f"{base_url}/gradio_api/file={output}"

    raise MalformedResponseError("Invalid response from Framepack API: no video reference in output")


class FramepackClient:
    """Handles communication with the Framepack Gradio app."""

    def __init__(self, base_url: str = FRAMEPACK_URL, api_name: str = FRAMEPACK_API_NAME,
                 timeout: float = FRAMEPACK_TIMEOUT, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.api_name = api_name.strip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _upload(self, image_bytes: bytes, filename: str) -> str:
        response = self.session.post(
            f"{self.base_url}/gradio_api/upload",
            files=[("files", (filename, image_bytes))],
            timeout=self.timeout,
        )
        response.raise_for_status()
        paths = response.json()
        if not paths:
            raise MalformedResponseError("Framepack did not accept the uploaded image.")
        return paths[0]

    def process(self, image_bytes: bytes, filename: str, params: GenerationParameters) -> List[Any]:
        """
        Uploads the image and runs the named prediction endpoint.
        Returns the raw `data` list of the completed prediction.
        """
        try:
            server_path = self._upload(image_bytes, filename)
            image = {"path": server_path, "orig_name": filename, "meta": {"_type": "gradio.FileData"}}
            payload = {
                "data": [
                    image,
                    params.prompt,
                    params.negative_prompt,
                    params.duration,
                    params.seed,
                    params.steps,
                ]
            }
            logging.info(f"📝 Calling Framepack /{self.api_name} with prompt: '{params.prompt}'")
            response = self.session.post(
                f"{self.base_url}/gradio_api/call/{self.api_name}", json=payload, timeout=self.timeout
            )
            response.raise_for_status()
            event_id = response.json().get("event_id")
            if not event_id:
                raise MalformedResponseError("Invalid response from Framepack API: missing event id")

            with self.session.get(
                f"{self.base_url}/gradio_api/call/{self.api_name}/{event_id}",
                stream=True,
                timeout=self.timeout,
            ) as stream:
                stream.raise_for_status()
                return parse_event_stream(stream.iter_lines(decode_unicode=True))
        except requests.RequestException as e:
            raise FramepackError(f"Could not connect to Framepack: {e}") from e

    def download(self, url: str, output_dir: str, job_id: int) -> str:
        """Streams the generated video to a new file in output_dir and returns its path."""
        os.makedirs(output_dir, exist_ok=True)
        video_path = os.path.join(output_dir, f"video_{job_id}_{uuid.uuid4().hex[:8]}.mp4")
        logging.info(f"⬇️ Downloading video for job {job_id} from {url}")
        try:
            with self.session.get(url, stream=True, timeout=self.timeout) as response:
                response.raise_for_status()
                with open(video_path, "wb") as f:
                    for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        if chunk:
                            f.write(chunk)
        except requests.RequestException as e:
            self._discard(video_path)
            raise FramepackError(f"Failed to download video: {e}") from e
        except OSError:
            self._discard(video_path)
            raise
        return video_path

    @staticmethod
    def _discard(path: str):
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError as e:
            logging.warning(f"Could not delete partial download {path}: {e}")


def cleanup_old_files(directory: str, max_age_seconds: int) -> int:
    """
    Deletes files in directory that are older than max_age_seconds.
    Jobs do not survive a restart, so their files are only reachable this way.
    """
    if not os.path.isdir(directory):
        return 0

    now = time.time()
    count = 0
    for filename in os.listdir(directory):
        file_path = os.path.join(directory, filename)
        if not os.path.isfile(file_path):
            continue
        if now - os.path.getmtime(file_path) <= max_age_seconds:
            continue
        try:
            os.remove(file_path)
            count += 1
        except OSError as e:
            logging.warning(f"Failed to delete old file {filename}: {e}")

    if count:
        logging.info(f"🧹 Cleanup: removed {count} old files (>{max_age_seconds}s) from {directory}")
    return count
