"""
Configuration file for the Framepack Video Generator backend.
Contains all global constants; deployment-specific values can be overridden
through environment variables.
"""

import os

# --- Framepack (Gradio) ---
FRAMEPACK_URL = os.getenv("FRAMEPACK_URL", "http://127.0.0.1:7860").rstrip("/")
FRAMEPACK_API_NAME = os.getenv("FRAMEPACK_API_NAME", "/process")
PROBE_TIMEOUT = float(os.getenv("PROBE_TIMEOUT", "2"))
FRAMEPACK_TIMEOUT = float(os.getenv("FRAMEPACK_TIMEOUT", "900"))
DOWNLOAD_CHUNK_SIZE = 1024 * 1024

# --- Paths ---
PROJECT_ROOT = os.getcwd()
MEDIA_DIR = os.getenv("MEDIA_DIR", os.path.join(PROJECT_ROOT, "media"))
UPLOAD_DIR = os.getenv("UPLOAD_DIR", os.path.join(MEDIA_DIR, "uploads"))
OUTPUT_DIR = os.getenv("OUTPUT_DIR", os.path.join(MEDIA_DIR, "videos"))
MERGE_DIR = os.getenv("MERGE_DIR", os.path.join(MEDIA_DIR, "merge"))
STALE_FILE_MAX_AGE = int(os.getenv("STALE_FILE_MAX_AGE", str(24 * 60 * 60)))

# --- FFmpeg ---
FFMPEG_BINARY = os.getenv("FFMPEG_BINARY", "ffmpeg")
VIDEO_CODEC = "libx264"

# quality profile -> (x264 preset, crf)
QUALITY_PRESETS = {
    "high": ("medium", 18),
    "medium": ("fast", 23),
    "low": ("fast", 28),
}
DEFAULT_QUALITY = "high"
DEFAULT_FRAME_RATE = 30
MIN_FRAME_RATE = 1
MAX_FRAME_RATE = 120

# --- Demo mode ---
SIMULATION_STEP_DELAY = float(os.getenv("SIMULATION_STEP_DELAY", "1"))
SIMULATION_CHECKPOINTS = (25, 50, 75)
DEMO_MODE_NOTICE = "Demo mode: Connect Framepack AI on port 7860 for real video generation"

# --- Generation parameter bounds ---
MIN_DURATION = 1
MAX_DURATION = 30
DEFAULT_DURATION = 5
MIN_STEPS = 1
MAX_STEPS = 100
DEFAULT_STEPS = 25
DEFAULT_SEED = 31337

# --- Uploads ---
MAX_UPLOAD_SIZE = 10 * 1024 * 1024  # 10MB
ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/jpg", "image/png")

# --- HTTP ---
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173").split(",")
    if origin.strip()
]


def ensure_directories():
    for directory in (MEDIA_DIR, UPLOAD_DIR, OUTPUT_DIR, MERGE_DIR):
        os.makedirs(directory, exist_ok=True)
