import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import CORS_ORIGINS, UPLOAD_DIR, OUTPUT_DIR, MERGE_DIR, STALE_FILE_MAX_AGE, ensure_directories
from routers import generation
from services import cleanup_old_files
from tasks import get_runner

# --------------------------------------------------------------------------
# --- Configuration & Setup ---
# --------------------------------------------------------------------------

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_directories()
    for directory in (UPLOAD_DIR, OUTPUT_DIR, MERGE_DIR):
        try:
            cleanup_old_files(directory, STALE_FILE_MAX_AGE)
        except OSError as e:
            logging.error(f"Startup cleanup failed for {directory}: {e}")
    yield
    # In-flight generations do not survive shutdown.
    await get_runner().shutdown()


app = FastAPI(
    title="Framepack Video Generator",
    description="Turns still images into short video clips with Framepack and merges them into one export.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(generation.router, prefix="/api")


@app.get("/")
def read_root():
    return {"status": "🚀 Framepack Video Generator is running!"}
