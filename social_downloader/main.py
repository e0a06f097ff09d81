"""Social Downloader Service - Main FastAPI Application."""

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from social_downloader.config import settings
from social_downloader.middleware.rate_limit import install_rate_limiter, rate_limit
from social_downloader.routes import download, health, inspect, prepare, status
from social_downloader.services import logger
from social_downloader.services.lifecycle import DownloadManager
from social_downloader.services.sweeper import ExpirySweeper
from social_downloader.services.worker import YtDlpWorker
from social_downloader.utils.exceptions import ValidationError


def build_manager() -> DownloadManager:
    """Create the download manager from settings."""
    worker = YtDlpWorker(
        command=settings.YTDLP_BINARY,
        timeout=settings.JOB_TIMEOUT_SECONDS or None,
    )
    return DownloadManager(
        worker=worker,
        temp_dir=Path(settings.TEMP_DIR),
        ttl_seconds=settings.TOKEN_TTL_SECONDS,
        grace_seconds=settings.EXPIRY_GRACE_SECONDS,
        max_jobs=settings.MAX_PREPARE_CONCURRENCY,
        audio_format=settings.AUDIO_FORMAT,
        chunk_size=settings.STREAM_CHUNK_SIZE,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown."""
    # Startup
    logger.info(f"Social Downloader starting on port {settings.PORT}", "general")

    manager = build_manager()
    if manager.worker.is_available():
        logger.info(f"Worker: {settings.YTDLP_BINARY}", "general")
    else:
        logger.warn(f"{settings.YTDLP_BINARY} not found in PATH; prepare requests will fail", "general")

    Path(settings.TEMP_DIR).mkdir(parents=True, exist_ok=True)
    logger.info(f"Temp directory: {settings.TEMP_DIR}", "general")

    # Files from a previous process are unreachable once it is gone
    manager.cleanup_stale_dirs(max_age_seconds=settings.TOKEN_TTL_SECONDS + settings.EXPIRY_GRACE_SECONDS)

    sweeper = ExpirySweeper(manager, interval_seconds=settings.SWEEP_INTERVAL_SECONDS)
    await sweeper.start()

    app.state.manager = manager
    app.state.sweeper = sweeper
    logger.success("Social Downloader started successfully", "general")

    yield

    # Shutdown
    logger.info("Social Downloader shutting down", "general")
    await sweeper.stop()
    removed = manager.shutdown()
    if removed > 0:
        logger.info(f"Removed {removed} unconsumed downloads", "general")


# Create FastAPI app
app = FastAPI(
    title="Social Downloader",
    description="Inspect social-media video URLs and download them once through short-lived tokens",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    redoc_url=None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
    expose_headers=["Content-Length", "Content-Disposition"],
)

install_rate_limiter(app)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies with the standard error body."""
    messages = [
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
        for err in exc.errors()
    ]
    error = ValidationError("; ".join(messages) or "Invalid request")
    return JSONResponse(status_code=error.status_code, content={"detail": error.to_dict()})


# Include routers
app.include_router(inspect.router)
app.include_router(prepare.router)
app.include_router(download.router)
app.include_router(status.router)
app.include_router(health.router)


@app.get("/", include_in_schema=False)
@rate_limit
async def root(request: Request):
    """Service banner."""
    return {"service": "social-downloader", "status": "running"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "social_downloader.main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.ENVIRONMENT == "development",
    )
