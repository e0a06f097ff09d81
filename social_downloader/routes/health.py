"""Health check endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from social_downloader.dependencies import manager_dependency
from social_downloader.middleware.rate_limit import rate_limit
from social_downloader.models.schemas import HealthCheck
from social_downloader.services.lifecycle import DownloadManager


router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthCheck)
@rate_limit
async def health_check(request: Request, manager: DownloadManager = manager_dependency) -> HealthCheck:
    """
    Health check endpoint.

    Returns system health status including:
    - yt-dlp availability
    - Conversion slots in use
    - Live download tokens
    """
    ytdlp_available = manager.worker.is_available()

    return HealthCheck(
        status="ok" if ytdlp_available else "degraded",
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        checks={
            "ytdlp": "available" if ytdlp_available else "unavailable",
            "active_jobs": manager.admission.in_flight,
            "max_jobs": manager.admission.capacity,
            "tokens": len(manager.registry),
        }
    )
