"""Token status endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Request

from social_downloader.dependencies import manager_dependency
from social_downloader.middleware.rate_limit import rate_limit
from social_downloader.models.schemas import TokenStatusResponse
from social_downloader.services.lifecycle import DownloadManager
from social_downloader.utils.exceptions import DownloaderError


router = APIRouter(tags=["status"])


@router.get(
    "/api/download/{token}/status",
    response_model=TokenStatusResponse,
)
@rate_limit
async def get_token_status(
    request: Request,
    token: str,
    manager: DownloadManager = manager_dependency,
) -> TokenStatusResponse:
    """
    Check a download token without consuming it.

    Unknown, consumed and expired tokens all answer 404.
    """
    try:
        entry = manager.lookup(token)
    except DownloaderError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())

    expires_in = max(0, int(entry.expires_at - manager.registry.clock()))

    return TokenStatusResponse(
        token=entry.token,
        state=entry.state.value,
        file_name=entry.file_name,
        size_bytes=entry.size_bytes,
        mime_type=entry.mime_type,
        expires_at=datetime.fromtimestamp(entry.expires_at, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
        expires_in_seconds=expires_in,
    )
