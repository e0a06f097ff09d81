"""Download endpoint: stream a prepared file once, then delete it."""

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from social_downloader.dependencies import manager_dependency
from social_downloader.middleware.rate_limit import rate_limit
from social_downloader.services.lifecycle import DownloadManager
from social_downloader.utils.exceptions import DownloaderError


router = APIRouter(tags=["download"])


@router.get(
    "/api/download/{token}",
    response_class=StreamingResponse,
    responses={
        200: {"description": "The prepared file"},
        404: {"description": "Invalid or expired token"},
        423: {"description": "Still preparing"},
    },
)
@rate_limit
async def download_endpoint(
    request: Request,
    token: str,
    manager: DownloadManager = manager_dependency,
) -> StreamingResponse:
    """
    Stream the file behind a download token.

    The token is burned as soon as streaming starts: the file and its temp
    directory are deleted when the transfer ends, fails or is aborted.
    """
    try:
        download = manager.open_download(token)
    except DownloaderError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())

    return StreamingResponse(
        download.iter_bytes(),
        media_type=download.mime_type,
        headers=download.headers,
    )
