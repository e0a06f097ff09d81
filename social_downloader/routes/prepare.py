"""Prepare endpoint: run a conversion job and issue a download token."""

from fastapi import APIRouter, HTTPException, Request

from social_downloader.dependencies import manager_dependency
from social_downloader.middleware.rate_limit import rate_limit
from social_downloader.models.schemas import PrepareRequest, PrepareResponse
from social_downloader.services.lifecycle import DownloadManager
from social_downloader.utils.exceptions import DownloaderError, get_error_response
from social_downloader.services import logger


router = APIRouter(tags=["prepare"])


@router.post(
    "/api/prepare",
    response_model=PrepareResponse,
    responses={
        400: {"description": "Missing or invalid URL"},
        429: {"description": "Server busy"},
        500: {"description": "Internal server error"},
        502: {"description": "yt-dlp failed or produced no file"},
    },
)
@rate_limit
async def prepare_endpoint(
    request: Request,
    body: PrepareRequest,
    manager: DownloadManager = manager_dependency,
) -> PrepareResponse:
    """
    Prepare a download.

    This endpoint:
    1. Validates the URL and takes a conversion slot
    2. Runs yt-dlp with the requested format into a private temp directory
    3. Registers the produced file under a single-use token

    The caller waits until the file is ready. The returned downloadUrl is
    valid once, for TOKEN_TTL_SECONDS.
    """
    try:
        result = await manager.prepare(body.url, body.format, media_id=body.id)
    except DownloaderError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    except Exception as e:
        logger.error(f"Unexpected prepare error: {e}", "prepare", {"error_type": type(e).__name__})
        raise HTTPException(status_code=500, detail=get_error_response(e))

    return PrepareResponse(token=result.token, download_url=result.download_url)
