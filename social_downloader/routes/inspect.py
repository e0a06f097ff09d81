"""Inspect endpoint: metadata and available formats for a URL."""

from fastapi import APIRouter, HTTPException, Request

from social_downloader.middleware.rate_limit import rate_limit
from social_downloader.models.schemas import InspectRequest, InspectResponse
from social_downloader.services import inspect
from social_downloader.utils.exceptions import DownloaderError


router = APIRouter(tags=["inspect"])


@router.post(
    "/api/inspect",
    response_model=InspectResponse,
    responses={
        400: {"description": "Missing or invalid URL"},
        404: {"description": "Content not found"},
        500: {"description": "Inspection failed"},
    },
)
@rate_limit
async def inspect_endpoint(request: Request, body: InspectRequest) -> InspectResponse:
    """
    Inspect a social-media URL.

    Returns title, author, thumbnail, duration and the deduplicated list of
    formats the user can pick from.
    """
    try:
        return await inspect.inspect_url(body.url)
    except DownloaderError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
