"""Request-scoped access to the application's download manager."""

from fastapi import Depends, HTTPException, Request

from social_downloader.services.lifecycle import DownloadManager
from social_downloader.utils.exceptions import InternalError


def get_manager(request: Request) -> DownloadManager:
    """Return the manager created in the app lifespan."""
    manager = getattr(request.app.state, "manager", None)
    if manager is None:
        raise HTTPException(
            status_code=503,
            detail=InternalError("Download manager is not running").to_dict(),
        )
    return manager


# Dependency for use in routes
manager_dependency = Depends(get_manager)
