"""Per-client request rate limiting."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from social_downloader.config import settings
from social_downloader.services import logger
from social_downloader.utils.exceptions import RateLimitedError


# Keyed by client IP; each route applies `rate_limit` itself
limiter = Limiter(key_func=get_remote_address)
rate_limit = limiter.limit(settings.rate_limit)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Answer with the standard error body instead of slowapi's plain text."""
    client = get_remote_address(request)
    logger.warn(f"Rate limit exceeded for {client}", "general", {"path": request.url.path})
    error = RateLimitedError(f"Rate limit exceeded: {exc.detail}")
    return JSONResponse(status_code=error.status_code, content={"detail": error.to_dict()})


def install_rate_limiter(app: FastAPI) -> None:
    """Attach the limiter and its error handler to the app."""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
