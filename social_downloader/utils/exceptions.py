"""Downloader exceptions with API-friendly metadata."""

from typing import Optional


class DownloaderError(Exception):
    """Base exception for downloader errors with response metadata."""

    status_code = 500

    def __init__(
        self,
        message: str,
        error_code: str = "UNKNOWN_ERROR",
        retryable: bool = False,
        user_message: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.retryable = retryable
        # Stable, user-facing text for the UI
        self.user_message = user_message or message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert exception to dictionary for API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "retryable": self.retryable,
            "user_message": self.user_message,
        }


# =============================================================================
# REQUEST ERRORS - Caller must change the request
# =============================================================================

class ValidationError(DownloaderError):
    """Raised when request input is invalid. No side effects have happened."""

    status_code = 400

    def __init__(self, message: str = "Invalid request"):
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            retryable=False,
            user_message="The request is invalid. Please check the URL and format.",
        )


class NotFoundError(DownloaderError):
    """Raised for unknown, consumed or expired download tokens."""

    status_code = 404

    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(
            message=message,
            error_code="NOT_FOUND",
            retryable=False,
            user_message="This download link is invalid or has expired.",
        )


class NotReadyError(DownloaderError):
    """Raised when a token exists but its file is still being prepared."""

    status_code = 423

    def __init__(self, message: str = "Still preparing"):
        super().__init__(
            message=message,
            error_code="NOT_READY",
            retryable=True,
            user_message="The file is still being prepared. Please try again shortly.",
        )


class ContentNotFoundError(DownloaderError):
    """Raised when the source reports the content as unavailable."""

    status_code = 404

    def __init__(self, message: str = "Content not found"):
        super().__init__(
            message=message,
            error_code="CONTENT_NOT_FOUND",
            retryable=False,
            user_message="This content doesn't exist or has been removed.",
        )


# =============================================================================
# SERVICE ERRORS - Temporary or upstream issues
# =============================================================================

class BusyError(DownloaderError):
    """Raised when all conversion slots are taken."""

    status_code = 429

    def __init__(self, message: str = "Server busy, try again later"):
        super().__init__(
            message=message,
            error_code="SERVER_BUSY",
            retryable=True,
            user_message="The server is busy. Please try again in a moment.",
        )


class RateLimitedError(DownloaderError):
    """Raised when a client exceeds the request rate limit."""

    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded"):
        super().__init__(
            message=message,
            error_code="RATE_LIMITED",
            retryable=True,
            user_message="Too many requests. Please wait a moment and try again.",
        )


class WorkerError(DownloaderError):
    """Raised when the conversion tool exits with a nonzero status."""

    status_code = 502

    def __init__(
        self,
        message: str = "Conversion failed",
        stderr: str = "",
        returncode: Optional[int] = None,
        error_code: str = "WORKER_ERROR",
        user_message: str = "Failed to prepare the download. Please try again.",
    ):
        self.stderr = stderr
        self.returncode = returncode
        super().__init__(
            message=message,
            error_code=error_code,
            retryable=True,
            user_message=user_message,
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["details"] = self.stderr
        return data


class JobTimeoutError(WorkerError):
    """Raised when the conversion tool runs past the job timeout."""

    def __init__(self, message: str = "Conversion timed out", stderr: str = ""):
        super().__init__(
            message=message,
            stderr=stderr,
            error_code="JOB_TIMEOUT",
            user_message="Preparing the download took too long. Please try again.",
        )


class EmptyOutputError(DownloaderError):
    """Raised when the conversion tool succeeds but produces no file."""

    status_code = 502

    def __init__(self, message: str = "No file produced by yt-dlp"):
        super().__init__(
            message=message,
            error_code="EMPTY_OUTPUT",
            retryable=True,
            user_message="The download produced no file. Please try another format.",
        )


class InspectError(DownloaderError):
    """Raised when metadata extraction fails for a non-404 reason."""

    status_code = 500

    def __init__(self, message: str = "Failed to inspect url"):
        super().__init__(
            message=message,
            error_code="INSPECT_FAILED",
            retryable=True,
            user_message="Failed to read this link. Please try again.",
        )


class InternalError(DownloaderError):
    """Raised on unexpected failures such as filesystem errors."""

    status_code = 500

    def __init__(self, message: str = "Internal error"):
        super().__init__(
            message=message,
            error_code="INTERNAL_ERROR",
            retryable=True,
            user_message="An unexpected error occurred. Please try again.",
        )


def get_error_response(error: Exception) -> dict:
    """Get a standardized error response dict from any exception."""
    if isinstance(error, DownloaderError):
        return error.to_dict()

    # For unknown exceptions, return a generic retryable error
    return {
        "error_code": "INTERNAL_ERROR",
        "message": str(error),
        "retryable": True,
        "user_message": "An unexpected error occurred. Please try again.",
    }
