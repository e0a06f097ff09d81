from pydantic import BaseModel, Field
from typing import Literal, Optional, List


class InspectRequest(BaseModel):
    """Request model for URL inspection."""

    url: Optional[str] = Field(
        None,
        description="Absolute http(s) URL of the post or video",
        examples=["https://www.youtube.com/watch?v=dQw4w9WgXcQ"],
    )


class FormatOption(BaseModel):
    """One downloadable format as shown to the user."""

    type: str  # video, audio
    quality: Optional[str] = None
    ext: Optional[str] = None
    filesize: Optional[int] = None


class InspectResponse(BaseModel):
    """Display metadata for an inspected URL."""

    id: str
    title: Optional[str] = None
    author: Optional[str] = None
    thumbnail: Optional[str] = None
    duration: Optional[str] = None
    formats: List[FormatOption] = []


class FormatSpec(BaseModel):
    """Format requested for a prepared download."""

    type: Literal["video", "audio"] = "video"
    quality: Optional[str] = Field(None, examples=["720p"])
    ext: Optional[str] = None


class PrepareRequest(BaseModel):
    """Request model for preparing a download."""

    url: Optional[str] = Field(None, description="Absolute http(s) URL to download")
    id: Optional[str] = Field(None, description="Inspect id (not supported without url)")
    format: Optional[FormatSpec] = None


class PrepareResponse(BaseModel):
    """Response model for a prepared download."""

    token: str
    download_url: str = Field(..., serialization_alias="downloadUrl")


class TokenStatusResponse(BaseModel):
    """Response model for a token lookup that does not consume it."""

    token: str
    state: str  # preparing, ready
    file_name: str
    size_bytes: int
    mime_type: str
    expires_at: str
    expires_in_seconds: int = Field(ge=0)


class HealthCheck(BaseModel):
    """Response model for health check."""

    status: str
    timestamp: str
    checks: dict
