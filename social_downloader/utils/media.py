"""Content type and attachment header helpers for served files."""

from pathlib import Path
from urllib.parse import quote


DEFAULT_CONTENT_TYPE = "application/octet-stream"

CONTENT_TYPES = {
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mkv": "video/x-matroska",
    ".mov": "video/quicktime",
    ".flv": "video/x-flv",
    ".m4a": "audio/mp4",
    ".mp3": "audio/mpeg",
    ".aac": "audio/aac",
    ".ogg": "audio/ogg",
    ".opus": "audio/opus",
    ".wav": "audio/wav",
    ".flac": "audio/flac",
}


def content_type_for(path: Path) -> str:
    """Best-effort content type from the file extension."""
    return CONTENT_TYPES.get(path.suffix.lower(), DEFAULT_CONTENT_TYPE)


def content_disposition(file_name: str) -> str:
    """Attachment header value, RFC 5987 encoded for non-ASCII names."""
    quoted = quote(file_name)
    if quoted != file_name:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{file_name}"'
