"""URL inspection: yt-dlp metadata mapped into the display contract."""

import asyncio
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

import yt_dlp

from social_downloader.models.schemas import FormatOption, InspectResponse
from social_downloader.services import logger
from social_downloader.services.lifecycle import validate_source_url
from social_downloader.utils.exceptions import ContentNotFoundError, InspectError


INSPECT_TIMEOUT_SECONDS = 60

# Markers in yt-dlp errors that mean the content does not exist
NOT_FOUND_MARKERS = ("404", "not found", "unavailable", "does not exist", "has been removed")

# Thread pool for blocking metadata extraction
_inspect_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="inspect")


def format_duration(seconds) -> Optional[str]:
    """Format a duration as m:ss, or h:mm:ss for an hour or more."""
    if not seconds:
        return None
    total = int(round(float(seconds)))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def pick_thumbnail(info: dict) -> Optional[str]:
    """Last listed thumbnail (yt-dlp orders them by preference), else the default one."""
    thumbnails = info.get("thumbnails") or []
    if thumbnails and thumbnails[-1].get("url"):
        return thumbnails[-1]["url"]
    return info.get("thumbnail")


def _quality_label(f: dict, media_type: str) -> Optional[str]:
    if media_type == "video" and f.get("height"):
        return f"{f['height']}p"
    if media_type == "audio" and f.get("abr"):
        return f"{int(round(f['abr']))}kbps"
    return f.get("format_note") or f.get("format") or f.get("format_id")


def _sort_key(f: dict, media_type: str) -> tuple:
    if media_type == "video":
        return (0, -(f.get("height") or 0))
    return (1, -(f.get("abr") or 0))


def map_formats(raw_formats: List[dict]) -> List[FormatOption]:
    """
    Map yt-dlp format dicts to display formats.

    Storyboards and other formats without audio or video are dropped.
    Video comes first, highest resolution first, then audio by bitrate.
    Duplicates by (type, quality, ext) keep the first occurrence.
    """
    candidates = []
    for f in raw_formats:
        vcodec = f.get("vcodec")
        acodec = f.get("acodec")
        if vcodec == "none" and acodec == "none":
            continue
        media_type = "audio" if vcodec == "none" else "video"
        candidates.append((_sort_key(f, media_type), media_type, f))

    candidates.sort(key=lambda item: item[0])

    formats: List[FormatOption] = []
    seen = set()
    for _, media_type, f in candidates:
        quality = _quality_label(f, media_type)
        key = (media_type, quality, f.get("ext"))
        if key in seen:
            continue
        seen.add(key)

        filesize = f.get("filesize") or f.get("filesize_approx")
        formats.append(FormatOption(
            type=media_type,
            quality=quality,
            ext=f.get("ext"),
            filesize=int(filesize) if filesize else None,
        ))
    return formats


def map_info(info: dict) -> InspectResponse:
    """Map a yt-dlp info dict into the inspect response contract."""
    return InspectResponse(
        id=str(info.get("id") or uuid.uuid4()),
        title=info.get("title"),
        author=info.get("uploader") or info.get("channel"),
        thumbnail=pick_thumbnail(info),
        duration=format_duration(info.get("duration")),
        formats=map_formats(info.get("formats") or []),
    )


def _classify_error(error_msg: str) -> Exception:
    error_lower = error_msg.lower()
    if any(marker in error_lower for marker in NOT_FOUND_MARKERS):
        return ContentNotFoundError(error_msg)
    return InspectError(error_msg)


def extract_info(url: str) -> dict:
    """Fetch raw metadata with the yt-dlp library (blocking)."""
    ydl_opts = {
        "quiet": True,
        "no_warnings": True,
        "skip_download": True,
        "noplaylist": True,
        "logger": logger.YtdlpLogger(url),
    }
    with yt_dlp.YoutubeDL(ydl_opts) as ydl:
        info = ydl.extract_info(url, download=False)
        return ydl.sanitize_info(info)


async def inspect_url(url: Optional[str]) -> InspectResponse:
    """
    Inspect a URL and list its downloadable formats.

    Raises:
        ValidationError: Missing or non-http(s) URL
        ContentNotFoundError: The source reports the content as unavailable
        InspectError: Any other extraction failure
    """
    source_url = validate_source_url(url)
    logger.info(f"Inspecting {source_url}", "inspect", {"url": source_url})

    try:
        loop = asyncio.get_running_loop()
        info = await asyncio.wait_for(
            loop.run_in_executor(_inspect_executor, extract_info, source_url),
            timeout=INSPECT_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        logger.error(f"Inspect timed out after {INSPECT_TIMEOUT_SECONDS}s", "inspect", {"url": source_url})
        raise InspectError(f"Inspect timed out after {INSPECT_TIMEOUT_SECONDS}s")
    except yt_dlp.utils.DownloadError as e:
        logger.warn(f"Inspect failed: {e}", "inspect", {"url": source_url})
        raise _classify_error(str(e)) from e
    except Exception as e:
        logger.error(f"Inspect failed: {e}", "inspect", {"url": source_url, "error_type": type(e).__name__})
        raise InspectError(str(e)) from e

    if not info:
        raise ContentNotFoundError("No metadata returned")

    result = map_info(info)
    logger.success(
        f"Inspected {result.title or source_url}: {len(result.formats)} formats",
        "inspect",
        {"url": source_url, "id": result.id},
    )
    return result
