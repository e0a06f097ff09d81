"""Translate a requested format into yt-dlp command-line options.

Options are built as a list of (option, value) pairs and flattened only when
the command line is assembled, so flags such as audio extraction never depend
on where they were inserted.
"""

import re
from pathlib import Path
from typing import List, Optional, Tuple

from social_downloader.models.schemas import FormatSpec


WorkerOption = Tuple[str, Optional[str]]

# yt-dlp fills in title and extension
OUTPUT_TEMPLATE = "%(title)s.%(ext)s"

BEST_FORMAT = "best"
BEST_AUDIO_FORMAT = "bestaudio"

# Flags applied to every job
BASE_OPTIONS: List[WorkerOption] = [
    ("--no-mtime", None),
    ("--no-warnings", None),
    ("--no-progress", None),
    ("--no-playlist", None),
]

# "720p", "1080p60", "480p (SD)"
_HEIGHT_RE = re.compile(r"(\d+)\s*p", re.IGNORECASE)
_BARE_HEIGHT_RE = re.compile(r"^\s*(\d+)\s*$")


def parse_height(quality: Optional[str]) -> Optional[int]:
    """Extract a pixel height from a quality hint such as "720p" or "1080"."""
    if not quality:
        return None
    match = _HEIGHT_RE.search(quality) or _BARE_HEIGHT_RE.match(quality)
    if not match:
        return None
    height = int(match.group(1))
    return height if height > 0 else None


def height_capped_selector(height: int) -> str:
    """Best video+audio not exceeding the height, falling back to best."""
    return f"bestvideo[height<={height}]+bestaudio/best[height<={height}]/{BEST_FORMAT}"


def format_selector(spec: FormatSpec) -> str:
    """Pick the yt-dlp format selector for a requested format."""
    if spec.type == "audio":
        # Audio ignores any quality hint
        return BEST_AUDIO_FORMAT
    height = parse_height(spec.quality)
    if height is not None:
        return height_capped_selector(height)
    return BEST_FORMAT


def build_worker_options(
    spec: FormatSpec,
    output_dir: Path,
    audio_format: str = "mp3",
) -> List[WorkerOption]:
    """
    Build the full option list for one conversion job.

    Args:
        spec: Requested format
        output_dir: Isolated job directory the file must land in
        audio_format: Container audio downloads are converted to

    Returns:
        List of (option, value) pairs; value is None for bare flags
    """
    options: List[WorkerOption] = [("-f", format_selector(spec))]

    if spec.type == "audio":
        options.append(("--extract-audio", None))
        options.append(("--audio-format", audio_format))

    options.extend(BASE_OPTIONS)
    options.append(("-o", str(Path(output_dir) / OUTPUT_TEMPLATE)))
    return options


def flatten_options(options: List[WorkerOption]) -> List[str]:
    """Turn (option, value) pairs into argv tokens."""
    args: List[str] = []
    for option, value in options:
        args.append(option)
        if value is not None:
            args.append(value)
    return args


def option_value(options: List[WorkerOption], name: str) -> Optional[str]:
    """Return the value of the last occurrence of an option, if present."""
    value = None
    for option, option_val in options:
        if option == name:
            value = option_val
    return value
