"""Server-side logging service with JSONL persistence."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
import threading

from social_downloader.config import settings


_log_lock = threading.Lock()
_log_file: Optional[Path] = None
_log_sequence: int = 0  # Global sequence number for ordering


def _get_log_file() -> Path:
    """Get the log file path, creating directory if needed."""
    global _log_file
    if _log_file is None:
        if settings.LOG_DIR:
            log_dir = Path(settings.LOG_DIR)
        else:
            log_dir = Path(settings.TEMP_DIR).parent / "social-downloader-logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        _log_file = log_dir / "service.jsonl"
    return _log_file


def log(level: str, message: str, category: str = "general", details: Optional[dict] = None):
    """
    Log a message with optional details.

    Args:
        level: Log level (INFO, WARN, ERROR, DEBUG, SUCCESS)
        message: Log message
        category: Category (general, admission, prepare, registry, download,
            sweeper, inspect, ytdlp)
        details: Optional additional details dict
    """
    global _log_sequence

    with _log_lock:
        _log_sequence += 1
        seq = _log_sequence

    entry = {
        "seq": seq,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "level": level,
        "category": category,
        "message": message,
    }
    if details:
        entry["details"] = details

    with _log_lock:
        try:
            log_file = _get_log_file()
            with open(log_file, "a") as f:
                f.write(json.dumps(entry, default=str) + "\n")
                f.flush()
        except OSError:
            # Don't fail if logging fails
            pass

    # Also print to stdout for the process supervisor
    print(f"[{entry['timestamp']}] [{level}] [{category}] {message}", flush=True)


# Convenience functions
def info(message: str, category: str = "general", details: Optional[dict] = None):
    log("INFO", message, category, details)

def warn(message: str, category: str = "general", details: Optional[dict] = None):
    log("WARN", message, category, details)

def error(message: str, category: str = "general", details: Optional[dict] = None):
    log("ERROR", message, category, details)

def debug(message: str, category: str = "general", details: Optional[dict] = None):
    log("DEBUG", message, category, details)

def success(message: str, category: str = "general", details: Optional[dict] = None):
    log("SUCCESS", message, category, details)


# YT-DLP specific logging
class YtdlpLogger:
    """Custom logger for yt-dlp that captures all output."""

    def __init__(self, url: str):
        self.url = url

    def debug(self, msg):
        if msg.startswith('[debug]'):
            log("DEBUG", msg, "ytdlp", {"url": self.url})
        else:
            # yt-dlp uses debug for informational messages too
            log("INFO", msg, "ytdlp", {"url": self.url})

    def info(self, msg):
        log("INFO", msg, "ytdlp", {"url": self.url})

    def warning(self, msg):
        log("WARN", msg, "ytdlp", {"url": self.url})

    def error(self, msg):
        log("ERROR", msg, "ytdlp", {"url": self.url})
