"""Prepare -> token -> stream -> expire lifecycle for downloads.

PREPARE
=======
1. Validate the URL (absolute http/https) before anything else
2. Take an admission slot, or fail fast with BusyError
3. Run yt-dlp into a fresh, private temp directory
4. Pick the single produced file and register it under a new token
5. Schedule a one-shot expiry at TTL + grace

STREAM
======
The download route claims the token (no second request can stream it) and
reads the file in chunks. Whether the transfer completes, fails or the client
disconnects, the token is burned and the file and its directory are deleted.

EXPIRE
======
Three paths reclaim unconsumed files: the one-shot timer, the periodic
sweeper, and a lookup that finds the token past its deadline. Whichever path
removes the registry entry first deletes the files; the others no-op.
"""

import asyncio
import shutil
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Callable, Dict, Optional
from urllib.parse import urlparse

import aiofiles

from social_downloader.models.schemas import FormatSpec
from social_downloader.services import logger
from social_downloader.services.admission import AdmissionController
from social_downloader.services.formats import build_worker_options, format_selector
from social_downloader.services.registry import FileState, PreparedFile, TokenRegistry
from social_downloader.services.worker import YtDlpWorker
from social_downloader.utils.exceptions import (
    DownloaderError,
    EmptyOutputError,
    InternalError,
    ValidationError,
    WorkerError,
)
from social_downloader.utils.media import DEFAULT_CONTENT_TYPE, content_disposition, content_type_for


JOB_DIR_PREFIX = "dl-"


@dataclass
class PrepareResult:
    """Handle returned to the caller of prepare()."""
    token: str
    download_url: str
    entry: PreparedFile


def validate_source_url(url: Optional[str], media_id: Optional[str] = None) -> str:
    """
    Check that a URL is a non-empty absolute http(s) URL.

    Raises:
        ValidationError: If the URL is missing or malformed
    """
    if not url or not isinstance(url, str) or not url.strip():
        if media_id:
            # Inspect results are not kept, so an id cannot be mapped back to a URL
            raise ValidationError("Missing url: preparing by id alone is not supported")
        raise ValidationError("Missing url")

    url = url.strip()
    parsed = urlparse(url)
    if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
        raise ValidationError("Invalid URL: expected an absolute http(s) URL")
    return url


def pick_produced_file(job_dir: Path) -> Path:
    """
    Pick the single artifact a job produced.

    Files are enumerated in name order and the first one wins; anything else
    in the directory is deleted along with it later.

    Raises:
        EmptyOutputError: If the directory holds no regular file
    """
    files = sorted(p for p in job_dir.iterdir() if p.is_file())
    if not files:
        raise EmptyOutputError()
    if len(files) > 1:
        logger.warn(
            f"Job produced {len(files)} files, keeping {files[0].name}",
            "prepare",
            {"job_dir": str(job_dir), "files": [p.name for p in files]},
        )
    return files[0]


def discard_files(entry: PreparedFile) -> None:
    """Delete a prepared file and its job directory. Failures are logged only."""
    try:
        entry.file_path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warn(f"Failed to delete file: {e}", "registry", {"token": entry.token})

    _remove_dir(entry.job_dir)


def _remove_dir(job_dir: Path) -> None:
    try:
        shutil.rmtree(job_dir)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warn(f"Failed to delete temp directory: {e}", "registry", {"job_dir": str(job_dir)})


class PreparedDownload:
    """A claimed token, ready to be streamed exactly once."""

    def __init__(self, manager: "DownloadManager", entry: PreparedFile, size_bytes: int, chunk_size: int):
        self._manager = manager
        self.entry = entry
        self.size_bytes = size_bytes
        self._chunk_size = chunk_size

    @property
    def token(self) -> str:
        return self.entry.token

    @property
    def file_name(self) -> str:
        return self.entry.file_name

    @property
    def mime_type(self) -> str:
        return self.entry.mime_type or DEFAULT_CONTENT_TYPE

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Content-Length": str(self.size_bytes),
            "Content-Disposition": content_disposition(self.file_name),
        }

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        """
        Yield the file in chunks, then burn the token.

        Cleanup runs on completion, on read errors and when the consumer
        closes the iterator early (client disconnect).
        """
        completed = False
        try:
            async with aiofiles.open(self.entry.file_path, "rb") as f:
                while True:
                    chunk = await f.read(self._chunk_size)
                    if not chunk:
                        break
                    yield chunk
            completed = True
        except OSError as e:
            logger.error(f"Stream error: {e}", "download", {"token": self.token})
            raise
        finally:
            self._manager.finish(self.token, completed=completed)


class DownloadManager:
    """
    Owns the token registry, the admission controller and the expiry timers.

    Args:
        worker: Runs yt-dlp (anything with the YtDlpWorker.run signature)
        temp_dir: Parent of the per-job temp directories
        ttl_seconds: Token validity window
        grace_seconds: Extra time before a stale entry is force-reclaimed
        max_jobs: Concurrent conversion job limit
        audio_format: Container audio downloads are converted to
        chunk_size: Bytes per streamed chunk
        clock: Returns the current time in seconds
    """

    def __init__(
        self,
        worker: YtDlpWorker,
        temp_dir: Path,
        ttl_seconds: float = 300,
        grace_seconds: float = 60,
        max_jobs: int = 2,
        audio_format: str = "mp3",
        chunk_size: int = 64 * 1024,
        download_path: str = "/api/download",
        clock: Callable[[], float] = time.time,
    ):
        self.worker = worker
        self.temp_dir = Path(temp_dir)
        self.ttl_seconds = ttl_seconds
        self.grace_seconds = grace_seconds
        self.audio_format = audio_format
        self.chunk_size = chunk_size
        self.download_path = download_path.rstrip("/")
        self.admission = AdmissionController(max_jobs)
        self.registry = TokenRegistry(clock=clock, on_expire=self._release)
        self._timers: Dict[str, asyncio.TimerHandle] = {}

    # ------------------------------------------------------------------
    # Prepare
    # ------------------------------------------------------------------

    async def prepare(
        self,
        url: Optional[str],
        format_spec: Optional[FormatSpec] = None,
        media_id: Optional[str] = None,
    ) -> PrepareResult:
        """
        Run a conversion job and hand back a single-use download token.

        Raises:
            ValidationError: Bad URL; nothing was attempted
            BusyError: Every admission slot is taken; the worker was not run
            WorkerError: yt-dlp failed (carries its stderr)
            EmptyOutputError: yt-dlp succeeded but wrote nothing
            InternalError: Anything unexpected, e.g. filesystem errors
        """
        source_url = validate_source_url(url, media_id)
        spec = format_spec or FormatSpec()

        with self.admission.slot():
            logger.info(
                f"Preparing download: {source_url}",
                "prepare",
                {"url": source_url, "type": spec.type, "quality": spec.quality, "format": format_selector(spec)},
            )

            job_dir = self._make_job_dir()
            entry = None
            try:
                entry = await self._run_job(source_url, spec, job_dir)
            except DownloaderError:
                raise
            except Exception as e:
                logger.error(
                    f"Prepare failed unexpectedly: {e}",
                    "prepare",
                    {"url": source_url, "error_type": type(e).__name__},
                )
                raise InternalError(f"Failed to prepare download: {e}") from e
            finally:
                if entry is None:
                    _remove_dir(job_dir)

        self._schedule_expiry(entry.token)

        logger.success(
            f"Download ready: {entry.file_name} ({entry.size_bytes} bytes)",
            "prepare",
            {"token": entry.token, "url": source_url, "expires_at": entry.expires_at},
        )

        return PrepareResult(
            token=entry.token,
            download_url=f"{self.download_path}/{entry.token}",
            entry=entry,
        )

    def _make_job_dir(self) -> Path:
        try:
            self.temp_dir.mkdir(parents=True, exist_ok=True)
            return Path(tempfile.mkdtemp(prefix=JOB_DIR_PREFIX, dir=self.temp_dir))
        except OSError as e:
            logger.error(f"Failed to create temp directory: {e}", "prepare")
            raise InternalError(f"Failed to create temp directory: {e}") from e

    async def _run_job(self, source_url: str, spec: FormatSpec, job_dir: Path) -> PreparedFile:
        options = build_worker_options(spec, job_dir, self.audio_format)
        result = await self.worker.run(source_url, options)

        if result.returncode != 0:
            logger.error(
                f"yt-dlp failed for {source_url}",
                "prepare",
                {"url": source_url, "returncode": result.returncode, "stderr": result.stderr[:500]},
            )
            raise WorkerError(
                f"yt-dlp exited with code {result.returncode}. stderr: {result.stderr}",
                stderr=result.stderr,
                returncode=result.returncode,
            )

        produced = pick_produced_file(job_dir)
        size_bytes = produced.stat().st_size

        return self.registry.create(
            file_path=produced,
            file_name=produced.name,
            size_bytes=size_bytes,
            mime_type=content_type_for(produced),
            source_url=source_url,
            ttl_seconds=self.ttl_seconds,
        )

    # ------------------------------------------------------------------
    # Lookup and stream
    # ------------------------------------------------------------------

    def lookup(self, token: str) -> PreparedFile:
        """Token status without consuming it. See TokenRegistry.get."""
        return self.registry.get(token)

    def open_download(self, token: str) -> PreparedDownload:
        """
        Claim a token for streaming.

        Raises:
            NotFoundError: Unknown, consumed, expired or already being streamed
            NotReadyError: Still preparing
            InternalError: The backing file has disappeared
        """
        entry = self.registry.claim(token)
        try:
            size_bytes = entry.file_path.stat().st_size
        except OSError as e:
            self.finish(token, completed=False)
            raise InternalError(f"Prepared file is missing: {e}") from e

        logger.info(
            f"Streaming {entry.file_name} ({size_bytes} bytes)",
            "download",
            {"token": token, "mime_type": entry.mime_type},
        )
        return PreparedDownload(self, entry, size_bytes, self.chunk_size)

    def finish(self, token: str, completed: bool) -> bool:
        """
        Burn a token after its stream ended, successfully or not.

        Returns:
            True if this call performed the cleanup, False if already done
        """
        entry = self.registry.remove(token, FileState.CONSUMED)
        if entry is None:
            return False

        self._release(entry)
        if completed:
            logger.success(f"Download consumed: {entry.file_name}", "download", {"token": token})
        else:
            logger.warn(f"Download aborted, token burned: {entry.file_name}", "download", {"token": token})
        return True

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def _schedule_expiry(self, token: str) -> None:
        loop = asyncio.get_running_loop()
        delay = self.ttl_seconds + self.grace_seconds
        self._timers[token] = loop.call_later(delay, self.expire, token)

    def expire(self, token: str, reason: str = "timer") -> bool:
        """
        Reclaim a token and its files if it is still registered.

        Returns:
            True if this call performed the cleanup
        """
        entry = self.registry.remove(token, FileState.EXPIRED)
        if entry is None:
            self._timers.pop(token, None)
            return False

        self._release(entry)
        logger.info(f"Token expired ({reason})", "registry", {"token": token, "file_name": entry.file_name})
        return True

    def sweep(self, now: Optional[float] = None) -> int:
        """Reclaim every entry past its deadline. Returns how many were removed."""
        tokens = self.registry.expired(now, self.grace_seconds)
        return sum(1 for token in tokens if self.expire(token, reason="sweep"))

    def _release(self, entry: PreparedFile) -> None:
        timer = self._timers.pop(entry.token, None)
        if timer is not None:
            timer.cancel()
        discard_files(entry)

    def pending_timers(self) -> int:
        return len(self._timers)

    def shutdown(self) -> int:
        """Cancel timers and reclaim every entry. Returns how many were removed."""
        removed = sum(1 for token in self.registry.tokens() if self.expire(token, reason="shutdown"))
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        return removed

    def cleanup_stale_dirs(self, max_age_seconds: float = 3600) -> int:
        """Remove job directories left behind by a previous process."""
        if not self.temp_dir.exists():
            return 0

        live_dirs = {entry.job_dir for entry in self.registry.entries()}

        cleaned = 0
        current_time = time.time()
        for item in self.temp_dir.iterdir():
            if not item.is_dir() or not item.name.startswith(JOB_DIR_PREFIX) or item in live_dirs:
                continue
            try:
                age = current_time - item.stat().st_mtime
            except OSError:
                continue
            if age > max_age_seconds:
                shutil.rmtree(item, ignore_errors=True)
                cleaned += 1

        if cleaned > 0:
            logger.info(f"Cleaned up {cleaned} stale temp directories", "sweeper")

        return cleaned
