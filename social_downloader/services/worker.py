"""Async wrapper around the yt-dlp command-line tool.

The tool is treated as a black box: given a URL and options it either exits 0
having written one file into the job directory, or exits nonzero with a
diagnostic on stderr.
"""

import asyncio
import shutil
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from social_downloader.services import logger
from social_downloader.services.formats import WorkerOption, flatten_options
from social_downloader.utils.exceptions import JobTimeoutError, WorkerError


@dataclass
class WorkerResult:
    """Outcome of one worker invocation."""
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.returncode == 0


class YtDlpWorker:
    """
    Runs yt-dlp as a child process without blocking the event loop.

    Args:
        command: Executable, or executable plus leading arguments
        timeout: Seconds before the process is killed; None disables the limit
    """

    def __init__(
        self,
        command: Union[str, Sequence[str]] = "yt-dlp",
        timeout: Optional[float] = None,
    ):
        self.command = [command] if isinstance(command, str) else list(command)
        if not self.command:
            raise ValueError("command must not be empty")
        self.timeout = timeout or None

    def build_command(self, url: str, options: List[WorkerOption]) -> List[str]:
        """Assemble argv. The URL always goes last."""
        return [*self.command, *flatten_options(options), url]

    def is_available(self) -> bool:
        """Check whether the worker executable can be found."""
        return shutil.which(self.command[0]) is not None

    async def run(self, url: str, options: List[WorkerOption]) -> WorkerResult:
        """
        Run one conversion job to completion.

        Returns:
            WorkerResult with exit status and captured output

        Raises:
            WorkerError: If the executable cannot be started
            JobTimeoutError: If the job runs past the timeout
        """
        cmd = self.build_command(url, options)
        loop = asyncio.get_running_loop()
        start_time = loop.time()

        logger.debug(
            f"Executing {self.command[0]}",
            "ytdlp",
            {"url": url, "args": cmd[1:], "timeout": self.timeout},
        )

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Failed to start {self.command[0]}: {e}", "ytdlp", {"url": url})
            raise WorkerError(
                f"Failed to start {self.command[0]}: {e}",
                stderr=str(e),
            ) from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            _kill(process)
            await process.wait()
            logger.error(
                f"{self.command[0]} timed out after {self.timeout}s",
                "ytdlp",
                {"url": url, "pid": process.pid},
            )
            raise JobTimeoutError(f"yt-dlp timed out after {self.timeout}s")
        except asyncio.CancelledError:
            _kill(process)
            raise

        result = WorkerResult(
            returncode=process.returncode,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
            duration_seconds=loop.time() - start_time,
        )

        if result.success:
            logger.debug(
                f"{self.command[0]} finished in {result.duration_seconds:.1f}s",
                "ytdlp",
                {"url": url},
            )
        else:
            logger.warn(
                f"{self.command[0]} exited with code {result.returncode}: {result.stderr[:300]}",
                "ytdlp",
                {"url": url, "returncode": result.returncode},
            )
        return result


def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
