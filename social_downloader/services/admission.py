"""Admission control for conversion jobs.

Bounds how many yt-dlp jobs may run at once. This is not a queue: a request
arriving while every slot is taken is rejected immediately.
"""

from contextlib import contextmanager
from threading import Lock
from typing import Iterator

from social_downloader.services import logger
from social_downloader.utils.exceptions import BusyError


class AdmissionController:
    """Counts in-flight conversion jobs against a fixed capacity."""

    def __init__(self, max_jobs: int):
        if max_jobs < 1:
            raise ValueError("max_jobs must be at least 1")
        self._capacity = max_jobs
        self._in_flight = 0
        self._lock = Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def try_admit(self) -> bool:
        """Take a slot if one is free. Returns False without side effects otherwise."""
        with self._lock:
            if self._in_flight >= self._capacity:
                return False
            self._in_flight += 1
            return True

    def release(self) -> None:
        """Give a slot back. Clamped at zero."""
        with self._lock:
            self._in_flight = max(0, self._in_flight - 1)

    @contextmanager
    def slot(self) -> Iterator[None]:
        """
        Hold one admission slot for the duration of the block.

        Raises:
            BusyError: If every slot is taken
        """
        if not self.try_admit():
            logger.warn(
                f"Admission rejected: {self._in_flight}/{self._capacity} jobs in flight",
                "admission",
            )
            raise BusyError()
        try:
            yield
        finally:
            self.release()
