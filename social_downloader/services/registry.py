"""In-memory registry of prepared files keyed by single-use download tokens.

Every prepared file gets an unguessable token. The registry enforces that:
- unknown, consumed and expired tokens all look the same ("not found")
- a token can be claimed for streaming by exactly one request
- an entry is removed exactly once, by whichever path gets there first

The registry only tracks entries. Deleting the backing files is the job of
whoever removed the entry (see lifecycle.DownloadManager).
"""

import time
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, List, Optional, Set

from social_downloader.services import logger
from social_downloader.utils.exceptions import NotFoundError, NotReadyError


class FileState(Enum):
    """Lifecycle state of a prepared file."""
    PREPARING = "preparing"
    READY = "ready"
    CONSUMED = "consumed"
    EXPIRED = "expired"


@dataclass
class PreparedFile:
    """A file produced by a conversion job, owned by its token."""
    token: str
    file_path: Path
    file_name: str
    size_bytes: int
    mime_type: str
    source_url: str
    created_at: float
    expires_at: float
    state: FileState = FileState.READY

    @property
    def job_dir(self) -> Path:
        """The isolated temp directory holding the file."""
        return self.file_path.parent

    def is_expired(self, now: float) -> bool:
        """Check if the token is past its deadline."""
        return now > self.expires_at


class TokenRegistry:
    """
    Token -> PreparedFile map with single-use and expiry semantics.

    Usage:
        registry = TokenRegistry(on_expire=release_files)

        entry = registry.create(file_path, ..., ttl_seconds=300)
        registry.get(entry.token)           # status lookup, does not consume
        entry = registry.claim(entry.token) # start streaming; hidden from others
        registry.remove(entry.token, FileState.CONSUMED)

    Args:
        clock: Returns the current time in seconds
        on_expire: Called with an entry that a lookup found past its deadline,
            after it has been removed from the registry
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        on_expire: Optional[Callable[[PreparedFile], None]] = None,
    ):
        self._entries: Dict[str, PreparedFile] = {}
        self._claimed: Set[str] = set()
        self._lock = Lock()
        self.clock = clock
        self.on_expire = on_expire

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, token: str) -> bool:
        with self._lock:
            return token in self._entries

    def tokens(self) -> List[str]:
        """Snapshot of every token currently held, claimed or not."""
        with self._lock:
            return list(self._entries)

    def entries(self) -> List[PreparedFile]:
        """Snapshot of every entry currently held, claimed or not."""
        with self._lock:
            return list(self._entries.values())

    def create(
        self,
        file_path: Path,
        file_name: str,
        size_bytes: int,
        mime_type: str,
        source_url: str,
        ttl_seconds: float,
        state: FileState = FileState.READY,
    ) -> PreparedFile:
        """
        Register a new prepared file under a fresh token.

        Returns:
            The inserted PreparedFile; expires_at is fixed here for good
        """
        now = self.clock()
        entry = PreparedFile(
            token=str(uuid.uuid4()),
            file_path=Path(file_path),
            file_name=file_name,
            size_bytes=size_bytes,
            mime_type=mime_type,
            source_url=source_url,
            created_at=now,
            expires_at=now + ttl_seconds,
            state=state,
        )
        self.insert(entry)
        return entry

    def insert(self, entry: PreparedFile) -> None:
        """Insert an entry. Tokens are never reused."""
        with self._lock:
            if entry.token in self._entries:
                raise ValueError(f"Token already registered: {entry.token}")
            self._entries[entry.token] = entry

        logger.debug(
            f"Token registered ({entry.state.value})",
            "registry",
            {"token": entry.token, "file_name": entry.file_name, "expires_at": entry.expires_at},
        )

    def get(self, token: str) -> PreparedFile:
        """
        Look up a token without consuming it.

        Raises:
            NotFoundError: Unknown, already claimed, consumed or expired
            NotReadyError: The file is still being prepared
        """
        return self._lookup(token, claim=False)

    def claim(self, token: str) -> PreparedFile:
        """
        Atomically look up a ready token and reserve it for one stream.

        Once claimed, every other get/claim sees NotFoundError.
        """
        return self._lookup(token, claim=True)

    def _lookup(self, token: str, claim: bool) -> PreparedFile:
        expired = None
        with self._lock:
            entry = self._entries.get(token)
            if entry is None or token in self._claimed:
                raise NotFoundError()

            if entry.is_expired(self.clock()):
                del self._entries[token]
                entry.state = FileState.EXPIRED
                expired = entry
            elif entry.state != FileState.READY:
                raise NotReadyError()
            elif claim:
                self._claimed.add(token)

        if expired is not None:
            logger.info("Token expired on lookup", "registry", {"token": token})
            if self.on_expire:
                self.on_expire(expired)
            raise NotFoundError()

        return entry

    def remove(self, token: str, state: FileState) -> Optional[PreparedFile]:
        """
        Remove an entry and mark it with its terminal state.

        Returns:
            The entry if this call removed it, None if it was already gone
        """
        with self._lock:
            entry = self._entries.pop(token, None)
            self._claimed.discard(token)
            if entry is None:
                return None
            entry.state = state
        return entry

    def is_claimed(self, token: str) -> bool:
        with self._lock:
            return token in self._claimed

    def expired(self, now: Optional[float] = None, grace_seconds: float = 0) -> List[str]:
        """
        Tokens due for reclamation.

        Unclaimed entries are due once past their deadline. Claimed entries
        are mid-stream and only become due once past deadline + grace.
        """
        if now is None:
            now = self.clock()
        with self._lock:
            return [
                token
                for token, entry in self._entries.items()
                if entry.expires_at < now
                and (token not in self._claimed or entry.expires_at + grace_seconds < now)
            ]
