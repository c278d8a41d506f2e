"""
In-memory processing sessions for retrieval-path runs.

A session owns the chunks (and their embeddings) produced for one
document. The store is an arena keyed by session id: creating a session
hands out a SessionHandle stamped with a generation number, and every
access checks that generation. Deleting a session drops all of its chunks
at once and makes every outstanding handle stale.
"""

import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from itertools import count
from typing import Any, Callable, Iterable

from claim_extraction.config import get_logger, get_settings
from claim_extraction.retrieval.chunking import DocumentChunk
from claim_extraction.schemas import DocumentProfile


logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionError(Exception):
    """Base exception for session errors."""

    pass


class SessionNotFoundError(SessionError):
    """Raised when a session id is unknown."""

    pass


class SessionExpiredError(SessionError):
    """Raised when a session is accessed past its expiry."""

    pass


class StaleSessionHandleError(SessionError):
    """Raised when a handle refers to a deleted or replaced session."""

    pass


class SessionStatus(str, Enum):
    """Lifecycle status of a processing session."""

    PROCESSING = "processing"
    READY = "ready"
    EXPIRED = "expired"
    ERROR = "error"


_TERMINAL_STATUSES = frozenset({SessionStatus.EXPIRED, SessionStatus.ERROR})


@dataclass(frozen=True, slots=True)
class SessionHandle:
    """Reference to one generation of a session."""

    session_id: str
    generation: int


@dataclass(frozen=True, slots=True)
class ProcessingSession:
    """
    Ephemeral record of one retrieval-path run.

    Attributes:
        session_id: Unique session identifier.
        file_name: Source document name.
        file_size_bytes: Source document size.
        page_count: Source page count.
        status: Lifecycle status.
        created_at: Creation time (UTC).
        expires_at: Expiry time (UTC).
        chunk_count: Chunks stored so far.
        total_chunks: Chunks expected once processing finishes.
        error_message: Failure description when status is ERROR.
    """

    session_id: str
    file_name: str
    file_size_bytes: int
    page_count: int
    status: SessionStatus
    created_at: datetime
    expires_at: datetime
    chunk_count: int = 0
    total_chunks: int = 0
    error_message: str | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or _utcnow()) >= self.expires_at

    @property
    def progress(self) -> float:
        """Fraction of expected chunks stored."""
        if self.total_chunks <= 0:
            return 1.0 if self.status == SessionStatus.READY else 0.0
        return min(1.0, self.chunk_count / self.total_chunks)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "file_name": self.file_name,
            "file_size_bytes": self.file_size_bytes,
            "page_count": self.page_count,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "chunk_count": self.chunk_count,
            "total_chunks": self.total_chunks,
            "progress": round(self.progress, 3),
            "error_message": self.error_message,
        }


@dataclass(slots=True)
class _SessionSlot:
    session: ProcessingSession
    generation: int
    chunks: list[DocumentChunk] = field(default_factory=list)


class SessionStore:
    """
    Thread-safe arena of processing sessions.

    Expired sessions are swept from ``create`` at most once per cleanup
    interval; ``cleanup_expired`` runs the sweep on demand.

    Example:
        store = SessionStore()
        handle = store.create(profile)
        store.add_chunks(handle, chunks)
        store.set_status(handle, SessionStatus.READY)
        ...
        store.delete(handle)  # chunks and embeddings go with it
    """

    def __init__(
        self,
        ttl_hours: float | None = None,
        clock: Callable[[], datetime] | None = None,
        cleanup_interval_hours: float | None = None,
    ) -> None:
        """
        Initialize the store.

        Args:
            ttl_hours: Session time-to-live. Defaults to settings.
            clock: Source of the current UTC time.
            cleanup_interval_hours: Minimum time between expired-session
                sweeps run from ``create``. Defaults to settings.
        """
        settings = get_settings().session
        self._ttl = timedelta(hours=ttl_hours if ttl_hours is not None else settings.ttl_hours)
        self._cleanup_interval = timedelta(
            hours=cleanup_interval_hours
            if cleanup_interval_hours is not None
            else settings.cleanup_interval_hours
        )
        self._clock = clock or _utcnow
        self._last_sweep = self._clock()
        self._lock = threading.Lock()
        self._slots: dict[str, _SessionSlot] = {}
        self._generations = count(1)

    def __len__(self) -> int:
        with self._lock:
            return len(self._slots)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._slots

    def create(self, profile: DocumentProfile, ttl_hours: float | None = None) -> SessionHandle:
        """
        Create a session for a document.

        Args:
            profile: Profile of the source document.
            ttl_hours: Optional TTL override for this session.

        Returns:
            Handle to the new session.
        """
        now = self._clock()
        if now - self._last_sweep >= self._cleanup_interval:
            self._last_sweep = now
            self.cleanup_expired(now)

        ttl = timedelta(hours=ttl_hours) if ttl_hours is not None else self._ttl
        session = ProcessingSession(
            session_id=str(uuid.uuid4()),
            file_name=profile.file_name,
            file_size_bytes=profile.file_size_bytes,
            page_count=profile.page_count,
            status=SessionStatus.PROCESSING,
            created_at=now,
            expires_at=now + ttl,
        )

        with self._lock:
            generation = next(self._generations)
            self._slots[session.session_id] = _SessionSlot(session, generation)

        logger.info(
            "session_created",
            session_id=session.session_id,
            file_name=profile.file_name,
            expires_at=session.expires_at.isoformat(),
        )
        return SessionHandle(session.session_id, generation)

    def _slot(self, handle: SessionHandle) -> _SessionSlot:
        # Caller holds the lock
        slot = self._slots.get(handle.session_id)
        if slot is None:
            raise StaleSessionHandleError(
                f"Session {handle.session_id} no longer exists"
            )
        if slot.generation != handle.generation:
            raise StaleSessionHandleError(
                f"Handle generation {handle.generation} does not match "
                f"session generation {slot.generation}"
            )
        if slot.session.is_expired(self._clock()):
            slot.session = replace(slot.session, status=SessionStatus.EXPIRED)
            raise SessionExpiredError(
                f"Session {handle.session_id} expired at {slot.session.expires_at.isoformat()}"
            )
        return slot

    def get(self, handle: SessionHandle) -> ProcessingSession:
        """
        Current record of a session.

        Raises:
            StaleSessionHandleError: If the session was deleted.
            SessionExpiredError: If the session is past its expiry.
        """
        with self._lock:
            return self._slot(handle).session

    def get_by_id(self, session_id: str) -> ProcessingSession:
        """
        Look up a session record by id, regardless of generation.

        Raises:
            SessionNotFoundError: If no such session exists.
        """
        with self._lock:
            slot = self._slots.get(session_id)
            if slot is None:
                raise SessionNotFoundError(f"Session not found: {session_id}")
            return slot.session

    def set_total_chunks(self, handle: SessionHandle, total: int) -> None:
        with self._lock:
            slot = self._slot(handle)
            slot.session = replace(slot.session, total_chunks=max(0, total))

    def add_chunks(self, handle: SessionHandle, chunks: Iterable[DocumentChunk]) -> int:
        """
        Store chunks under a session.

        Returns:
            Number of chunks the session now owns.
        """
        with self._lock:
            slot = self._slot(handle)
            if slot.session.status in _TERMINAL_STATUSES:
                raise SessionError(
                    f"Cannot add chunks to a session in status {slot.session.status.value}"
                )
            slot.chunks.extend(chunks)
            slot.session = replace(slot.session, chunk_count=len(slot.chunks))
            stored = len(slot.chunks)

        logger.debug("session_chunks_added", session_id=handle.session_id, chunk_count=stored)
        return stored

    def chunks(self, handle: SessionHandle) -> tuple[DocumentChunk, ...]:
        """All chunks owned by a session, in insertion order."""
        with self._lock:
            return tuple(self._slot(handle).chunks)

    def set_status(
        self,
        handle: SessionHandle,
        status: SessionStatus,
        error_message: str | None = None,
    ) -> ProcessingSession:
        """
        Move a session to a new status.

        Raises:
            SessionError: If the session is already in a terminal status.
        """
        with self._lock:
            slot = self._slot(handle)
            current = slot.session.status
            if current in _TERMINAL_STATUSES and status != current:
                raise SessionError(
                    f"Session {handle.session_id} cannot leave status {current.value}"
                )
            slot.session = replace(slot.session, status=status, error_message=error_message)
            session = slot.session

        logger.info(
            "session_status_changed",
            session_id=handle.session_id,
            previous=current.value,
            status=status.value,
        )
        return session

    def delete(self, target: SessionHandle | str) -> bool:
        """
        Delete a session together with its chunks and embeddings.

        Args:
            target: Session handle or session id.

        Returns:
            True if a session was deleted, False if none existed.
        """
        session_id = target.session_id if isinstance(target, SessionHandle) else target
        with self._lock:
            slot = self._slots.pop(session_id, None)

        if slot is None:
            return False

        logger.info(
            "session_deleted",
            session_id=session_id,
            chunks_released=len(slot.chunks),
        )
        return True

    def cleanup_expired(self, now: datetime | None = None) -> int:
        """
        Delete every session past its expiry.

        Returns:
            Number of sessions removed.
        """
        now = now or self._clock()
        with self._lock:
            expired = [
                session_id
                for session_id, slot in self._slots.items()
                if slot.session.is_expired(now)
            ]
            for session_id in expired:
                del self._slots[session_id]

        if expired:
            logger.info("expired_sessions_cleaned", count=len(expired))
        return len(expired)
