"""Session and SessionManager implementations.

The SessionManager owns every conversation session the bridge knows about.
Mutating operations are serialised per session id; unrelated sessions never
wait on each other. Cancellation and resume-token accessors are synchronous
so the turn runner can call them from stream callbacks.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from cursorbridge.core.errors import SessionNotFoundError
from cursorbridge.logging import get_logger
from cursorbridge.session.protocols import SessionMode
from cursorbridge.session.storage import SessionRecord, SessionStorage, is_stale

log = get_logger("session")

# Fields callers may change through update_session
MUTABLE_FIELDS = frozenset({"cwd", "mode", "model", "title"})


@dataclass
class Session:
    """One conversation with the agent.

    ``resume_id`` is written at most once (see SessionManager.set_resume_id)
    and ``cancelled`` is never persisted.
    """

    session_id: str
    cwd: str | None = None
    mode: SessionMode = SessionMode.DEFAULT
    cancelled: bool = False
    resume_id: str | None = None
    model: str | None = None
    title: str | None = None
    created_at: datetime = field(default_factory=datetime.now)
    last_activity: datetime = field(default_factory=datetime.now)

    def to_record(self) -> SessionRecord:
        return {
            "session_id": self.session_id,
            "cwd": self.cwd,
            "mode": self.mode.value,
            "resume_id": self.resume_id,
            "model": self.model,
            "title": self.title,
            "created_at": self.created_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
        }

    @classmethod
    def from_record(cls, record: SessionRecord) -> Session:
        """Rebuild a session from storage; transient state starts fresh."""
        created_at = _parse_time(record.get("created_at")) or datetime.now()
        last_activity = _parse_time(record.get("last_activity")) or created_at
        try:
            mode = SessionMode(record.get("mode") or SessionMode.DEFAULT.value)
        except ValueError:
            log.warning("Unknown mode %r in session %s", record.get("mode"), record["session_id"])
            mode = SessionMode.DEFAULT

        return cls(
            session_id=record["session_id"],
            cwd=record.get("cwd"),
            mode=mode,
            cancelled=False,
            resume_id=record.get("resume_id") or None,
            model=record.get("model"),
            title=record.get("title"),
            created_at=created_at,
            last_activity=last_activity,
        )


def _parse_time(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


def _coerce_mode(value: Any) -> SessionMode:
    if isinstance(value, SessionMode):
        return value
    return SessionMode(value)


class SessionManager:
    """In-memory session table backed by a storage collaborator.

    Args:
        storage: Durable record store (FileSessionStorage, MemorySessionStorage...).
        clock: Returns "now"; injected by tests.
    """

    def __init__(
        self,
        storage: SessionStorage,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._storage = storage
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    def _require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def _persist(self, session: Session) -> None:
        await asyncio.to_thread(self._storage.save, session.to_record())

    # --- Lifecycle ---

    async def initialize(self) -> int:
        """Load every stored session into memory.

        Returns:
            Number of sessions loaded.
        """
        records = await asyncio.to_thread(self._storage.load_all)
        loaded = 0
        for record in records:
            try:
                session = Session.from_record(record)
            except (KeyError, TypeError) as e:
                log.warning("Skipping unreadable session record: %s", e)
                continue
            self._sessions[session.session_id] = session
            loaded += 1
        log.info("Loaded %d session(s) from storage", loaded)
        return loaded

    async def create_session(
        self,
        cwd: str | None = None,
        mode: SessionMode | str = SessionMode.DEFAULT,
        model: str | None = None,
        title: str | None = None,
        session_id: str | None = None,
    ) -> Session:
        """Persist and register a new session.

        Raises:
            StorageError: The record could not be saved; nothing is registered.
        """
        session_id = session_id or str(uuid.uuid4())
        if session_id in self._sessions:
            raise ValueError(f"Session {session_id} already exists")

        now = self._clock()
        session = Session(
            session_id=session_id,
            cwd=cwd,
            mode=_coerce_mode(mode),
            model=model,
            title=title,
            created_at=now,
            last_activity=now,
        )
        try:
            async with self._lock_for(session_id):
                await self._persist(session)
        except Exception:
            self._locks.pop(session_id, None)
            raise
        # Registered only after a successful save
        self._sessions[session_id] = session
        log.info("Created session %s (cwd=%s)", session_id, cwd)
        return session

    def get_session(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def list_sessions(self) -> list[Session]:
        """All sessions, most recently active first."""
        return sorted(self._sessions.values(), key=lambda s: s.last_activity, reverse=True)

    async def update_session(self, session_id: str, **fields: Any) -> Session:
        """Merge ``fields`` into a session, refresh last activity, and persist.

        Only ``cwd``, ``mode``, ``model`` and ``title`` may be changed here;
        cancellation and resume tokens have their own accessors.

        Raises:
            SessionNotFoundError: Unknown session id.
            ValueError: Unsupported field or invalid mode.
        """
        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update session fields: {', '.join(sorted(unknown))}")

        async with self._lock_for(session_id):
            session = self._require(session_id)
            if "mode" in fields:
                fields["mode"] = _coerce_mode(fields["mode"])
            for name, value in fields.items():
                setattr(session, name, value)
            session.last_activity = self._clock()
            await self._persist(session)
            return session

    async def touch(self, session_id: str) -> Session:
        """Refresh last activity and persist."""
        return await self.update_session(session_id)

    async def delete_session(self, session_id: str) -> bool:
        """Remove a session from memory and storage.

        Returns:
            True if the session existed in memory or storage.
        """
        async with self._lock_for(session_id):
            in_memory = self._sessions.pop(session_id, None) is not None
            in_storage = await asyncio.to_thread(self._storage.delete, session_id)
        self._locks.pop(session_id, None)
        if in_memory or in_storage:
            log.info("Deleted session %s", session_id)
        return in_memory or in_storage

    async def cleanup_stale(self, retention_days: float) -> list[str]:
        """Evict sessions idle for longer than ``retention_days``.

        Returns:
            Ids removed from memory. Stale records that were only on disk are
            removed from storage as well.
        """
        now = self._clock()
        stale = [
            sid
            for sid, session in self._sessions.items()
            if is_stale(session.to_record(), retention_days, now)
        ]
        for session_id in stale:
            await self.delete_session(session_id)
        await asyncio.to_thread(self._storage.cleanup_stale, retention_days)
        if stale:
            log.info("Evicted %d stale session(s)", len(stale))
        return stale

    # --- Synchronous in-memory accessors ---

    def mark_cancelled(self, session_id: str) -> None:
        self._require(session_id).cancelled = True

    def clear_cancelled(self, session_id: str) -> None:
        self._require(session_id).cancelled = False

    def is_cancelled(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        return session.cancelled if session else False

    def set_resume_id(self, session_id: str, resume_id: str) -> bool:
        """Record the agent's conversation id; only the first value sticks.

        Returns:
            True if this call stored the value.
        """
        session = self._require(session_id)
        if session.resume_id or not resume_id:
            return False
        session.resume_id = resume_id
        log.debug("Session %s resumable as %s", session_id, resume_id)
        return True

    def get_resume_id(self, session_id: str) -> str | None:
        session = self._sessions.get(session_id)
        return session.resume_id if session else None

    def can_resume(self, session_id: str) -> bool:
        return self.get_resume_id(session_id) is not None
