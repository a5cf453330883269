"""Session persistence storage.

Handles saving and loading session records to/from YAML files in:
  <storage_dir>/<session-id>.yaml

Session records contain:
- session_id: Unique identifier
- cwd: Working directory (may be null)
- mode: "default" or "plan"
- resume_id: cursor-agent conversation id (may be null)
- model: Model id last used (may be null)
- created_at: ISO timestamp
- last_activity: ISO timestamp

Any object with the same five methods as ``FileSessionStorage`` can back a
SessionManager; ``MemorySessionStorage`` is the in-process variant.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import yaml

from cursorbridge.core.errors import StorageError
from cursorbridge.logging import get_logger

log = get_logger("storage")

_SAFE_ID_RE = re.compile(r"^[a-zA-Z0-9_\-]+$")

SessionRecord = dict[str, Any]


def sanitize_session_id(session_id: str) -> str:
    """Reject ids that could escape the storage directory."""
    if Path(session_id).name != session_id:
        raise ValueError("Invalid session ID: path separators not allowed")
    if not _SAFE_ID_RE.fullmatch(session_id):
        raise ValueError("Invalid session ID: must be alphanumeric, hyphens, underscores only")
    return session_id


def record_last_activity(record: SessionRecord) -> datetime | None:
    value = record.get("last_activity") or record.get("created_at")
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


def is_stale(record: SessionRecord, retention_days: float, now: datetime | None = None) -> bool:
    """True when the record's last activity is older than the retention window.

    Records without a readable timestamp are treated as stale.
    """
    last_activity = record_last_activity(record)
    if last_activity is None:
        return True
    cutoff = (now or datetime.now()) - timedelta(days=retention_days)
    return last_activity < cutoff


@runtime_checkable
class SessionStorage(Protocol):
    """Key-value-by-id persistence for session records."""

    def save(self, record: SessionRecord) -> None: ...

    def load(self, session_id: str) -> SessionRecord | None: ...

    def delete(self, session_id: str) -> bool: ...

    def load_all(self) -> list[SessionRecord]: ...

    def cleanup_stale(self, retention_days: float) -> int: ...


class FileSessionStorage:
    """One YAML file per session under ``directory``."""

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory).expanduser()

    @property
    def directory(self) -> Path:
        return self._dir

    def path_for(self, session_id: str) -> Path:
        return self._dir / f"{sanitize_session_id(session_id)}.yaml"

    def save(self, record: SessionRecord) -> None:
        """Write a record atomically (temp file, then rename).

        Raises:
            StorageError: If the file cannot be written.
        """
        session_id = record["session_id"]
        session_path = self.path_for(session_id)
        temp_path = session_path.with_suffix(".yaml.tmp")

        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                yaml.safe_dump(record, f, default_flow_style=False, allow_unicode=True, sort_keys=False)
            temp_path.replace(session_path)
            log.debug("Saved session %s to %s", session_id, session_path)
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise StorageError(f"Failed to save session {session_id}: {e}") from e

    def _read(self, path: Path) -> SessionRecord | None:
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            log.warning("Failed to load session record %s: %s", path, e)
            return None

        if not isinstance(data, dict) or not isinstance(data.get("session_id"), str):
            log.warning("Skipping malformed session record %s", path)
            return None
        return data

    def load(self, session_id: str) -> SessionRecord | None:
        path = self.path_for(session_id)
        if not path.exists():
            return None
        return self._read(path)

    def delete(self, session_id: str) -> bool:
        path = self.path_for(session_id)
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as e:
            raise StorageError(f"Failed to delete session {session_id}: {e}") from e
        log.debug("Deleted session %s", session_id)
        return True

    def load_all(self) -> list[SessionRecord]:
        """Every readable record; corrupt files are logged and skipped."""
        if not self._dir.exists():
            return []

        records = []
        for path in sorted(self._dir.glob("*.yaml")):
            record = self._read(path)
            if record is not None:
                records.append(record)
        return records

    def cleanup_stale(self, retention_days: float) -> int:
        removed = 0
        now = datetime.now()
        for record in self.load_all():
            if is_stale(record, retention_days, now):
                try:
                    if self.delete(record["session_id"]):
                        removed += 1
                except (StorageError, ValueError) as e:
                    log.warning("Could not remove stale session %s: %s", record["session_id"], e)
        if removed:
            log.info("Removed %d stale session record(s)", removed)
        return removed


class MemorySessionStorage:
    """Dict-backed storage with the same contract as FileSessionStorage."""

    def __init__(self) -> None:
        self._records: dict[str, SessionRecord] = {}

    def save(self, record: SessionRecord) -> None:
        self._records[record["session_id"]] = dict(record)

    def load(self, session_id: str) -> SessionRecord | None:
        record = self._records.get(session_id)
        return dict(record) if record is not None else None

    def delete(self, session_id: str) -> bool:
        return self._records.pop(session_id, None) is not None

    def load_all(self) -> list[SessionRecord]:
        return [dict(r) for r in self._records.values()]

    def cleanup_stale(self, retention_days: float) -> int:
        now = datetime.now()
        stale = [sid for sid, r in self._records.items() if is_stale(r, retention_days, now)]
        for session_id in stale:
            del self._records[session_id]
        return len(stale)
