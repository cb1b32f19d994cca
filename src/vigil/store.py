"""
Target registry and log store for the Vigil monitor.

The monitoring core only talks to the TargetRegistry and LogStore
protocols. The bundled implementations share one StateDocument handle,
an HMAC-protected JSON document that is optionally written through to
disk on every change. The handle is created by the process (CLI or
embedding application) and passed explicitly to both stores.
"""

import asyncio
import copy
import fcntl
import hashlib
import hmac
import json
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Optional, Protocol, TextIO, runtime_checkable

from .enums import ErrorKind, TargetState
from .exceptions import (
    DuplicateTargetError,
    PersistenceError,
    TamperingError,
    TargetNotFoundError,
    ValidationError,
)
from .models import LogEntry, ProbeResult, Target


@runtime_checkable
class TargetRegistry(Protocol):
    """Registered targets and their persisted UP/DOWN state."""

    async def list_targets(self) -> list[Target]:
        ...

    async def get_target(self, target_id: int) -> Optional[Target]:
        ...

    async def create_target(
        self,
        name: str,
        url: str,
        alert_emails: Optional[list[str]] = None,
    ) -> Target:
        ...

    async def update_target(
        self,
        target_id: int,
        name: Optional[str] = None,
        url: Optional[str] = None,
        alert_emails: Optional[list[str]] = None,
    ) -> Target:
        ...

    async def delete_target(self, target_id: int) -> bool:
        ...

    async def transition_state(
        self,
        target_id: int,
        expected: TargetState,
        new_state: TargetState,
        at: datetime,
    ) -> bool:
        """Set ``new_state`` only if the stored state is still ``expected``."""
        ...


@runtime_checkable
class LogStore(Protocol):
    """Append-only probe history."""

    async def append_log(self, result: ProbeResult) -> LogEntry:
        ...

    async def query_logs(
        self, target_id: int, start: datetime, end: datetime
    ) -> list[LogEntry]:
        """Entries with ``start <= timestamp <= end``, oldest first."""
        ...

    async def recent_logs(self, target_id: int, limit: int = 200) -> list[LogEntry]:
        """The newest ``limit`` entries, newest first."""
        ...


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def target_to_dict(target: Target) -> dict:
    return {
        "id": target.id,
        "name": target.name,
        "url": target.url,
        "current_state": target.current_state.value,
        "last_transition_at": _iso(target.last_transition_at),
        "created_at": _iso(target.created_at),
        "alert_emails": list(target.alert_emails),
    }


def target_from_dict(data: dict) -> Target:
    return Target(
        id=int(data["id"]),
        name=data["name"],
        url=data["url"],
        current_state=TargetState(data.get("current_state", TargetState.UP.value)),
        last_transition_at=_parse_iso(data.get("last_transition_at")),
        created_at=_parse_iso(data.get("created_at")),
        alert_emails=list(data.get("alert_emails") or []),
    )


def log_entry_to_dict(entry: LogEntry) -> dict:
    result = entry.result
    return {
        "id": entry.id,
        "application_id": entry.application_id,
        "timestamp": _iso(result.timestamp),
        "dns_ok": result.dns_ok,
        "resolved_ip": result.resolved_ip,
        "tcp_ok": result.tcp_ok,
        "tcp_latency_ms": result.tcp_latency_ms,
        "http_ok": result.http_ok,
        "http_status_code": result.http_status_code,
        "http_latency_ms": result.http_latency_ms,
        "error_kind": result.error_kind.value if result.error_kind else None,
        "error_cause": result.error_cause,
    }


def log_entry_from_dict(data: dict) -> LogEntry:
    application_id = int(data["application_id"])
    result = ProbeResult(
        target_id=application_id,
        timestamp=_parse_iso(data["timestamp"]),
        dns_ok=bool(data.get("dns_ok", False)),
        resolved_ip=data.get("resolved_ip"),
        tcp_ok=bool(data.get("tcp_ok", False)),
        tcp_latency_ms=int(data.get("tcp_latency_ms", 0)),
        http_ok=bool(data.get("http_ok", False)),
        http_status_code=int(data.get("http_status_code", 0)),
        http_latency_ms=int(data.get("http_latency_ms", 0)),
        error_kind=ErrorKind(data["error_kind"]) if data.get("error_kind") else None,
        error_cause=data.get("error_cause"),
    )
    return LogEntry(id=int(data["id"]), application_id=application_id, result=result)


class StateDocument:
    """
    Shared persistence handle for targets and probe logs.

    With a ``file_path`` every mutation is written through to an
    HMAC-protected JSON file; without one the document lives in memory.
    Several processes (``vigil run`` and one-off CLI commands) may share
    the file: each mutation holds an exclusive ``flock`` on a sidecar lock
    file and first reloads whatever another process wrote. Mutations
    within a process are serialized by an asyncio lock that is never held
    across network I/O.
    """

    VERSION = 1

    # Poll interval while another process holds the file lock
    LOCK_POLL_SECONDS = 0.05

    def __init__(
        self,
        file_path: Optional[Path] = None,
        hmac_secret: Optional[str] = None,
    ) -> None:
        if file_path is not None and not hmac_secret:
            raise ValidationError(
                code="missing_secret",
                message="A file-backed state document needs an HMAC secret",
                details={"file_path": str(file_path)},
            )
        self._file_path = file_path
        self._hmac_secret = hmac_secret.encode("utf-8") if hmac_secret else None
        self._lock = asyncio.Lock()
        # (inode, mtime_ns, size) of the file as last loaded or written
        self._stamp: Optional[tuple[int, int, int]] = None
        self.targets: dict[int, Target] = {}
        self.logs: dict[int, list[LogEntry]] = {}
        self.next_target_id = 1
        self.next_log_id = 1
        self.last_updated: Optional[str] = None

    @property
    def file_path(self) -> Optional[Path]:
        return self._file_path

    @property
    def lock_path(self) -> Optional[Path]:
        if self._file_path is None:
            return None
        return self._file_path.with_suffix(self._file_path.suffix + ".lock")

    @classmethod
    def open(cls, file_path: Path, hmac_secret: str) -> "StateDocument":
        """Create a file-backed document and load any existing state."""
        document = cls(file_path, hmac_secret)
        document.load()
        return document

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["StateDocument"]:
        """
        Serialize a mutation and persist it when the block completes.

        If the block or the write fails, the in-memory state is restored to
        what it was before the block, so memory never runs ahead of disk.
        """
        async with self._lock:
            lock_file = await self._acquire_file_lock()
            try:
                await asyncio.to_thread(self.reload_if_changed)
                snapshot = self._snapshot()
                try:
                    yield self
                    # Serializing the whole history is kept off the event loop
                    await asyncio.to_thread(self.save)
                except BaseException:
                    self._restore(snapshot)
                    raise
            finally:
                if lock_file is not None:
                    # Closing the descriptor releases the flock
                    lock_file.close()

    async def refresh(self) -> bool:
        """
        Pick up state written by another process since the last load.

        Skipped while a mutation of this process is in progress; the
        mutation reloads on its own.
        """
        if self._file_path is None or self._lock.locked():
            return False
        async with self._lock:
            return await asyncio.to_thread(self.reload_if_changed)

    def reload_if_changed(self) -> bool:
        """Reload from disk if the file differs from the last load or write."""
        if self._file_path is None:
            return False
        stamp = self._file_stamp()
        if stamp is None or stamp == self._stamp:
            return False
        return self.load()

    def compute_hmac(self, data: dict) -> str:
        """HMAC-SHA256 over the canonical JSON serialization of ``data``."""
        serialized = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hmac.new(
            self._hmac_secret or b"",
            serialized.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def load(self) -> bool:
        """
        Load state from disk and validate its HMAC.

        Returns:
            True if a state file was loaded, False if none exists yet

        Raises:
            TamperingError: If HMAC validation fails
            PersistenceError: If the file cannot be read or parsed
        """
        if self._file_path is None or not self._file_path.exists():
            return False

        try:
            with open(self._file_path, "r", encoding="utf-8") as f:
                stat = os.fstat(f.fileno())
                raw_data = json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceError(
                code="parse_error",
                message=f"Failed to parse state file: {e}",
                details={"file_path": str(self._file_path)},
            ) from e
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to read state file: {e}",
                details={"file_path": str(self._file_path)},
            ) from e

        stored_hmac = raw_data.pop("hmac", "")
        if not hmac.compare_digest(stored_hmac, self.compute_hmac(raw_data)):
            raise TamperingError(
                code="hmac_mismatch",
                message="HMAC validation failed - state file may have been tampered with",
                details={"file_path": str(self._file_path)},
            )

        try:
            targets = [target_from_dict(item) for item in raw_data.get("targets", [])]
            entries = [log_entry_from_dict(item) for item in raw_data.get("logs", [])]
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceError(
                code="schema_error",
                message=f"State file has an unexpected layout: {e}",
                details={"file_path": str(self._file_path)},
            ) from e

        logs: dict[int, list[LogEntry]] = {}
        for entry in entries:
            logs.setdefault(entry.application_id, []).append(entry)
        self.targets = {target.id: target for target in targets}
        self.logs = logs
        self.next_target_id = int(raw_data.get("next_target_id", 1))
        self.next_log_id = int(raw_data.get("next_log_id", 1))
        self.last_updated = raw_data.get("last_updated")
        self._stamp = (stat.st_ino, stat.st_mtime_ns, stat.st_size)
        return True

    def save(self) -> None:
        """
        Write the document to disk (no-op for in-memory documents).

        Raises:
            PersistenceError: If the file cannot be written
        """
        if self._file_path is None:
            return

        last_updated = datetime.now(timezone.utc).isoformat()
        data = {
            "version": self.VERSION,
            "targets": [target_to_dict(t) for t in self.targets.values()],
            "logs": [
                log_entry_to_dict(entry)
                for entries in self.logs.values()
                for entry in entries
            ],
            "next_target_id": self.next_target_id,
            "next_log_id": self.next_log_id,
            "last_updated": last_updated,
        }
        data["hmac"] = self.compute_hmac(data)

        tmp_path = self._file_path.with_suffix(self._file_path.suffix + ".tmp")
        try:
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, sort_keys=True, separators=(",", ":"))
            os.replace(tmp_path, self._file_path)
            stat = self._file_path.stat()
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to write state file: {e}",
                details={"file_path": str(self._file_path)},
            ) from e
        self.last_updated = last_updated
        self._stamp = (stat.st_ino, stat.st_mtime_ns, stat.st_size)

    def _file_stamp(self) -> Optional[tuple[int, int, int]]:
        try:
            stat = self._file_path.stat()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to stat state file: {e}",
                details={"file_path": str(self._file_path)},
            ) from e
        return (stat.st_ino, stat.st_mtime_ns, stat.st_size)

    async def _acquire_file_lock(self) -> Optional[TextIO]:
        """Open the sidecar lock file and wait for an exclusive flock on it."""
        lock_path = self.lock_path
        if lock_path is None:
            return None

        try:
            lock_path.parent.mkdir(parents=True, exist_ok=True)
            lock_file = open(lock_path, "a", encoding="utf-8")
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to open state lock file: {e}",
                details={"file_path": str(lock_path)},
            ) from e

        try:
            while True:
                try:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                    return lock_file
                except BlockingIOError:
                    await asyncio.sleep(self.LOCK_POLL_SECONDS)
        except BaseException:
            lock_file.close()
            raise

    def _snapshot(self) -> tuple:
        # Log entries are frozen, so copying the per-target lists is enough
        return (
            copy.deepcopy(self.targets),
            {target_id: list(entries) for target_id, entries in self.logs.items()},
            self.next_target_id,
            self.next_log_id,
        )

    def _restore(self, snapshot: tuple) -> None:
        self.targets, self.logs, self.next_target_id, self.next_log_id = snapshot


def _copy_target(target: Target) -> Target:
    return Target(
        id=target.id,
        name=target.name,
        url=target.url,
        current_state=target.current_state,
        last_transition_at=target.last_transition_at,
        created_at=target.created_at,
        alert_emails=list(target.alert_emails),
    )


class StoredTargetRegistry:
    """TargetRegistry over a StateDocument. Returned targets are copies."""

    def __init__(self, document: StateDocument) -> None:
        self._document = document

    async def list_targets(self) -> list[Target]:
        await self._document.refresh()
        # Newest first, like the registration list
        return [
            _copy_target(t)
            for t in sorted(self._document.targets.values(), key=lambda t: -t.id)
        ]

    async def get_target(self, target_id: int) -> Optional[Target]:
        await self._document.refresh()
        target = self._document.targets.get(target_id)
        return _copy_target(target) if target else None

    async def require_target(self, target_id: int) -> Target:
        target = await self.get_target(target_id)
        if target is None:
            raise TargetNotFoundError(
                code="not_found",
                message=f"Target {target_id} not found",
                details={"target_id": target_id},
            )
        return target

    async def create_target(
        self,
        name: str,
        url: str,
        alert_emails: Optional[list[str]] = None,
    ) -> Target:
        name = (name or "").strip()
        url = (url or "").strip()
        if not name or not url:
            raise ValidationError(
                code="missing_fields",
                message="name and url required",
                details={"name": name, "url": url},
            )

        async with self._document.transaction() as doc:
            self._ensure_unique_url(url)
            target = Target(
                id=doc.next_target_id,
                name=name,
                url=url,
                current_state=TargetState.UP,
                created_at=datetime.now(timezone.utc),
                alert_emails=list(alert_emails or []),
            )
            doc.next_target_id += 1
            doc.targets[target.id] = target
        return _copy_target(target)

    async def update_target(
        self,
        target_id: int,
        name: Optional[str] = None,
        url: Optional[str] = None,
        alert_emails: Optional[list[str]] = None,
    ) -> Target:
        async with self._document.transaction() as doc:
            target = doc.targets.get(target_id)
            if target is None:
                raise TargetNotFoundError(
                    code="not_found",
                    message=f"Target {target_id} not found",
                    details={"target_id": target_id},
                )
            if url is not None and url.strip() != target.url:
                self._ensure_unique_url(url.strip())
                target.url = url.strip()
            if name is not None and name.strip():
                target.name = name.strip()
            if alert_emails is not None:
                target.alert_emails = list(alert_emails)
        return _copy_target(target)

    async def delete_target(self, target_id: int) -> bool:
        """Remove a target together with its whole log history."""
        async with self._document.transaction() as doc:
            if target_id not in doc.targets:
                return False
            del doc.targets[target_id]
            doc.logs.pop(target_id, None)
        return True

    async def transition_state(
        self,
        target_id: int,
        expected: TargetState,
        new_state: TargetState,
        at: datetime,
    ) -> bool:
        async with self._document.transaction() as doc:
            target = doc.targets.get(target_id)
            if target is None or target.current_state != expected:
                return False
            target.current_state = new_state
            target.last_transition_at = at
        return True

    def _ensure_unique_url(self, url: str) -> None:
        for existing in self._document.targets.values():
            if existing.url == url:
                raise DuplicateTargetError(
                    code="duplicate_url",
                    message="URL already exists",
                    details={"url": url, "target_id": existing.id},
                )


class StoredLogStore:
    """LogStore over a StateDocument."""

    def __init__(self, document: StateDocument) -> None:
        self._document = document

    async def append_log(self, result: ProbeResult) -> LogEntry:
        if result.target_id is None:
            raise ValidationError(
                code="missing_target",
                message="Cannot log a probe result without a target id",
            )
        async with self._document.transaction() as doc:
            if result.target_id not in doc.targets:
                # Deleted, possibly by another process, while being checked
                raise TargetNotFoundError(
                    code="not_found",
                    message=f"Target {result.target_id} not found",
                    details={"target_id": result.target_id},
                )
            entry = LogEntry(
                id=doc.next_log_id,
                application_id=result.target_id,
                result=result,
            )
            doc.next_log_id += 1
            doc.logs.setdefault(result.target_id, []).append(entry)
        return entry

    async def query_logs(
        self, target_id: int, start: datetime, end: datetime
    ) -> list[LogEntry]:
        await self._document.refresh()
        entries = [
            entry
            for entry in self._document.logs.get(target_id, [])
            if start <= entry.timestamp <= end
        ]
        entries.sort(key=lambda e: (e.timestamp, e.id))
        return entries

    async def recent_logs(self, target_id: int, limit: int = 200) -> list[LogEntry]:
        await self._document.refresh()
        entries = sorted(
            self._document.logs.get(target_id, []),
            key=lambda e: (e.timestamp, e.id),
            reverse=True,
        )
        return entries[: max(0, limit)]


def open_stores(
    document: Optional[StateDocument] = None,
) -> tuple[StoredTargetRegistry, StoredLogStore]:
    """Build a registry and log store sharing one document (in-memory by default)."""
    document = document or StateDocument()
    return StoredTargetRegistry(document), StoredLogStore(document)
