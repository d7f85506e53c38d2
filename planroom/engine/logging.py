"""
Planroom Structured Logging — JSONL audit trail for tree and revision changes.

Implements:
- FileLogger: one file per object type / category / day
- AsyncLogQueue: non-blocking push, background flush (interval or batch size)
- Entry builders for node, document, revision and integrity events

Layout: {log_dir}/{object_type}/{category}/{YYYY-MM-DD}.jsonl

The plain ``logging`` module is still used for operator-facing messages; this
module only carries the machine-readable trail. When the queue has not been
initialised, ``log()`` drops entries so the library works without it.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from queue import Empty, Full, Queue
from typing import Any, Dict, List, Optional

logger = logging.getLogger("planroom.engine.logging")

OBJECT_TYPE_CATEGORIES = {
    "nodes": ["execution", "integrity"],
    "documents": ["execution", "integrity"],
    "revisions": ["execution"],
    "system": ["execution"],
}


class LogEntry:
    """A structured log entry destined for a specific file."""

    __slots__ = ("object_type", "category", "data")

    def __init__(self, object_type: str, category: str, data: Dict[str, Any]):
        if category not in OBJECT_TYPE_CATEGORIES.get(object_type, ()):
            raise ValueError(f"No '{category}' log for object type '{object_type}'")
        self.object_type = object_type
        self.category = category
        self.data = data

    def to_json(self) -> str:
        return json.dumps(self.data, default=str, separators=(",", ":"))


class FileLogger:
    """
    Appends JSON lines to daily files. Thread-safe via one lock per file.
    """

    def __init__(self, log_dir: str = ".planroom/logs"):
        self._log_dir = Path(log_dir)
        self._file_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        for obj_type, categories in OBJECT_TYPE_CATEGORIES.items():
            for cat in categories:
                (self._log_dir / obj_type / cat).mkdir(parents=True, exist_ok=True)

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    def write(self, entry: LogEntry) -> None:
        self.write_batch([entry])

    def write_batch(self, entries: List[LogEntry]) -> None:
        """Write entries, opening each target file once."""
        grouped: Dict[str, List[LogEntry]] = defaultdict(list)
        for entry in entries:
            grouped[str(self._path_for(entry.object_type, entry.category))].append(entry)

        for file_path, batch in grouped.items():
            with self._file_locks[file_path]:
                with open(file_path, "a", encoding="utf-8") as f:
                    f.writelines(e.to_json() + "\n" for e in batch)

    def _path_for(self, object_type: str, category: str, day: Optional[date] = None) -> Path:
        day = day or date.today()
        return self._log_dir / object_type / category / f"{day.isoformat()}.jsonl"

    def query(
        self,
        object_type: str,
        category: str,
        *,
        days: int = 7,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = 500,
    ) -> List[Dict[str, Any]]:
        """
        Read entries back, newest first.

        Args:
            days: How many daily files to scan, counting back from today.
            filters: Exact-match constraints on top-level keys.
            limit: Maximum number of entries returned.
        """
        results: List[Dict[str, Any]] = []
        today = date.today()
        for offset in range(days):
            path = self._path_for(object_type, category, today - timedelta(days=offset))
            if not path.exists():
                continue
            day_entries = self._read_jsonl(path, filters)
            day_entries.reverse()
            results.extend(day_entries)
            if len(results) >= limit:
                break
        return results[:limit]

    @staticmethod
    def _read_jsonl(path: Path, filters: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
        entries: List[Dict[str, Any]] = []
        try:
            with open(path, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        continue
                    if filters and not all(data.get(k) == v for k, v in filters.items()):
                        continue
                    entries.append(data)
        except OSError as exc:
            logger.warning("Could not read log file %s: %s", path, exc)
        return entries


class AsyncLogQueue:
    """
    Bounded in-memory queue drained by a daemon thread.

    Flushes every ``flush_interval_ms`` or once ``flush_batch_size`` entries
    are waiting, whichever comes first. A full queue drops the entry rather
    than blocking the caller's transaction.
    """

    def __init__(
        self,
        file_logger: FileLogger,
        flush_interval_ms: int = 100,
        flush_batch_size: int = 50,
        max_queue_size: int = 10000,
    ):
        self._logger = file_logger
        self._flush_interval = flush_interval_ms / 1000.0
        self._flush_batch_size = flush_batch_size
        self._queue: Queue[LogEntry] = Queue(maxsize=max_queue_size)
        self._running = False
        self._flush_thread: Optional[threading.Thread] = None
        self._dropped_count = 0

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._flush_thread = threading.Thread(
            target=self._flush_loop,
            name="planroom-log-flush",
            daemon=True,
        )
        self._flush_thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the flush thread and write whatever is still queued."""
        self._running = False
        if self._flush_thread and self._flush_thread.is_alive():
            self._flush_thread.join(timeout=timeout)
        self._write(self._take(block=False))
        if self._dropped_count:
            logger.warning("Structured log dropped %d entries (queue full)", self._dropped_count)

    def push(self, entry: LogEntry) -> bool:
        """Queue an entry without blocking. Returns False if it was dropped."""
        try:
            self._queue.put_nowait(entry)
            return True
        except Full:
            self._dropped_count += 1
            return False

    def _flush_loop(self) -> None:
        while self._running:
            batch = self._take(block=True)
            if batch:
                self._write(batch)

    def _take(self, block: bool) -> List[LogEntry]:
        """
        Blocking: one batch, waiting at most one flush interval.
        Non-blocking: everything currently queued, regardless of batch size.
        """
        batch: List[LogEntry] = []
        deadline = time.monotonic() + self._flush_interval
        while not block or len(batch) < self._flush_batch_size:
            try:
                if block:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        break
                    batch.append(self._queue.get(timeout=remaining))
                else:
                    batch.append(self._queue.get_nowait())
            except Empty:
                break
        return batch

    def _write(self, batch: List[LogEntry]) -> None:
        if not batch:
            return
        try:
            self._logger.write_batch(batch)
        except OSError as e:
            logger.error("Structured log flush failed: %s", e)

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    @property
    def dropped_count(self) -> int:
        return self._dropped_count


# ---------------------------------------------------------------------------
# Entry builders
# ---------------------------------------------------------------------------

def _base_entry(event: str, level: str, **fields: Any) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
    }
    entry.update({k: v for k, v in fields.items() if v is not None})
    return entry


def log_node_operation(
    operation: str,
    node_id: str,
    owner_id: str,
    actor: Optional[str] = None,
    parent_id: Optional[str] = None,
    previous_parent_id: Optional[str] = None,
    fields_changed: Optional[List[str]] = None,
) -> LogEntry:
    """create / rename / reparent / update / reorder / delete on a node."""
    data = _base_entry(
        event=f"node_{operation}",
        level="INFO",
        operation=operation,
        node_id=node_id,
        owner_id=owner_id,
        actor=actor,
        parent_id=parent_id,
        previous_parent_id=previous_parent_id,
        fields_changed=fields_changed or None,
    )
    return LogEntry("nodes", "execution", data)


def log_document_operation(
    operation: str,
    document_id: str,
    owner_id: str,
    actor: Optional[str] = None,
    set_id: Optional[str] = None,
    fields_changed: Optional[List[str]] = None,
) -> LogEntry:
    data = _base_entry(
        event=f"document_{operation}",
        level="INFO",
        operation=operation,
        document_id=document_id,
        owner_id=owner_id,
        actor=actor,
        set_id=set_id,
        fields_changed=fields_changed or None,
    )
    return LogEntry("documents", "execution", data)


def log_revision_appended(
    document_id: str,
    revision_id: str,
    version_label: str,
    sequence: int,
    previous_revision_id: Optional[str] = None,
    actor: Optional[str] = None,
    size_bytes: Optional[int] = None,
) -> LogEntry:
    """A revision was appended and promoted to current."""
    data = _base_entry(
        event="revision_appended",
        level="INFO",
        document_id=document_id,
        revision_id=revision_id,
        version_label=version_label,
        sequence=sequence,
        previous_revision_id=previous_revision_id,
        actor=actor,
        size_bytes=size_bytes,
    )
    return LogEntry("revisions", "execution", data)


def log_integrity_defect(
    object_type: str,
    kind: str,
    message: str,
    **details: Any,
) -> LogEntry:
    """Stored data violated an invariant. Kept apart from user-error noise."""
    data = _base_entry(
        event="integrity_defect",
        level="ERROR",
        kind=kind,
        message=message,
        **details,
    )
    return LogEntry(object_type, "integrity", data)


def report_defect(object_type: str, error: Any) -> None:
    """
    Record a PlanroomIntegrityError both in the operator log (ERROR) and in
    the ``integrity`` trail. The caller still re-raises.
    """
    details = {
        k: v for k, v in error.to_dict().items()
        if k not in ("kind", "message", "timestamp", "error_type")
    }
    logger.error("Integrity defect %s: %s", error.kind, error.message)
    log(log_integrity_defect(object_type, error.kind, error.message, **details))


def log_system_event(event: str, level: str = "INFO", details: Optional[Dict[str, Any]] = None) -> LogEntry:
    return LogEntry("system", "execution", _base_entry(event=event, level=level, details=details))


# ---------------------------------------------------------------------------
# Global queue
# ---------------------------------------------------------------------------

_global_queue: Optional[AsyncLogQueue] = None


def init_logging(
    log_dir: str = ".planroom/logs",
    flush_interval_ms: int = 100,
    flush_batch_size: int = 50,
    max_queue_size: int = 10000,
) -> AsyncLogQueue:
    """Create and start the global queue. Replaces any previous one."""
    global _global_queue
    if _global_queue is not None:
        _global_queue.stop()
    _global_queue = AsyncLogQueue(
        file_logger=FileLogger(log_dir=log_dir),
        flush_interval_ms=flush_interval_ms,
        flush_batch_size=flush_batch_size,
        max_queue_size=max_queue_size,
    )
    _global_queue.start()
    return _global_queue


def get_log_queue() -> Optional[AsyncLogQueue]:
    return _global_queue


def log(entry: LogEntry) -> bool:
    """Push an entry to the global queue. Non-blocking."""
    if _global_queue is None:
        logger.debug("Structured log not initialised, dropping %s", entry.data.get("event"))
        return False
    return _global_queue.push(entry)


def shutdown_logging() -> None:
    """Flush and stop the global queue."""
    global _global_queue
    if _global_queue:
        _global_queue.stop()
        _global_queue = None
