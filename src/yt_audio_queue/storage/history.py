"""Durable download history backed by SQLite."""

from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Protocol

from yt_audio_queue.jobs.job import Job, JobKind, JobStatus

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS downloads (
    id TEXT PRIMARY KEY,
    url TEXT NOT NULL,
    title TEXT NOT NULL DEFAULT '',
    status TEXT NOT NULL DEFAULT 'pending',
    kind TEXT NOT NULL DEFAULT 'single',
    collection_id TEXT,
    collection_name TEXT,
    channel TEXT,
    thumbnail TEXT,
    duration_seconds REAL,
    progress REAL NOT NULL DEFAULT 0,
    output_file TEXT,
    error_detail TEXT,
    file_size INTEGER,
    throughput REAL,
    created_at TEXT NOT NULL,
    finished_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_downloads_url_status ON downloads(url, status);
CREATE INDEX IF NOT EXISTS idx_downloads_created ON downloads(created_at);
"""

_ORDERABLE_COLUMNS = ("created_at", "finished_at", "title", "status")

_ACTIVE_STATUSES = tuple(s.value for s in JobStatus if s.is_active)
_TERMINAL_STATUSES = tuple(s.value for s in JobStatus if s.is_terminal)

INTERRUPTED_MESSAGE = "Interrupted: the queue stopped while this download was running"


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


@dataclass(frozen=True)
class HistoryRecord:
    """One row of download history."""

    id: str
    url: str
    title: str
    status: JobStatus
    kind: JobKind
    collection_id: str | None
    collection_name: str | None
    channel: str | None
    thumbnail: str | None
    duration_seconds: float | None
    progress: float
    output_file: str | None
    error_detail: str | None
    file_size: int | None
    throughput: float | None
    created_at: str
    finished_at: str | None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> HistoryRecord:
        return cls(
            id=row["id"],
            url=row["url"],
            title=row["title"],
            status=JobStatus(row["status"]),
            kind=JobKind(row["kind"]),
            collection_id=row["collection_id"],
            collection_name=row["collection_name"],
            channel=row["channel"],
            thumbnail=row["thumbnail"],
            duration_seconds=row["duration_seconds"],
            progress=row["progress"],
            output_file=row["output_file"],
            error_detail=row["error_detail"],
            file_size=row["file_size"],
            throughput=row["throughput"],
            created_at=row["created_at"],
            finished_at=row["finished_at"],
        )


class HistoryStore(Protocol):
    """Narrow persistence interface the queue depends on."""

    def create_record(self, job: Job) -> None: ...

    def update_status(
        self,
        job_id: str,
        status: JobStatus,
        output_file: str | None = None,
        error_detail: str | None = None,
    ) -> None: ...

    def update_progress(self, job_id: str, percent: float) -> None: ...

    def update_details(self, job_id: str, **details: Any) -> None: ...

    def update_stats(
        self, job_id: str, file_size: int | None, throughput: float | None
    ) -> None: ...

    def get(self, job_id: str) -> HistoryRecord | None: ...

    def find_active_by_url(self, url: str) -> HistoryRecord | None: ...

    def find_completed_by_url(self, url: str) -> HistoryRecord | None: ...

    def list_by_status(self, status: JobStatus, limit: int = 1000) -> list[HistoryRecord]: ...


class SqliteHistoryStore:
    """HistoryStore on a single SQLite connection.

    The connection is shared between threads and serialized with a lock;
    pass ":memory:" for a throwaway store.
    """

    _DETAIL_COLUMNS = ("title", "channel", "thumbnail", "duration_seconds")

    def __init__(self, path: Path | str) -> None:
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.path, check_same_thread=False, timeout=30)
        self._conn.row_factory = sqlite3.Row
        with self._lock, self._conn:
            self._conn.executescript(_SCHEMA)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _execute(self, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Cursor:
        with self._lock, self._conn:
            return self._conn.execute(sql, params)

    def _fetch_one(self, sql: str, params: tuple[Any, ...] = ()) -> HistoryRecord | None:
        with self._lock:
            row = self._conn.execute(sql, params).fetchone()
        return HistoryRecord.from_row(row) if row else None

    def _fetch_all(self, sql: str, params: tuple[Any, ...] = ()) -> list[HistoryRecord]:
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [HistoryRecord.from_row(row) for row in rows]

    def create_record(self, job: Job) -> None:
        self._execute(
            """
            INSERT INTO downloads (
                id, url, title, status, kind, collection_id, collection_name,
                channel, thumbnail, duration_seconds, progress, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                job.id,
                job.source_url,
                job.title,
                job.status.value,
                job.kind.value,
                job.collection_id,
                job.collection_name,
                job.channel,
                job.thumbnail,
                job.duration_seconds,
                job.progress_percent,
                job.submitted_at.isoformat(),
            ),
        )

    def update_status(
        self,
        job_id: str,
        status: JobStatus,
        output_file: str | None = None,
        error_detail: str | None = None,
    ) -> None:
        """Record a status change.

        Terminal statuses stamp finished_at once; repeating the same
        terminal status keeps the original timestamp. Going back to pending
        clears the previous run's outcome.
        """
        if status.is_terminal:
            self._execute(
                """
                UPDATE downloads SET
                    finished_at = CASE
                        WHEN status = ? AND finished_at IS NOT NULL THEN finished_at
                        ELSE ?
                    END,
                    status = ?,
                    output_file = COALESCE(?, output_file),
                    error_detail = COALESCE(?, error_detail)
                WHERE id = ?
                """,
                (status.value, _now_iso(), status.value, output_file, error_detail, job_id),
            )
        elif status is JobStatus.PENDING:
            self._execute(
                """
                UPDATE downloads SET status = ?, progress = 0, finished_at = NULL,
                    error_detail = NULL, output_file = NULL
                WHERE id = ?
                """,
                (status.value, job_id),
            )
        else:
            self._execute(
                "UPDATE downloads SET status = ? WHERE id = ?", (status.value, job_id)
            )

    def update_progress(self, job_id: str, percent: float) -> None:
        self._execute("UPDATE downloads SET progress = ? WHERE id = ?", (percent, job_id))

    def update_details(self, job_id: str, **details: Any) -> None:
        """Update descriptive metadata columns; None values are ignored."""
        unknown = set(details) - set(self._DETAIL_COLUMNS)
        if unknown:
            raise ValueError(f"Not detail columns: {', '.join(sorted(unknown))}")
        updates = {key: value for key, value in details.items() if value is not None}
        if not updates:
            return
        assignments = ", ".join(f"{column} = ?" for column in updates)
        self._execute(
            f"UPDATE downloads SET {assignments} WHERE id = ?",  # nosec B608 - whitelisted columns
            (*updates.values(), job_id),
        )

    def update_stats(
        self, job_id: str, file_size: int | None, throughput: float | None
    ) -> None:
        self._execute(
            """
            UPDATE downloads SET file_size = COALESCE(?, file_size),
                throughput = COALESCE(?, throughput)
            WHERE id = ?
            """,
            (file_size, throughput, job_id),
        )

    def get(self, job_id: str) -> HistoryRecord | None:
        return self._fetch_one("SELECT * FROM downloads WHERE id = ?", (job_id,))

    def find_active_by_url(self, url: str) -> HistoryRecord | None:
        placeholders = ", ".join("?" for _ in _ACTIVE_STATUSES)
        return self._fetch_one(
            f"""
            SELECT * FROM downloads WHERE url = ? AND status IN ({placeholders})
            ORDER BY created_at DESC LIMIT 1
            """,  # nosec B608 - placeholders only
            (url, *_ACTIVE_STATUSES),
        )

    def find_completed_by_url(self, url: str) -> HistoryRecord | None:
        return self._fetch_one(
            """
            SELECT * FROM downloads WHERE url = ? AND status = ?
            ORDER BY finished_at DESC LIMIT 1
            """,
            (url, JobStatus.COMPLETED.value),
        )

    def list_by_status(self, status: JobStatus, limit: int = 1000) -> list[HistoryRecord]:
        return self._fetch_all(
            "SELECT * FROM downloads WHERE status = ? ORDER BY created_at ASC LIMIT ?",
            (status.value, limit),
        )

    def list_history(
        self,
        status: JobStatus | None = None,
        search: str | None = None,
        collection_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
        order_by: str = "created_at",
        descending: bool = True,
    ) -> list[HistoryRecord]:
        """Page through history with optional filters."""
        where, params = self._filters(status, search, collection_id)
        column = order_by if order_by in _ORDERABLE_COLUMNS else "created_at"
        direction = "DESC" if descending else "ASC"
        return self._fetch_all(
            f"SELECT * FROM downloads {where} ORDER BY {column} {direction} "  # nosec B608
            "LIMIT ? OFFSET ?",
            (*params, limit, offset),
        )

    def count(self, status: JobStatus | None = None, search: str | None = None) -> int:
        where, params = self._filters(status, search, None)
        with self._lock:
            row = self._conn.execute(
                f"SELECT COUNT(*) FROM downloads {where}", params  # nosec B608
            ).fetchone()
        return int(row[0])

    def stats(self) -> dict[str, int]:
        """Count records per status (every status present, zero if absent)."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT status, COUNT(*) AS n FROM downloads GROUP BY status"
            ).fetchall()
        counts = {status.value: 0 for status in JobStatus}
        for row in rows:
            counts[row["status"]] = row["n"]
        counts["total"] = sum(counts.values())
        return counts

    def delete(self, job_id: str) -> bool:
        cursor = self._execute("DELETE FROM downloads WHERE id = ?", (job_id,))
        return cursor.rowcount > 0

    def clear_finished(self, days_old: int | None = None) -> int:
        """Delete terminal records, optionally only those older than days_old."""
        placeholders = ", ".join("?" for _ in _TERMINAL_STATUSES)
        sql = f"DELETE FROM downloads WHERE status IN ({placeholders})"  # nosec B608
        params: tuple[Any, ...] = _TERMINAL_STATUSES
        if days_old is not None:
            cutoff = (datetime.now(UTC) - timedelta(days=days_old)).isoformat()
            sql += " AND created_at < ?"
            params = (*params, cutoff)
        return self._execute(sql, params).rowcount

    def recover_interrupted(self) -> int:
        """Mark records left running or paused by a dead process as errors.

        Pending records are left alone so the queue can pick them up again
        on its next start.
        """
        cursor = self._execute(
            """
            UPDATE downloads SET status = ?, error_detail = ?, finished_at = ?
            WHERE status IN (?, ?)
            """,
            (
                JobStatus.ERROR.value,
                INTERRUPTED_MESSAGE,
                _now_iso(),
                JobStatus.RUNNING.value,
                JobStatus.PAUSED.value,
            ),
        )
        if cursor.rowcount:
            logger.info("Marked %d interrupted download(s) as failed", cursor.rowcount)
        return cursor.rowcount

    @staticmethod
    def _filters(
        status: JobStatus | None, search: str | None, collection_id: str | None
    ) -> tuple[str, tuple[Any, ...]]:
        clauses: list[str] = []
        params: list[Any] = []
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        if search:
            clauses.append("(title LIKE ? OR url LIKE ?)")
            params.extend([f"%{search}%", f"%{search}%"])
        if collection_id:
            clauses.append("collection_id = ?")
            params.append(collection_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, tuple(params)
