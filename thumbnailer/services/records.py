from __future__ import annotations

import fcntl
import logging
import os
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy.exc import OperationalError, SQLAlchemyError

from ..errors import RecordUpdateError
from ..models import RecordsBase, get_records_engine
from ..models.media_record import MediaRecordRow  # noqa: F401  registers the table

logger = logging.getLogger("folio.records")

# Fields this service is allowed to patch. updated_at is always server-assigned.
PATCHABLE_FIELDS = {"poster_url"}


@dataclass(frozen=True)
class MediaRecord:
    record_id: str
    owner_id: str
    source_url: str | None
    duration_seconds: float | None
    poster_url: str | None
    updated_at: int


def _now_ms() -> int:
    return int(time.time() * 1000)


def _row_to_record(row) -> MediaRecord:
    duration = row["duration_seconds"]
    return MediaRecord(
        record_id=str(row["id"]),
        owner_id=str(row["owner_id"]),
        source_url=(str(row["source_url"]) if row["source_url"] else None),
        duration_seconds=(float(duration) if duration is not None else None),
        poster_url=(str(row["poster_url"]) if row["poster_url"] else None),
        updated_at=int(row["updated_at"] or 0),
    )


class _DriverConnection:
    def __init__(self, conn) -> None:
        self._conn = conn

    def execute(self, sql, params: dict | tuple | list | None = None):
        if isinstance(sql, str):
            return self._conn.exec_driver_sql(sql, params or ())
        return self._conn.execute(sql, params or {})


class RecordStore:
    """
    Key-value view of the media record table.

    Only two operations are exposed: read a record by id, and patch named
    fields of exactly one record.
    """

    def __init__(self, engine=None) -> None:
        self._engine = engine
        self._ready = False
        self._init_lock = threading.Lock()

    @property
    def engine(self):
        if self._engine is None:
            self._engine = get_records_engine()
        return self._engine

    def _init_db(self) -> None:
        RecordsBase.metadata.create_all(self.engine)

    def ensure_schema(self) -> None:
        if self._ready:
            return
        with self._init_lock:
            if self._ready:
                return
            db_path = self.engine.url.database if self.engine.url.get_backend_name() == "sqlite" else None
            if db_path and db_path != ":memory:":
                db_dir = os.path.dirname(db_path)
                if db_dir:
                    os.makedirs(db_dir, exist_ok=True)
                # Serialise table creation across gunicorn workers.
                with open(f"{db_path}.init.lock", "w") as lock_file:
                    fcntl.flock(lock_file, fcntl.LOCK_EX)
                    self._create_with_retry()
            else:
                self._create_with_retry()
            self._ready = True

    def _create_with_retry(self) -> None:
        for attempt in range(10):
            try:
                self._init_db()
                return
            except OperationalError as exc:
                if "locked" in str(exc).lower() and attempt < 9:
                    time.sleep(0.05 * (attempt + 1))
                    continue
                raise

    @contextmanager
    def _conn(self):
        self.ensure_schema()
        with self.engine.begin() as conn:
            yield _DriverConnection(conn)

    def ping(self) -> None:
        with self._conn() as conn:
            conn.execute("SELECT 1")

    def get(self, record_id: str) -> MediaRecord | None:
        with self._conn() as conn:
            row = (
                conn.execute(
                    """
                    SELECT id, owner_id, source_url, duration_seconds, poster_url, updated_at
                    FROM media_records
                    WHERE id = ?
                    LIMIT 1
                    """,
                    (record_id,),
                )
                .mappings()
                .fetchone()
            )
        return _row_to_record(row) if row else None

    def conditional_update(
        self,
        record_id: str,
        patch: dict,
        *,
        expected_updated_at: int | None = None,
    ) -> int:
        """
        Sets the patched fields plus a fresh ``updated_at`` on one record.

        With ``expected_updated_at`` the write only applies if the record was
        not modified since it was read. Returns the new ``updated_at``.
        """
        unknown = set(patch) - PATCHABLE_FIELDS
        if unknown or not patch:
            raise ValueError(f"Unsupported patch fields: {sorted(unknown) or 'none'}")

        fields = sorted(patch)
        assignments = ", ".join(f"{name} = ?" for name in fields)
        updated_at = _now_ms()
        params: list = [patch[name] for name in fields] + [updated_at, record_id]
        sql = f"UPDATE media_records SET {assignments}, updated_at = ? WHERE id = ?"
        if expected_updated_at is not None:
            sql += " AND updated_at = ?"
            params.append(int(expected_updated_at))
            # Same-millisecond writes would otherwise be indistinguishable.
            if updated_at <= int(expected_updated_at):
                updated_at = int(expected_updated_at) + 1
                params[len(fields)] = updated_at

        try:
            with self._conn() as conn:
                result = conn.execute(sql, tuple(params))
                rowcount = result.rowcount
        except SQLAlchemyError as exc:
            logger.error("Record update failed for %s: %s", record_id, exc)
            raise RecordUpdateError(f"Failed to update video record: {exc}") from exc

        if rowcount != 1:
            if expected_updated_at is not None:
                raise RecordUpdateError("Video record was modified or deleted concurrently")
            raise RecordUpdateError("Video record no longer exists")
        return updated_at
