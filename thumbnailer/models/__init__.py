from __future__ import annotations

import os
from functools import lru_cache

from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base

RECORDS_DB_PATH = os.environ.get("FOLIO_RECORDS_DB_PATH", "/database/folio-records.sqlite3")
RECORDS_DB_URL = (os.environ.get("FOLIO_RECORDS_DB_URL") or "").strip() or f"sqlite:///{RECORDS_DB_PATH}"
RECORDS_DB_TIMEOUT_SECONDS = float(os.environ.get("FOLIO_RECORDS_DB_TIMEOUT_SECONDS", "30"))
RECORDS_POOL_SIZE = int(os.environ.get("FOLIO_RECORDS_POOL_SIZE", "4"))

RecordsBase = declarative_base()


def _sqlite_engine(url: str, timeout: float, pool_size: int | None = None):
    options: dict = {
        "connect_args": {"check_same_thread": False, "timeout": timeout},
        "pool_pre_ping": True,
    }
    if pool_size is not None:
        options["pool_size"] = max(1, pool_size)
        options["max_overflow"] = 0

    engine = create_engine(url, **options)

    @event.listens_for(engine, "connect")
    def _configure_sqlite(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")
        cursor.execute("PRAGMA busy_timeout=5000;")
        cursor.close()

    return engine


def build_records_engine(url: str | None = None):
    url = url or RECORDS_DB_URL
    if url.startswith("sqlite"):
        in_memory = url in {"sqlite://", "sqlite:///:memory:"}
        pool_size = None if in_memory else RECORDS_POOL_SIZE
        return _sqlite_engine(url, RECORDS_DB_TIMEOUT_SECONDS, pool_size)
    return create_engine(url, pool_pre_ping=True, pool_size=max(1, RECORDS_POOL_SIZE))


@lru_cache(maxsize=1)
def get_records_engine():
    return build_records_engine()
