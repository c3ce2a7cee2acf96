from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Optional

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from backend.app.errors import StoreUnavailableError
from backend.app.models import ActivityLogRecord, CandidateRecord, JobRecord, UserRecord

logger = logging.getLogger("recruit_tracker.persistence")


def _normalize_database_url(database_url: str) -> str:
    value = database_url.strip()
    if value.startswith("sqlite:///"):
        sqlite_path = value[len("sqlite:///") :].split("?", 1)[0]
        if sqlite_path and sqlite_path != ":memory:":
            path = Path(sqlite_path)
            if path.parent:
                path.parent.mkdir(parents=True, exist_ok=True)
        return value
    if "://" in value:
        return value
    path = Path(value)
    if path.parent:
        path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{str(path).replace(chr(92), '/')}"


class SqlPersistence:
    """
    Document-per-row storage on SQLAlchemy Core. Works with SQLite and
    PostgreSQL URLs.

    Every user, job and candidate is stored as one JSON payload row and is
    written as a whole, so a single upsert is the unit of atomicity.
    """

    def __init__(self, database_url: str) -> None:
        self.database_url = _normalize_database_url(database_url)
        self._lock = Lock()
        self.engine: Engine = create_engine(
            self.database_url,
            future=True,
            pool_pre_ping=True,
        )
        self.metadata = MetaData()
        self.users = Table(
            "users",
            self.metadata,
            Column("id", String(120), primary_key=True),
            Column("payload_json", Text, nullable=False),
            Column("updated_at_utc", DateTime, nullable=False),
        )
        self.jobs = Table(
            "jobs",
            self.metadata,
            Column("id", String(120), primary_key=True),
            Column("payload_json", Text, nullable=False),
            Column("updated_at_utc", DateTime, nullable=False),
        )
        self.candidates = Table(
            "candidates",
            self.metadata,
            Column("id", String(120), primary_key=True),
            Column("job_id", String(120), nullable=False, index=True),
            Column("created_by", String(120), nullable=False, index=True),
            Column("version", Integer, nullable=False),
            Column("payload_json", Text, nullable=False),
            Column("updated_at_utc", DateTime, nullable=False),
        )
        self.activity_log = Table(
            "activity_log",
            self.metadata,
            Column("id", String(120), primary_key=True),
            Column("payload_json", Text, nullable=False),
            Column("created_at_utc", DateTime, nullable=False, index=True),
        )
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        self.metadata.create_all(self.engine)

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
            return True
        except SQLAlchemyError:
            return False

    def _upsert(self, table: Table, record_id: str, values: dict) -> None:
        with self._lock:
            try:
                with self.engine.begin() as conn:
                    existing = conn.execute(
                        select(table.c.id).where(table.c.id == record_id)
                    ).first()
                    if existing:
                        conn.execute(table.update().where(table.c.id == record_id).values(**values))
                    else:
                        conn.execute(table.insert().values(id=record_id, **values))
            except SQLAlchemyError as exc:
                logger.error("persist_failed table=%s id=%s error=%s", table.name, record_id, exc)
                raise StoreUnavailableError(f"could not write {table.name} {record_id}") from exc

    def _delete(self, table: Table, record_id: str) -> None:
        with self._lock:
            try:
                with self.engine.begin() as conn:
                    conn.execute(table.delete().where(table.c.id == record_id))
            except SQLAlchemyError as exc:
                logger.error("delete_failed table=%s id=%s error=%s", table.name, record_id, exc)
                raise StoreUnavailableError(f"could not delete {table.name} {record_id}") from exc

    def _load_payloads(self, table: Table, *, limit: Optional[int] = None) -> list[dict]:
        with self._lock:
            try:
                with self.engine.connect() as conn:
                    query = select(table.c.payload_json)
                    if limit is not None:
                        query = query.order_by(table.c.created_at_utc.desc()).limit(limit)
                    rows = conn.execute(query).all()
            except SQLAlchemyError as exc:
                raise StoreUnavailableError(f"could not read {table.name}") from exc
        return [json.loads(row.payload_json) for row in rows]

    def upsert_user(self, record: UserRecord) -> None:
        self._upsert(
            self.users,
            record.id,
            {"payload_json": record.model_dump_json(), "updated_at_utc": datetime.utcnow()},
        )

    def delete_user(self, user_id: str) -> None:
        self._delete(self.users, user_id)

    def upsert_job(self, record: JobRecord) -> None:
        self._upsert(
            self.jobs,
            record.id,
            {"payload_json": record.model_dump_json(), "updated_at_utc": record.updated_at_utc},
        )

    def upsert_candidate(self, record: CandidateRecord) -> None:
        self._upsert(
            self.candidates,
            record.id,
            {
                "job_id": record.job_id,
                "created_by": record.created_by,
                "version": record.version,
                "payload_json": record.model_dump_json(),
                "updated_at_utc": record.updated_at_utc,
            },
        )

    def delete_candidate(self, candidate_id: str) -> None:
        self._delete(self.candidates, candidate_id)

    def insert_activity(self, record: ActivityLogRecord) -> None:
        self._upsert(
            self.activity_log,
            record.id,
            {"payload_json": record.model_dump_json(), "created_at_utc": record.created_at_utc},
        )

    def list_users(self) -> list[UserRecord]:
        return [UserRecord.model_validate(item) for item in self._load_payloads(self.users)]

    def list_jobs(self) -> list[JobRecord]:
        return [JobRecord.model_validate(item) for item in self._load_payloads(self.jobs)]

    def list_candidates(self) -> list[CandidateRecord]:
        return [
            CandidateRecord.model_validate(item) for item in self._load_payloads(self.candidates)
        ]

    def list_activity(self, limit: int = 1000) -> list[ActivityLogRecord]:
        safe_limit = max(1, min(limit, 5000))
        return [
            ActivityLogRecord.model_validate(item)
            for item in self._load_payloads(self.activity_log, limit=safe_limit)
        ]
