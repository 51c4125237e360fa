# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-06
# Description: SqlRecordCatalog
# -----------------------------------------------------------------------------
import asyncio
import json
import os
import uuid
from typing import Any, List, Optional, Sequence

import numpy as np
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    LargeBinary,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    and_,
    func,
    select,
    update,
)
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from model.EmbeddingRecord import (
    MAX_PATH_DEPTH,
    EmbeddingRecord,
    Provenance,
    ScopeFilter,
    UpsertResult,
    normalize_path,
    utc_now,
)
from utility.logging_utils import get_class_logger


def vector_to_bytes(vector: np.ndarray) -> bytes:
    return np.asarray(vector, dtype=np.float32).tobytes()


def bytes_to_vector(raw: Optional[bytes]) -> Optional[np.ndarray]:
    if raw is None:
        return None
    return np.frombuffer(raw, dtype=np.float32).copy()


def path_key_of(path: Sequence[str]) -> str:
    return json.dumps(list(path), ensure_ascii=False)


class SqlRecordCatalog:
    """
    Source of truth for canonical records (one table per store).

    Upserts are a single INSERT .. ON CONFLICT DO UPDATE statement so the
    database, not the process, serialises concurrent writers on one key.
    Vectors are stored as float32 bytes; the ANN index lives elsewhere.
    """

    def __init__(
            self,
            database_url: str,
            table_name: str,
            *,
            engine: Optional[AsyncEngine] = None,
            logger=None,
    ):
        self.table_name = table_name
        self.logger = logger or get_class_logger(self.__class__)
        self.engine: AsyncEngine = engine or create_async_engine(database_url, pool_pre_ping=True)
        self.metadata = MetaData()
        self.table = Table(
            table_name,
            self.metadata,
            Column("id", String(32), primary_key=True),
            Column("path_key", String(512), nullable=False),
            Column("path_0", String(128), nullable=False),
            Column("path_1", String(128), nullable=True),
            Column("path_2", String(128), nullable=True),
            Column("content", Text, nullable=False),
            Column("level", Integer, nullable=True),
            Column("difficulty", Integer, nullable=True),
            Column("vector", LargeBinary, nullable=True),
            Column("usage_count", Integer, nullable=False, default=1),
            Column("label", String(64), nullable=True),
            Column("is_active", Boolean, nullable=False, default=True),
            Column("provenance", String(16), nullable=False),
            Column("created_at", DateTime(timezone=True), nullable=False),
            Column("updated_at", DateTime(timezone=True), nullable=True),
            UniqueConstraint("path_key", "content", name=f"uq_{table_name}_path_content"),
        )
        self._schema_ready = False
        self._schema_lock = asyncio.Lock()

        self.logger.info(
            "SqlRecordCatalog ready (table=%s, dialect=%s)",
            table_name,
            self.engine.dialect.name,
        )

    # -------------------------------------------------------------------------
    # Schema / connection
    # -------------------------------------------------------------------------
    async def init_schema(self) -> None:
        async with self._schema_lock:
            if self._schema_ready:
                return
            db_file = self.engine.url.database
            if self.engine.dialect.name == "sqlite" and db_file and db_file != ":memory:":
                os.makedirs(os.path.dirname(os.path.abspath(db_file)), exist_ok=True)
            async with self.engine.begin() as conn:
                await conn.run_sync(self.metadata.create_all)
            self._schema_ready = True
            self.logger.info("Catalog table '%s' ensured", self.table_name)

    async def test_connection(self) -> bool:
        try:
            await self.init_schema()
            async with self.engine.connect() as conn:
                await conn.execute(select(func.count()).select_from(self.table))
            return True
        except Exception as e:
            self.logger.error("Catalog connection failed: %s", e)
            return False

    async def dispose(self) -> None:
        await self.engine.dispose()

    # -------------------------------------------------------------------------
    # Row mapping
    # -------------------------------------------------------------------------
    def _to_record(self, row: Any) -> EmbeddingRecord:
        m = row._mapping
        return EmbeddingRecord(
            id=m["id"],
            path=tuple(json.loads(m["path_key"])),
            content=m["content"],
            level=m["level"],
            difficulty=m["difficulty"],
            vector=bytes_to_vector(m["vector"]),
            usage_count=m["usage_count"],
            label=m["label"],
            is_active=bool(m["is_active"]),
            provenance=Provenance(m["provenance"]),
            created_at=m["created_at"],
            updated_at=m["updated_at"],
        )

    def _insert(self):
        if self.engine.dialect.name == "postgresql":
            return pg_insert(self.table)
        return sqlite_insert(self.table)

    def _scope_clauses(self, scope: ScopeFilter) -> list:
        t = self.table
        clauses = [t.c.is_active.is_(True)]
        if scope.level is not None:
            clauses.append(t.c.level == scope.level)
        for i, segment in enumerate(scope.path_prefix[:MAX_PATH_DEPTH]):
            clauses.append(t.c[f"path_{i}"] == segment)
        if scope.difficulties is not None:
            clauses.append(t.c.difficulty.in_(sorted(scope.difficulties)))
        if scope.labeled_only:
            clauses.append(t.c.label.is_not(None))
        if scope.exclude_ids:
            clauses.append(t.c.id.not_in(sorted(scope.exclude_ids)))
        return clauses

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------
    async def upsert(
            self,
            path: Sequence[str],
            content: str,
            *,
            level: Optional[int] = None,
            difficulty: Optional[int] = None,
            provenance: Provenance = Provenance.GENERATED,
    ) -> UpsertResult:
        await self.init_schema()
        path = normalize_path(path)
        content = content.strip()
        if not content:
            raise ValueError("content must not be empty")

        t = self.table
        now = utc_now()
        new_id = uuid.uuid4().hex
        padded = list(path) + [None] * (MAX_PATH_DEPTH - len(path))

        stmt = self._insert().values(
            id=new_id,
            path_key=path_key_of(path),
            path_0=padded[0],
            path_1=padded[1],
            path_2=padded[2],
            content=content,
            level=level,
            difficulty=difficulty,
            vector=None,
            usage_count=1,
            label=None,
            is_active=True,
            provenance=provenance.value,
            created_at=now,
            updated_at=None,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[t.c.path_key, t.c.content],
            set_={"usage_count": t.c.usage_count + 1, "updated_at": now},
        ).returning(*t.c)

        async with self.engine.begin() as conn:
            row = (await conn.execute(stmt)).one()

        record = self._to_record(row)
        created = record.id == new_id
        self.logger.debug(
            "Upsert %s in '%s': %s (usage=%d)",
            "created" if created else "hit",
            self.table_name,
            record.short_preview(),
            record.usage_count,
        )
        return UpsertResult(record=record, created=created)

    async def increment_usage(self, record_id: str) -> int:
        await self.init_schema()
        t = self.table
        stmt = (
            update(t)
            .where(t.c.id == record_id)
            .values(usage_count=t.c.usage_count + 1, updated_at=utc_now())
            .returning(t.c.usage_count)
        )
        async with self.engine.begin() as conn:
            row = (await conn.execute(stmt)).first()
        if row is None:
            raise KeyError(f"Unknown record id '{record_id}' in table '{self.table_name}'")
        return int(row[0])

    async def set_vector(self, record_id: str, vector: np.ndarray) -> None:
        if vector is None:
            raise ValueError("vector must not be None; vectors are never cleared")
        await self.init_schema()
        t = self.table
        stmt = (
            update(t)
            .where(t.c.id == record_id)
            .values(vector=vector_to_bytes(vector), updated_at=utc_now())
        )
        async with self.engine.begin() as conn:
            updated = (await conn.execute(stmt)).rowcount
        if updated == 0:
            raise KeyError(f"Unknown record id '{record_id}' in table '{self.table_name}'")

    async def set_label(
            self,
            record_id: str,
            label: str,
            vector: Optional[np.ndarray] = None,
    ) -> Optional[str]:
        await self.init_schema()
        t = self.table
        values = {"label": label, "updated_at": utc_now()}
        if vector is not None:
            values["vector"] = vector_to_bytes(vector)

        async with self.engine.begin() as conn:
            await conn.execute(
                update(t).where(and_(t.c.id == record_id, t.c.label.is_(None))).values(**values)
            )
            row = (await conn.execute(select(t.c.label).where(t.c.id == record_id))).first()

        if row is None:
            raise KeyError(f"Unknown record id '{record_id}' in table '{self.table_name}'")
        return row[0]

    async def deactivate(self, record_id: str) -> bool:
        await self.init_schema()
        t = self.table
        stmt = (
            update(t)
            .where(and_(t.c.id == record_id, t.c.is_active.is_(True)))
            .values(is_active=False, updated_at=utc_now())
        )
        async with self.engine.begin() as conn:
            updated = (await conn.execute(stmt)).rowcount
        return updated > 0

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------
    async def get(self, record_id: str) -> Optional[EmbeddingRecord]:
        found = await self.get_many([record_id])
        return found[0] if found else None

    async def get_many(self, record_ids: Sequence[str]) -> List[EmbeddingRecord]:
        """Records for the given ids, in the order asked for; unknown ids are skipped."""
        ids = list(dict.fromkeys(record_ids))
        if not ids:
            return []
        await self.init_schema()
        t = self.table
        async with self.engine.connect() as conn:
            rows = (await conn.execute(select(t).where(t.c.id.in_(ids)))).all()
        by_id = {r._mapping["id"]: self._to_record(r) for r in rows}
        return [by_id[i] for i in ids if i in by_id]

    async def find_by_key(self, path: Sequence[str], content: str) -> Optional[EmbeddingRecord]:
        await self.init_schema()
        t = self.table
        stmt = select(t).where(and_(t.c.path_key == path_key_of(path), t.c.content == content))
        async with self.engine.connect() as conn:
            row = (await conn.execute(stmt)).first()
        return self._to_record(row) if row is not None else None

    async def popular(self, scope: ScopeFilter, top_k: int) -> List[EmbeddingRecord]:
        await self.init_schema()
        t = self.table
        stmt = (
            select(t)
            .where(and_(*self._scope_clauses(scope)))
            .order_by(t.c.usage_count.desc(), t.c.created_at.asc())
            .limit(top_k)
        )
        async with self.engine.connect() as conn:
            rows = (await conn.execute(stmt)).all()
        return [self._to_record(r) for r in rows]

    async def max_usage(self, scope: ScopeFilter) -> int:
        await self.init_schema()
        t = self.table
        clauses = self._scope_clauses(ScopeFilter(
            level=scope.level,
            path_prefix=scope.path_prefix,
            difficulties=scope.difficulties,
            labeled_only=scope.labeled_only,
        ))
        clauses.append(t.c.vector.is_not(None))
        stmt = select(func.max(t.c.usage_count)).where(and_(*clauses))
        async with self.engine.connect() as conn:
            value = (await conn.execute(stmt)).scalar()
        return int(value or 0)

    async def list_unlabeled(self, limit: int, embedded_only: bool = True) -> List[EmbeddingRecord]:
        await self.init_schema()
        t = self.table
        clauses = [t.c.is_active.is_(True), t.c.label.is_(None)]
        if embedded_only:
            clauses.append(t.c.vector.is_not(None))
        stmt = select(t).where(and_(*clauses)).order_by(t.c.created_at.asc()).limit(limit)
        async with self.engine.connect() as conn:
            rows = (await conn.execute(stmt)).all()
        return [self._to_record(r) for r in rows]
