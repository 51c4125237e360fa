# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-05
# Description: InMemoryRecordStore
# -----------------------------------------------------------------------------
import asyncio
import uuid
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from model.EmbeddingRecord import (
    EmbeddingRecord,
    Provenance,
    ScopeFilter,
    ScoredRecord,
    UpsertResult,
    normalize_path,
    utc_now,
)
from store.RecordStore import key_of
from utility.logging_utils import get_class_logger


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    a = np.asarray(a, dtype=np.float32)
    b = np.asarray(b, dtype=np.float32)
    denom = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denom == 0.0:
        return 0.0
    return float(np.dot(a, b) / denom)


class InMemoryRecordStore:
    """
    Test double for RecordStore. Not for production wiring: nothing survives
    the process and ranking is a linear scan.
    """

    def __init__(self, name: str = "in-memory", logger=None) -> None:
        self.name = name
        self.logger = logger or get_class_logger(self.__class__)
        self._lock = asyncio.Lock()
        self._records: Dict[str, EmbeddingRecord] = {}
        self._by_key: Dict[Tuple[Tuple[str, ...], str], str] = {}
        self._order: Dict[str, int] = {}

    # -------------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------------
    def seed(self, record: EmbeddingRecord) -> EmbeddingRecord:
        """Insert a fully-formed record (tests / fixtures only)."""
        key = key_of(record.path, record.content)
        if key in self._by_key:
            raise ValueError(f"duplicate key {key}")
        self._records[record.id] = record
        self._by_key[key] = record.id
        self._order[record.id] = len(self._order)
        return record

    def all_records(self) -> List[EmbeddingRecord]:
        return [replace(r) for r in sorted(self._records.values(), key=lambda r: self._order[r.id])]

    # -------------------------------------------------------------------------
    async def test_connection(self) -> bool:
        return True

    async def upsert(
            self,
            path: Sequence[str],
            content: str,
            *,
            level: Optional[int] = None,
            difficulty: Optional[int] = None,
            provenance: Provenance = Provenance.GENERATED,
    ) -> UpsertResult:
        path = normalize_path(path)
        content = content.strip()
        if not content:
            raise ValueError("content must not be empty")

        key = key_of(path, content)
        async with self._lock:
            existing_id = self._by_key.get(key)
            if existing_id is not None:
                rec = self._records[existing_id]
                rec.usage_count += 1
                rec.updated_at = utc_now()
                return UpsertResult(record=replace(rec), created=False)

            rec = EmbeddingRecord(
                id=uuid.uuid4().hex,
                path=path,
                content=content,
                level=level,
                difficulty=difficulty,
                usage_count=1,
                provenance=provenance,
            )
            self._records[rec.id] = rec
            self._by_key[key] = rec.id
            self._order[rec.id] = len(self._order)
            return UpsertResult(record=replace(rec), created=True)

    async def get(self, record_id: str) -> Optional[EmbeddingRecord]:
        rec = self._records.get(record_id)
        return replace(rec) if rec is not None else None

    async def get_many(self, record_ids: Sequence[str]) -> List[EmbeddingRecord]:
        return [replace(self._records[i]) for i in record_ids if i in self._records]

    async def find_by_key(self, path: Sequence[str], content: str) -> Optional[EmbeddingRecord]:
        record_id = self._by_key.get(key_of(path, content))
        return await self.get(record_id) if record_id else None

    async def increment_usage(self, record_id: str) -> int:
        async with self._lock:
            rec = self._require(record_id)
            rec.usage_count += 1
            rec.updated_at = utc_now()
            return rec.usage_count

    async def set_vector(self, record_id: str, vector: np.ndarray) -> None:
        if vector is None:
            raise ValueError("vector must not be None; vectors are never cleared")
        async with self._lock:
            rec = self._require(record_id)
            rec.vector = np.asarray(vector, dtype=np.float32)
            rec.updated_at = utc_now()

    async def set_label(
            self,
            record_id: str,
            label: str,
            vector: Optional[np.ndarray] = None,
    ) -> Optional[str]:
        async with self._lock:
            rec = self._require(record_id)
            if not rec.label:
                rec.label = label
                if vector is not None:
                    rec.vector = np.asarray(vector, dtype=np.float32)
                rec.updated_at = utc_now()
            return rec.label

    async def deactivate(self, record_id: str) -> bool:
        async with self._lock:
            rec = self._records.get(record_id)
            if rec is None or not rec.is_active:
                return False
            rec.is_active = False
            rec.updated_at = utc_now()
            return True

    async def search(
            self,
            query_vector: np.ndarray,
            scope: ScopeFilter,
            top_k: int,
            min_score: float,
    ) -> List[ScoredRecord]:
        hits: List[ScoredRecord] = []
        for rec in self._records.values():
            if rec.vector is None or not scope.matches(rec):
                continue
            sim = cosine_similarity(query_vector, rec.vector)
            if sim < min_score:
                continue
            hits.append(ScoredRecord(record=replace(rec), similarity=sim, score=sim))

        hits.sort(key=lambda h: (-h.similarity, self._order[h.record.id]))
        return hits[:top_k]

    async def popular(self, scope: ScopeFilter, top_k: int) -> List[EmbeddingRecord]:
        matched = [r for r in self._records.values() if scope.matches(r)]
        matched.sort(key=lambda r: (-r.usage_count, self._order[r.id]))
        return [replace(r) for r in matched[:top_k]]

    async def max_usage(self, scope: ScopeFilter) -> int:
        scope = replace(scope, exclude_ids=frozenset())
        counts = [r.usage_count for r in self._records.values() if r.vector is not None and scope.matches(r)]
        return max(counts, default=0)

    async def list_unlabeled(self, limit: int, embedded_only: bool = True) -> List[EmbeddingRecord]:
        out = [
            r for r in self._records.values()
            if r.is_active and not r.label and (r.vector is not None or not embedded_only)
        ]
        out.sort(key=lambda r: self._order[r.id])
        return [replace(r) for r in out[:limit]]

    def _require(self, record_id: str) -> EmbeddingRecord:
        rec = self._records.get(record_id)
        if rec is None:
            raise KeyError(f"Unknown record id '{record_id}' in store '{self.name}'")
        return rec
