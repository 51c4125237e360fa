# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-06
# Description: ChromaRecordStore
# -----------------------------------------------------------------------------
import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import chromadb
import numpy as np
from chromadb import ClientAPI
from chromadb.api.models import Collection

from config.Config import Config
from model.EmbeddingRecord import (
    EmbeddingRecord,
    Provenance,
    ScopeFilter,
    ScoredRecord,
    UpsertResult,
)
from store.SqlRecordCatalog import SqlRecordCatalog
from utility.logging_utils import get_class_logger


def chroma_metadata(record: EmbeddingRecord) -> Dict[str, Any]:
    """Flat metadata Chroma can filter on (no None values allowed)."""
    path = list(record.path) + [""] * (3 - len(record.path))
    return {
        "level": record.level if record.level is not None else -1,
        "difficulty": record.difficulty if record.difficulty is not None else -1,
        "path_0": path[0],
        "path_1": path[1],
        "path_2": path[2],
        "is_active": bool(record.is_active),
        "labeled": bool(record.label),
    }


def chroma_where(scope: ScopeFilter) -> Dict[str, Any]:
    conditions: List[Dict[str, Any]] = [{"is_active": True}]
    if scope.level is not None:
        conditions.append({"level": scope.level})
    for i, segment in enumerate(scope.path_prefix[:3]):
        conditions.append({f"path_{i}": segment})
    if scope.difficulties is not None:
        conditions.append({"difficulty": {"$in": sorted(scope.difficulties)}})
    if scope.labeled_only:
        conditions.append({"labeled": True})
    if len(conditions) == 1:
        return conditions[0]
    return {"$and": conditions}


@dataclass
class ChromaRecordStore:
    """
    RecordStore backed by a SQL catalog (source of truth) and a Chroma
    collection (ANN index over embedded records only).

    Every write goes to the catalog first; the Chroma entry is refreshed from
    the catalog row afterwards, so a record never has index state the catalog
    does not.
    """
    cfg: Config
    catalog: SqlRecordCatalog
    collection_name: str
    client: Optional[ClientAPI] = None
    logger: Any = None

    def __post_init__(self) -> None:
        self.logger = self.logger or get_class_logger(self.__class__)

        if self.client is None:
            self.logger.info(
                "Initialising Chroma Cloud client "
                f"(tenant={self.cfg.chroma_tenant}, database={self.cfg.chroma_database})"
            )
            self.client = chromadb.CloudClient(
                tenant=self.cfg.chroma_tenant,
                database=self.cfg.chroma_database,
                api_key=self.cfg.chroma_api_key,
            )

        self.collection: Collection = self.client.get_or_create_collection(
            name=self.collection_name,
            metadata={"hnsw:space": "cosine"},
        )
        self.logger.info("Chroma collection ready: '%s'", self.collection_name)

    async def test_connection(self) -> bool:
        try:
            _ = await asyncio.to_thread(self.collection.count)
        except Exception as e:
            self.logger.error("Chroma connection failed: %s", e)
            return False
        return await self.catalog.test_connection()

    # -------------------------------------------------------------------------
    # Index mirroring
    # -------------------------------------------------------------------------
    async def _mirror(self, record_id: str) -> None:
        record = await self.catalog.get(record_id)
        if record is None or record.vector is None:
            return
        await asyncio.to_thread(
            self.collection.upsert,
            ids=[record.id],
            documents=[record.embedding_text()],
            embeddings=[record.vector.tolist()],
            metadatas=[chroma_metadata(record)],
        )
        self.logger.debug("Mirrored %s into '%s'", record.id, self.collection_name)

    # -------------------------------------------------------------------------
    # Writes (catalog first)
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
        return await self.catalog.upsert(
            path, content, level=level, difficulty=difficulty, provenance=provenance
        )

    async def increment_usage(self, record_id: str) -> int:
        return await self.catalog.increment_usage(record_id)

    async def set_vector(self, record_id: str, vector: np.ndarray) -> None:
        await self.catalog.set_vector(record_id, vector)
        await self._mirror(record_id)

    async def set_label(
            self,
            record_id: str,
            label: str,
            vector: Optional[np.ndarray] = None,
    ) -> Optional[str]:
        stored = await self.catalog.set_label(record_id, label, vector)
        await self._mirror(record_id)
        return stored

    async def deactivate(self, record_id: str) -> bool:
        changed = await self.catalog.deactivate(record_id)
        if changed:
            await self._mirror(record_id)
        return changed

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------
    async def get(self, record_id: str) -> Optional[EmbeddingRecord]:
        return await self.catalog.get(record_id)

    async def get_many(self, record_ids: Sequence[str]) -> List[EmbeddingRecord]:
        return await self.catalog.get_many(record_ids)

    async def find_by_key(self, path: Sequence[str], content: str) -> Optional[EmbeddingRecord]:
        return await self.catalog.find_by_key(path, content)

    async def popular(self, scope: ScopeFilter, top_k: int) -> List[EmbeddingRecord]:
        return await self.catalog.popular(scope, top_k)

    async def max_usage(self, scope: ScopeFilter) -> int:
        return await self.catalog.max_usage(scope)

    async def list_unlabeled(self, limit: int, embedded_only: bool = True) -> List[EmbeddingRecord]:
        return await self.catalog.list_unlabeled(limit, embedded_only=embedded_only)

    async def search(
            self,
            query_vector: np.ndarray,
            scope: ScopeFilter,
            top_k: int,
            min_score: float,
    ) -> List[ScoredRecord]:
        if top_k <= 0:
            return []

        # Chroma has no "id not in"; over-fetch and drop excluded ids afterwards
        n_results = top_k + len(scope.exclude_ids)
        where = chroma_where(scope)

        self.logger.debug(
            "Querying Chroma '%s' (n_results=%d, where=%s, min_score=%.3f)",
            self.collection_name, n_results, where, min_score,
        )
        res = await asyncio.to_thread(
            self.collection.query,
            query_embeddings=[np.asarray(query_vector, dtype=np.float32).tolist()],
            n_results=n_results,
            where=where,
            include=["distances"],
        )

        ids: List[str] = (res.get("ids") or [[]])[0]
        distances: List[float] = (res.get("distances") or [[]])[0]

        similarities: Dict[str, float] = {}
        for record_id, distance in zip(ids, distances):
            if record_id in scope.exclude_ids:
                continue
            similarity = 1.0 - float(distance)
            if similarity < min_score:
                continue
            similarities[record_id] = similarity

        records = await self.catalog.get_many(list(similarities))
        hits = [
            ScoredRecord(record=r, similarity=similarities[r.id], score=similarities[r.id])
            for r in records
            if scope.matches(r)
        ]
        hits.sort(key=lambda h: -h.similarity)

        self.logger.info(
            "Chroma search on '%s' complete: %d hits (requested %d)",
            self.collection_name, len(hits[:top_k]), top_k,
        )
        return hits[:top_k]
