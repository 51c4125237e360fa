# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-07
# Description: VectorRetriever
# -----------------------------------------------------------------------------
from enum import Enum
from typing import List, Optional, Sequence

import numpy as np

import settings
from embedding.RecordEmbedder import TextEmbedder, average_vectors
from model.EmbeddingRecord import ScopeFilter, ScoredRecord
from model.StageResult import StageResult, run_stage
from store.RecordStore import RecordStore
from utility.logging_utils import get_class_logger


class RetrievalMode(str, Enum):
    SIMILARITY = "similarity"
    HYBRID = "hybrid"


class VectorRetriever:
    """
    Similarity / hybrid / cold-start retrieval over a RecordStore.

    `search` raises on store errors; `retrieve` is the fail-soft entry point
    used by the orchestrator and always returns a StageResult.
    """

    def __init__(
            self,
            store: RecordStore,
            embedder: TextEmbedder,
            *,
            timeout: Optional[float] = settings.EXTERNAL_TIMEOUT_SECONDS,
            similarity_weight: float = settings.HYBRID_SIMILARITY_WEIGHT,
            popularity_weight: float = settings.HYBRID_POPULARITY_WEIGHT,
            candidate_pool: int = settings.HYBRID_CANDIDATE_POOL,
            logger=None,
    ):
        self.store = store
        self.embedder = embedder
        self.timeout = timeout
        self.similarity_weight = similarity_weight
        self.popularity_weight = popularity_weight
        self.candidate_pool = candidate_pool
        self.logger = logger or get_class_logger(self.__class__)

    async def embed_query(self, seed_texts: Sequence[str]) -> np.ndarray:
        """One vector for one or more seed texts (centroid when several)."""
        seeds = [s for s in seed_texts if s and s.strip()]
        if not seeds:
            raise ValueError("at least one non-empty seed text is required")
        if len(seeds) == 1:
            return await self.embedder.embed_text(seeds[0])
        vectors = await self.embedder.embed_texts(seeds)
        return average_vectors(vectors)

    async def search(
            self,
            query_vector: np.ndarray,
            scope: ScopeFilter,
            top_k: int,
            min_score: float,
            mode: RetrievalMode = RetrievalMode.SIMILARITY,
    ) -> List[ScoredRecord]:
        if top_k <= 0:
            return []

        if mode == RetrievalMode.SIMILARITY:
            return await self.store.search(query_vector, scope, top_k, min_score)

        pool = await self.store.search(query_vector, scope, max(top_k, self.candidate_pool), min_score)
        if not pool:
            return []

        max_usage = await self.store.max_usage(scope)
        rescored: List[ScoredRecord] = []
        for hit in pool:
            popularity = (hit.record.usage_count / max_usage) if max_usage > 0 else 0.0
            score = hit.similarity * self.similarity_weight + popularity * self.popularity_weight
            rescored.append(ScoredRecord(record=hit.record, similarity=hit.similarity, score=score))

        rescored.sort(key=lambda h: (-h.score, -h.similarity))
        self.logger.debug(
            "Hybrid re-rank: pool=%d max_usage=%d top=%s",
            len(pool), max_usage,
            [(h.record.content, round(h.score, 4)) for h in rescored[:3]],
        )
        return rescored[:top_k]

    async def _popular(self, scope: ScopeFilter, top_k: int) -> List[ScoredRecord]:
        records = await self.store.popular(scope, top_k)
        return [ScoredRecord(record=r, similarity=0.0, score=float(r.usage_count)) for r in records]

    async def _similar(
            self,
            seed_texts: Sequence[str],
            scope: ScopeFilter,
            top_k: int,
            min_score: float,
            mode: RetrievalMode,
    ) -> List[ScoredRecord]:
        query_vector = await self.embed_query(seed_texts)
        return await self.search(query_vector, scope, top_k, min_score, mode)

    async def retrieve(
            self,
            seed_texts: Sequence[str],
            scope: ScopeFilter,
            top_k: int,
            min_score: float,
            mode: RetrievalMode = RetrievalMode.SIMILARITY,
            *,
            stage: str = "retrieval",
    ) -> StageResult[ScoredRecord]:
        """
        Fail-soft retrieval. With no seed texts (cold start) the store's
        popularity ordering is used instead of similarity.
        """
        if top_k <= 0:
            return StageResult.skipped(stage, "nothing to retrieve")

        seeds = [s for s in seed_texts if s and s.strip()]
        if not seeds:
            self.logger.info("Cold start retrieval (top_k=%d, scope=%s)", top_k, scope)
            return await run_stage(stage, self._popular(scope, top_k), timeout=self.timeout, logger=self.logger)

        self.logger.info(
            "Retrieval: %d seed(s), top_k=%d, min_score=%.3f, mode=%s",
            len(seeds), top_k, min_score, mode.value,
        )
        return await run_stage(
            stage,
            self._similar(seeds, scope, top_k, min_score, mode),
            timeout=self.timeout,
            logger=self.logger,
        )
