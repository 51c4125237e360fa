# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-11
# Description: LabelEngine
# -----------------------------------------------------------------------------
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Sequence

import numpy as np

import settings
from embedding.RecordEmbedder import TextEmbedder
from errors.RecommendationErrors import InvalidRequestError
from generation.GenerativeFallback import GenerativeFallback
from model.EmbeddingRecord import EmbeddingRecord, Provenance, ScopeFilter, normalize_path
from model.StageResult import StageResult, run_stage
from store.RecordStore import RecordStore
from utility.logging_utils import get_class_logger


class LabelDecision(str, Enum):
    EXISTING = "existing"
    REUSED = "reused"
    GENERATED = "generated"
    FAILED = "failed"


@dataclass(frozen=True)
class LabelOutcome:
    record_id: str
    label: Optional[str]
    decision: LabelDecision
    matched_record_id: Optional[str] = None
    stages: Dict[str, StageResult] = field(default_factory=dict)


class LabelEngine:
    """
    Maps free-text mission records onto short canonical labels.

    UNLABELED -> embed -> search labeled neighbours -> reuse or generate ->
    LABELED. A label, once written, is never replaced; a failed generation
    writes nothing so the next batch pass can retry.
    """

    def __init__(
            self,
            store: RecordStore,
            embedder: TextEmbedder,
            fallback: GenerativeFallback,
            *,
            max_distance: float = settings.LABEL_MAX_DISTANCE,
            timeout: Optional[float] = settings.EXTERNAL_TIMEOUT_SECONDS,
            logger=None,
    ):
        self.store = store
        self.embedder = embedder
        self.fallback = fallback
        self.max_distance = max_distance
        self.timeout = timeout
        self.logger = logger or get_class_logger(self.__class__)

    @property
    def min_similarity(self) -> float:
        # cosine distance d <-> similarity 1 - d
        return 1.0 - self.max_distance

    async def _vector_for(self, record: EmbeddingRecord, stages: Dict[str, StageResult]) -> Optional[np.ndarray]:
        if record.has_vector:
            stages["embedding"] = StageResult.skipped("embedding", "record already embedded")
            return record.vector
        res = await run_stage(
            "embedding", self.embedder.embed_text(record.embedding_text()), timeout=self.timeout, logger=self.logger
        )
        stages["embedding"] = res
        return res.items[0] if res.items else None

    async def canonicalize(self, record: EmbeddingRecord) -> LabelOutcome:
        # the caller's copy may predate an earlier labelling
        current = await self.store.get(record.id)
        if current is not None:
            record = current
        if record.label:
            return LabelOutcome(record.id, record.label, LabelDecision.EXISTING)

        stages: Dict[str, StageResult] = {}
        vector = await self._vector_for(record, stages)

        if vector is not None:
            scope = ScopeFilter(labeled_only=True, exclude_ids=frozenset({record.id}))
            found = await run_stage(
                "label_search",
                self.store.search(vector, scope, 1, self.min_similarity),
                timeout=self.timeout,
                logger=self.logger,
            )
            stages["label_search"] = found
            # stores keep similarity >= threshold; the distance bound itself is strict
            near = [h for h in found.items if 1.0 - h.similarity < self.max_distance]
            if near:
                match = near[0]
                stored = await self.store.set_label(record.id, match.record.label, vector)
                self.logger.info(
                    "Label reused for %s -> '%s' (from %s, similarity=%.3f)",
                    record.short_preview(), stored, match.record.id, match.similarity,
                )
                return LabelOutcome(record.id, stored, LabelDecision.REUSED, match.record.id, stages)
        else:
            self.logger.warning("No vector for %s; generating a label without neighbour search", record.id)
            stages["label_search"] = StageResult.skipped("label_search", "no vector")

        generated = await self.fallback.generate_label(record.path, record.content)
        stages["label_generation"] = generated
        if generated.degraded or not generated.items:
            self.logger.warning("Label generation failed for %s; left unlabeled", record.id)
            return LabelOutcome(record.id, None, LabelDecision.FAILED, stages=stages)

        stored = await self.store.set_label(record.id, generated.items[0], vector)
        if stored != generated.items[0]:
            self.logger.info("Label for %s was written concurrently; kept '%s'", record.id, stored)
            return LabelOutcome(record.id, stored, LabelDecision.EXISTING, stages=stages)
        self.logger.info("Label generated for %s -> '%s'", record.short_preview(), stored)
        return LabelOutcome(record.id, stored, LabelDecision.GENERATED, stages=stages)

    async def canonicalize_text(
            self,
            raw_text: str,
            context_path: Sequence[str],
            *,
            difficulty: Optional[int] = None,
    ) -> LabelOutcome:
        """Label a raw mission sentence, creating its record on first sight."""
        if not (raw_text or "").strip():
            raise InvalidRequestError("mission text must not be empty")
        path = normalize_path(context_path)
        content = raw_text.strip()

        record = await self.store.find_by_key(path, content)
        if record is None:
            record = (await self.store.upsert(
                path, content, difficulty=difficulty, provenance=Provenance.USER_AUTHORED
            )).record
        return await self.canonicalize(record)
