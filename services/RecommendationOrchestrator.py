# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-09
# Description: RecommendationOrchestrator
# -----------------------------------------------------------------------------
import asyncio
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

import settings
from errors.RecommendationErrors import InvalidRequestError
from generation.GenerativeFallback import GenerativeFallback
from model.Candidate import Candidate, CandidateSource, RecommendationResult
from model.EmbeddingRecord import MAX_PATH_DEPTH, CategoryLevel, Provenance, normalize_path
from model.StageResult import StageResult, run_stage
from retrieval.VectorRetriever import RetrievalMode, VectorRetriever
from services.RecommendationScopes import InterestScope, MissionScope, RecommendationScope
from store.RecordStore import RecordStore
from userprofile.ProfileProvider import UserProfile
from utility.logging_utils import get_class_logger


class Strategy(str, Enum):
    RETRIEVAL_FIRST = "retrieval_first"
    GENERATION_FIRST = "generation_first"


def merge_candidates(
        retrieved: Sequence[Candidate],
        generated: Sequence[Candidate],
        target: int,
) -> List[Candidate]:
    """Retrieved first, then generated; case/whitespace-insensitive dedup; truncate."""
    seen = set()
    out: List[Candidate] = []
    for c in list(retrieved) + list(generated):
        if c.dedup_key in seen:
            continue
        seen.add(c.dedup_key)
        out.append(c)
        if len(out) >= target:
            break
    return out


def validate_difficulties(difficulties: Iterable[int]) -> Tuple[int, ...]:
    values = tuple(sorted(set(difficulties)))
    if not values:
        raise InvalidRequestError("at least one difficulty must be requested")
    bad = [d for d in values if d not in settings.ALL_DIFFICULTIES]
    if bad:
        raise InvalidRequestError(f"difficulty must be one of {settings.ALL_DIFFICULTIES}, got {bad}")
    return values


class RecommendationOrchestrator:
    """
    One retrieval-first / generation-first pipeline shared by every scope.

    Retrieval always completes (or degrades) before the shortfall is computed;
    generated candidates are persisted without a vector and tagged with their
    record id. Infrastructure failures show up in `RecommendationResult.stages`
    and never as exceptions.
    """

    def __init__(
            self,
            interest_store: RecordStore,
            mission_store: RecordStore,
            interest_retriever: VectorRetriever,
            mission_retriever: VectorRetriever,
            fallback: GenerativeFallback,
            *,
            rag_ratio: float = settings.RAG_RATIO,
            timeout: Optional[float] = settings.EXTERNAL_TIMEOUT_SECONDS,
            logger=None,
    ):
        self.interest_store = interest_store
        self.mission_store = mission_store
        self.interest_retriever = interest_retriever
        self.mission_retriever = mission_retriever
        self.fallback = fallback
        self.rag_ratio = rag_ratio
        self.timeout = timeout
        self.logger = logger or get_class_logger(self.__class__)

    # -------------------------------------------------------------------------
    # Generic pipeline
    # -------------------------------------------------------------------------
    async def _persist(self, store: RecordStore, candidates: Sequence[Candidate]) -> List[Candidate]:
        out: List[Candidate] = []
        for c in candidates:
            res = await store.upsert(
                c.path,
                c.content,
                level=c.level,
                difficulty=c.difficulty,
                provenance=Provenance.GENERATED,
            )
            out.append(c.with_record(res.record))
        return out

    async def run(
            self,
            scope: RecommendationScope,
            *,
            strategy: Strategy = Strategy.RETRIEVAL_FIRST,
            exclusion_texts: Sequence[str] = (),
            exclusion_ids: FrozenSet[str] = frozenset(),
    ) -> RecommendationResult:
        target = scope.target
        stages: Dict[str, StageResult] = {}

        retrieved: List[Candidate] = []
        if strategy == Strategy.RETRIEVAL_FIRST:
            top_k = scope.retrieval_target(self.rag_ratio)
            res = await scope.retrieve(top_k, exclusion_texts)
            stages["retrieval"] = res
            retrieved = merge_candidates(res.items, [], top_k)
        else:
            stages["retrieval"] = StageResult.skipped("retrieval", "generation-first request")

        shortfall = target - len(retrieved)
        if shortfall > 0:
            gen_exclusions = [c.content for c in retrieved] + list(exclusion_texts)
            gen = await scope.generate(shortfall, gen_exclusions, retrieved)
        else:
            gen = StageResult.skipped("generation", "retrieval filled the target")
        stages["generation"] = gen

        merged = merge_candidates(retrieved, gen.items, target)

        fresh = [c for c in merged if c.source == CandidateSource.GENERATED]
        if fresh:
            persisted = await run_stage(
                "persist", self._persist(scope.store, fresh), timeout=self.timeout, logger=self.logger
            )
            stages["persist"] = persisted
            by_key = {c.dedup_key: c for c in persisted.items}
            merged = [by_key.get(c.dedup_key, c) for c in merged]
        else:
            stages["persist"] = StageResult.skipped("persist", "nothing generated")

        final: List[Candidate] = []
        seen_ids = set()
        for c in merged:
            if c.record_id is not None:
                if c.record_id in exclusion_ids or c.record_id in seen_ids:
                    continue
                seen_ids.add(c.record_id)
            final.append(c)

        result = RecommendationResult(candidates=final, stages=stages)
        self.logger.info("Recommendation [%s] %s", scope.name, result.summary())
        if result.degraded_stages():
            self.logger.warning("Recommendation [%s] degraded stages: %s", scope.name, result.degraded_stages())
        return result

    # -------------------------------------------------------------------------
    # Interests
    # -------------------------------------------------------------------------
    def _interest_scope(
            self,
            selected_paths: Sequence[Sequence[str]],
            level: int,
            count: int,
            profile: Optional[UserProfile],
            exclusion_ids: FrozenSet[str],
            mode: RetrievalMode,
    ) -> InterestScope:
        if count < 0:
            raise InvalidRequestError(f"count must not be negative, got {count}")
        if level not in tuple(CategoryLevel):
            raise InvalidRequestError(f"level must be 1..{MAX_PATH_DEPTH}, got {level}")

        paths = tuple(normalize_path(p) for p in selected_paths)
        if level > CategoryLevel.MAIN:
            if not paths:
                raise InvalidRequestError(f"level {level} needs a selected parent category")
            short = [p for p in paths if len(p) < level - 1]
            if short:
                raise InvalidRequestError(f"selected path(s) {short} too shallow for level {level}")

        return InterestScope(
            retriever=self.interest_retriever,
            fallback=self.fallback,
            store=self.interest_store,
            selected_paths=paths,
            level=level,
            count=count,
            profile=profile,
            exclude_ids=frozenset(exclusion_ids),
            mode=mode,
        )

    async def recommend_interests(
            self,
            selected_paths: Sequence[Sequence[str]],
            level: int,
            count: int = settings.DEFAULT_INTEREST_COUNT,
            *,
            profile: Optional[UserProfile] = None,
            exclusion_texts: Sequence[str] = (),
            exclusion_ids: Iterable[str] = (),
            mode: RetrievalMode = RetrievalMode.SIMILARITY,
    ) -> RecommendationResult:
        exclusion_ids = frozenset(exclusion_ids)
        scope = self._interest_scope(selected_paths, level, count, profile, exclusion_ids, mode)
        if count == 0:
            return RecommendationResult()
        return await self.run(scope, exclusion_texts=exclusion_texts, exclusion_ids=exclusion_ids)

    async def recommend_interests_per_category(
            self,
            selected_paths: Sequence[Sequence[str]],
            count: int = settings.DEFAULT_INTEREST_COUNT,
            *,
            profile: Optional[UserProfile] = None,
            exclusion_texts: Sequence[str] = (),
            exclusion_ids: Iterable[str] = (),
            mode: RetrievalMode = RetrievalMode.SIMILARITY,
    ) -> Dict[Tuple[str, ...], RecommendationResult]:
        """
        Children of every selected category, one independent pipeline per
        category, run concurrently.
        """
        exclusion_ids = frozenset(exclusion_ids)
        paths = [normalize_path(p) for p in selected_paths]
        too_deep = [p for p in paths if len(p) >= MAX_PATH_DEPTH]
        if too_deep:
            raise InvalidRequestError(f"leaf categories have no children: {too_deep}")

        # validate all before the first external call
        scopes = [
            self._interest_scope([p], len(p) + 1, count, profile, exclusion_ids, mode)
            for p in dict.fromkeys(paths)
        ]
        if count == 0:
            return {s.selected_paths[0]: RecommendationResult() for s in scopes}

        results = await asyncio.gather(*[
            self.run(s, exclusion_texts=exclusion_texts, exclusion_ids=exclusion_ids) for s in scopes
        ])
        return {s.selected_paths[0]: r for s, r in zip(scopes, results)}

    # -------------------------------------------------------------------------
    # Missions
    # -------------------------------------------------------------------------
    async def recommend_missions(
            self,
            category_path: Sequence[str],
            difficulties: Iterable[int] = settings.ALL_DIFFICULTIES,
            *,
            profile: Optional[UserProfile] = None,
            exclusion_texts: Sequence[str] = (),
            exclusion_ids: Iterable[str] = (),
            strategy: Strategy = Strategy.RETRIEVAL_FIRST,
            mode: RetrievalMode = RetrievalMode.SIMILARITY,
    ) -> RecommendationResult:
        """Up to one mission per requested difficulty for one category path."""
        exclusion_ids = frozenset(exclusion_ids)
        scope = MissionScope(
            retriever=self.mission_retriever,
            fallback=self.fallback,
            store=self.mission_store,
            category_path=normalize_path(category_path),
            difficulties=validate_difficulties(difficulties),
            profile=profile,
            exclude_ids=exclusion_ids,
            mode=mode,
        )
        return await self.run(
            scope,
            strategy=strategy,
            exclusion_texts=exclusion_texts,
            exclusion_ids=exclusion_ids,
        )
