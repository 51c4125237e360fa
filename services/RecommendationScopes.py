# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-09
# Description: RecommendationScopes
# -----------------------------------------------------------------------------
import math
from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

import settings
from generation.GenerativeFallback import GenerativeFallback
from model.Candidate import Candidate
from model.EmbeddingRecord import ScopeFilter, normalize_text, path_to_string
from model.StageResult import StageResult
from retrieval.VectorRetriever import RetrievalMode, VectorRetriever
from store.RecordStore import RecordStore
from userprofile.ProfileProvider import UserProfile


@runtime_checkable
class RecommendationScope(Protocol):
    """What varies between interest and mission recommendation."""
    name: str
    store: RecordStore

    @property
    def target(self) -> int:
        ...

    def retrieval_target(self, rag_ratio: float) -> int:
        ...

    async def retrieve(self, top_k: int, exclusion_texts: Sequence[str]) -> StageResult[Candidate]:
        ...

    async def generate(
            self,
            shortfall: int,
            exclusion_texts: Sequence[str],
            retrieved: Sequence[Candidate],
    ) -> StageResult[Candidate]:
        ...


def _drop_excluded(candidates: Sequence[Candidate], exclusion_texts: Sequence[str]) -> List[Candidate]:
    blocked = {normalize_text(t) for t in exclusion_texts}
    return [c for c in candidates if c.dedup_key not in blocked]


@dataclass
class InterestScope:
    """
    Category recommendation at one hierarchy level.

    Seeds are the selected paths; with none selected the request is a cold
    start and is served from popularity for the full count.
    """
    retriever: VectorRetriever
    fallback: GenerativeFallback
    store: RecordStore
    selected_paths: Tuple[Tuple[str, ...], ...]
    level: int
    count: int
    profile: Optional[UserProfile] = None
    exclude_ids: FrozenSet[str] = frozenset()
    mode: RetrievalMode = RetrievalMode.SIMILARITY
    min_score: float = settings.CATEGORY_MIN_SCORE
    name: str = "interests"

    @property
    def target(self) -> int:
        return self.count

    @property
    def cold_start(self) -> bool:
        return not self.selected_paths

    def retrieval_target(self, rag_ratio: float) -> int:
        if self.cold_start:
            return self.count
        return math.floor(self.count * rag_ratio)

    def _parent_prefix(self) -> Tuple[str, ...]:
        """Shared parent of every selected path at the requested level, if any."""
        if self.level <= 1 or not self.selected_paths:
            return ()
        parents = {tuple(p[:self.level - 1]) for p in self.selected_paths}
        return parents.pop() if len(parents) == 1 else ()

    async def retrieve(self, top_k: int, exclusion_texts: Sequence[str]) -> StageResult[Candidate]:
        scope = ScopeFilter(level=self.level, path_prefix=self._parent_prefix(), exclude_ids=self.exclude_ids)
        seeds = [path_to_string(p) for p in self.selected_paths]
        res = await self.retriever.retrieve(seeds, scope, top_k, self.min_score, self.mode)
        if res.degraded or not res.items:
            return StageResult(stage=res.stage, status=res.status, reason=res.reason)
        candidates = [Candidate.from_record(h.record, h.score) for h in res.items]
        return StageResult.success(res.stage, _drop_excluded(candidates, exclusion_texts))

    async def generate(
            self,
            shortfall: int,
            exclusion_texts: Sequence[str],
            retrieved: Sequence[Candidate],
    ) -> StageResult[Candidate]:
        return await self.fallback.generate_interests(
            self.selected_paths, self.level, exclusion_texts, shortfall, self.profile
        )


@dataclass
class MissionScope:
    """
    Mission recommendation for one leaf category across a set of
    difficulties: at most one mission per difficulty from either source.

    Retrieval searches the whole major category so a close mission filed
    under a sibling sub-category can be reused; the score threshold does
    the narrowing.
    """
    retriever: VectorRetriever
    fallback: GenerativeFallback
    store: RecordStore
    category_path: Tuple[str, ...]
    difficulties: Tuple[int, ...] = settings.ALL_DIFFICULTIES
    profile: Optional[UserProfile] = None
    exclude_ids: FrozenSet[str] = frozenset()
    mode: RetrievalMode = RetrievalMode.SIMILARITY
    min_score: float = settings.MISSION_MIN_SCORE
    pool_size: int = settings.HYBRID_CANDIDATE_POOL
    name: str = "missions"

    @property
    def target(self) -> int:
        return len(self.difficulties)

    def retrieval_target(self, rag_ratio: float) -> int:
        return math.floor(self.target * rag_ratio)

    async def retrieve(self, top_k: int, exclusion_texts: Sequence[str]) -> StageResult[Candidate]:
        scope = ScopeFilter(
            path_prefix=self.category_path[:1],
            difficulties=frozenset(self.difficulties),
            exclude_ids=self.exclude_ids,
        )
        res = await self.retriever.retrieve(
            [path_to_string(self.category_path)],
            scope,
            max(top_k, self.pool_size) if top_k > 0 else 0,
            self.min_score,
            self.mode,
        )
        if res.degraded or not res.items:
            return StageResult(stage=res.stage, status=res.status, reason=res.reason)

        candidates = _drop_excluded([Candidate.from_record(h.record, h.score) for h in res.items], exclusion_texts)
        best_per_difficulty = {}
        for c in candidates:
            if c.difficulty not in best_per_difficulty:
                best_per_difficulty[c.difficulty] = c
            if len(best_per_difficulty) >= top_k:
                break
        picked = sorted(best_per_difficulty.values(), key=lambda c: c.difficulty)
        return StageResult.success(res.stage, picked)

    async def generate(
            self,
            shortfall: int,
            exclusion_texts: Sequence[str],
            retrieved: Sequence[Candidate],
    ) -> StageResult[Candidate]:
        covered = {c.difficulty for c in retrieved}
        missing = [d for d in self.difficulties if d not in covered][:shortfall]
        return await self.fallback.generate_missions(self.category_path, missing, exclusion_texts, self.profile)
