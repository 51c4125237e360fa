# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-10
# Description: SelectionService
# -----------------------------------------------------------------------------
from dataclasses import dataclass
from typing import List, Optional, Sequence

import settings
from embedding.RecordEmbedder import TextEmbedder
from errors.RecommendationErrors import InvalidRequestError, OwnershipError
from model.EmbeddingRecord import (
    CategoryLevel,
    EmbeddingRecord,
    Provenance,
    UpsertResult,
    normalize_path,
)
from model.StageResult import StageResult, run_stage
from store.RecordStore import RecordStore
from userprofile.UserCategoryRegistry import UserCategoryRegistry
from utility.logging_utils import get_class_logger


@dataclass(frozen=True)
class SelectionOutcome:
    record_id: str
    usage_count: int
    embedded: bool
    embedding: StageResult


class SelectionService:
    """
    A user choosing a candidate is what makes it worth embedding: usage goes
    up every time, the vector is computed only on the first selection that
    finds the record without one.
    """

    def __init__(
            self,
            interest_store: RecordStore,
            mission_store: RecordStore,
            embedder: TextEmbedder,
            registry: UserCategoryRegistry,
            *,
            timeout: Optional[float] = settings.EXTERNAL_TIMEOUT_SECONDS,
            logger=None,
    ):
        self.interest_store = interest_store
        self.mission_store = mission_store
        self.embedder = embedder
        self.registry = registry
        self.timeout = timeout
        self.logger = logger or get_class_logger(self.__class__)

    async def _require_active(self, store: RecordStore, record_id: str) -> EmbeddingRecord:
        record = await store.get(record_id)
        if record is None or not record.is_active:
            raise InvalidRequestError(f"record {record_id!r} does not exist or is inactive")
        return record

    async def _select(self, store: RecordStore, record: EmbeddingRecord) -> SelectionOutcome:
        usage = await store.increment_usage(record.id)

        if record.has_vector:
            return SelectionOutcome(record.id, usage, True, StageResult.skipped("embedding", "already embedded"))

        embedding = await run_stage(
            "embedding",
            self.embedder.embed_text(record.embedding_text()),
            timeout=self.timeout,
            logger=self.logger,
        )
        if embedding.degraded or not embedding.items:
            self.logger.warning("Lazy embedding failed for %s; will retry on next selection", record.id)
            return SelectionOutcome(record.id, usage, False, embedding)

        await store.set_vector(record.id, embedding.items[0])
        self.logger.info("Embedded %s on first selection", record.short_preview())
        return SelectionOutcome(record.id, usage, True, embedding)

    async def select_interest(self, record_id: str) -> SelectionOutcome:
        record = await self._require_active(self.interest_store, record_id)
        return await self._select(self.interest_store, record)

    async def select_mission(
            self,
            user_id: str,
            record_id: str,
            category_path: Optional[Sequence[str]] = None,
    ) -> SelectionOutcome:
        """
        `category_path` is the category the mission was recommended for. A
        retrieved mission may be filed under a sibling sub-category of the
        same major category, so ownership is checked against the request.
        """
        record = await self._require_active(self.mission_store, record_id)
        path = normalize_path(category_path) if category_path is not None else record.path
        if path[:1] != record.path[:1]:
            raise InvalidRequestError(
                f"mission {record_id!r} is not under the major category of {list(path)}"
            )
        if not await self.registry.is_registered(user_id, path):
            raise OwnershipError(user_id, path)
        return await self._select(self.mission_store, record)

    async def author_interest_path(self, path: Sequence[str]) -> List[UpsertResult]:
        """Upsert every prefix of a user-typed hierarchy (major, middle, sub)."""
        path = normalize_path(path)
        results: List[UpsertResult] = []
        for depth in range(1, len(path) + 1):
            results.append(await self.interest_store.upsert(
                path[:depth],
                path[depth - 1],
                level=int(CategoryLevel(depth)),
                provenance=Provenance.USER_AUTHORED,
            ))
        self.logger.info(
            "User-authored interest path %s (%d new)",
            list(path), sum(1 for r in results if r.created),
        )
        return results

    async def author_mission(
            self,
            user_id: str,
            category_path: Sequence[str],
            content: str,
            difficulty: int,
    ) -> UpsertResult:
        path = normalize_path(category_path)
        if difficulty not in settings.ALL_DIFFICULTIES:
            raise InvalidRequestError(f"difficulty must be one of {settings.ALL_DIFFICULTIES}, got {difficulty}")
        if not (content or "").strip():
            raise InvalidRequestError("mission content must not be empty")
        if not await self.registry.is_registered(user_id, path):
            raise OwnershipError(user_id, path)

        return await self.mission_store.upsert(
            path,
            content,
            difficulty=difficulty,
            provenance=Provenance.USER_AUTHORED,
        )
