# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-10
# Description: TodayMissionService
# -----------------------------------------------------------------------------
from typing import Iterable, List, Optional, Sequence, Set, Tuple

import settings
from cache.ExclusionCache import ExclusionCache
from errors.RecommendationErrors import InvalidRequestError, OwnershipError, RetryLimitExceededError
from model.Candidate import RecommendationResult
from model.EmbeddingRecord import CategoryLevel, normalize_path, path_to_string
from model.StageResult import StageResult, run_stage
from services.RecommendationOrchestrator import RecommendationOrchestrator, Strategy, validate_difficulties
from store.RecordStore import RecordStore
from userprofile.ProfileProvider import ProfileProvider, UserProfile
from userprofile.UserCategoryRegistry import UserCategoryRegistry
from utility.logging_utils import get_class_logger


class TodayMissionService:
    """
    Today's missions for one registered leaf category.

    recommend_today is retrieval-first; reroll is generation-first and counts
    against the daily ceiling. Every id handed out is appended to the day's
    exclusion set so later calls for the same scope never repeat it.
    """

    def __init__(
            self,
            orchestrator: RecommendationOrchestrator,
            interest_store: RecordStore,
            mission_store: RecordStore,
            registry: UserCategoryRegistry,
            cache: ExclusionCache,
            profiles: ProfileProvider,
            *,
            ceiling: int = settings.REROLL_CEILING,
            timeout: Optional[float] = settings.EXTERNAL_TIMEOUT_SECONDS,
            logger=None,
    ):
        self.orchestrator = orchestrator
        self.interest_store = interest_store
        self.mission_store = mission_store
        self.registry = registry
        self.cache = cache
        self.profiles = profiles
        self.ceiling = ceiling
        self.timeout = timeout
        self.logger = logger or get_class_logger(self.__class__)

    # -------------------------------------------------------------------------
    # Validation (before any external call)
    # -------------------------------------------------------------------------
    async def validate_category(self, user_id: str, category_path: Sequence[str]) -> Tuple[str, ...]:
        path = normalize_path(category_path)
        if len(path) != CategoryLevel.SUB:
            raise InvalidRequestError(f"missions need a sub-category path, got {list(path)}")

        lookup = await run_stage(
            "category_lookup",
            self.interest_store.find_by_key(path, path[-1]),
            timeout=self.timeout,
            logger=self.logger,
        )
        if lookup.degraded:
            self.logger.warning("Category catalog unavailable; accepting %s on path depth alone", list(path))
        else:
            record = lookup.items[0] if lookup.items else None
            if record is None or not record.is_active or record.level != CategoryLevel.SUB:
                raise InvalidRequestError(f"{path_to_string(path)!r} is not an active sub-category")

        if not await self.registry.is_registered(user_id, path):
            raise OwnershipError(user_id, path)
        return path

    # -------------------------------------------------------------------------
    # Helpers (fail-soft)
    # -------------------------------------------------------------------------
    async def _profile(self, user_id: str) -> Optional[UserProfile]:
        res = await run_stage("profile", self.profiles.get_profile(user_id), timeout=self.timeout, logger=self.logger)
        return res.items[0] if res.items else None

    async def _cached_exclusions(self, user_id: str, scope_key: str, stages: dict) -> Tuple[Set[str], List[str]]:
        cached = await run_stage(
            "exclusion_read", self.cache.get(user_id, scope_key), timeout=self.timeout, logger=self.logger
        )
        stages["exclusion_read"] = cached
        ids: Set[str] = set(cached.items[0]) if cached.items else set()
        if not ids:
            return ids, []

        resolved = await run_stage(
            "exclusion_texts", self.mission_store.get_many(sorted(ids)), timeout=self.timeout, logger=self.logger
        )
        stages["exclusion_texts"] = resolved
        return ids, [r.content for r in resolved.items]

    async def _serve(
            self,
            user_id: str,
            path: Tuple[str, ...],
            difficulties: Tuple[int, ...],
            active_mission_texts: Iterable[str],
            strategy: Strategy,
            stages: dict,
    ) -> RecommendationResult:
        scope_key = path_to_string(path)
        excluded_ids, cached_texts = await self._cached_exclusions(user_id, scope_key, stages)
        profile = await self._profile(user_id)

        result = await self.orchestrator.recommend_missions(
            path,
            difficulties,
            profile=profile,
            exclusion_texts=list(active_mission_texts) + cached_texts,
            exclusion_ids=excluded_ids,
            strategy=strategy,
        )

        if result.record_ids:
            stages["exclusion_write"] = await run_stage(
                "exclusion_write",
                self.cache.append(user_id, scope_key, result.record_ids),
                timeout=self.timeout,
                logger=self.logger,
            )
        else:
            stages["exclusion_write"] = StageResult.skipped("exclusion_write", "no persisted ids")

        result.stages = {**stages, **result.stages}
        return result

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------
    async def recommend_today(
            self,
            user_id: str,
            category_path: Sequence[str],
            *,
            active_mission_texts: Iterable[str] = (),
            difficulties: Iterable[int] = settings.ALL_DIFFICULTIES,
    ) -> RecommendationResult:
        path = await self.validate_category(user_id, category_path)
        wanted = validate_difficulties(difficulties)
        self.logger.info("Today's missions for user=%s scope=%s", user_id, path_to_string(path))
        return await self._serve(user_id, path, wanted, active_mission_texts, Strategy.RETRIEVAL_FIRST, {})

    async def reroll(
            self,
            user_id: str,
            category_path: Sequence[str],
            *,
            active_mission_texts: Iterable[str] = (),
            keep_difficulties: Iterable[int] = (),
    ) -> RecommendationResult:
        """
        Fresh, never-seen-today missions for every difficulty not kept.
        Raises RetryLimitExceededError once the day's ceiling is used up.
        """
        path = await self.validate_category(user_id, category_path)
        keep = set(keep_difficulties)
        if keep:
            validate_difficulties(keep)
        remaining = tuple(d for d in settings.ALL_DIFFICULTIES if d not in keep)
        if not remaining:
            raise InvalidRequestError("every difficulty is kept; nothing to re-roll")

        scope_key = path_to_string(path)
        stages = {}
        counter = await run_stage(
            "retry_counter",
            self.cache.increment_retry(user_id, scope_key),
            timeout=self.timeout,
            logger=self.logger,
        )
        stages["retry_counter"] = counter
        if counter.degraded:
            self.logger.warning("Retry counter unavailable for user=%s scope=%s; allowing re-roll", user_id, scope_key)
        else:
            attempts = counter.items[0]
            if attempts > self.ceiling:
                raise RetryLimitExceededError(user_id, scope_key, self.ceiling, attempts)
            self.logger.info("Re-roll %d/%d for user=%s scope=%s", attempts, self.ceiling, user_id, scope_key)

        return await self._serve(user_id, path, remaining, active_mission_texts, Strategy.GENERATION_FIRST, stages)
