# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-08
# Description: GenerativeFallback
# -----------------------------------------------------------------------------
from typing import List, Optional, Sequence, Tuple

import settings
from chat.OpenAIChat import JSON_OBJECT_FORMAT, TextGenerator
from generation.PayloadSchemas import InterestPayload, LabelPayload, MissionPayload, parse_payload
from generation.PromptBuilder import PromptBuilder
from model.Candidate import Candidate, CandidateSource
from model.EmbeddingRecord import normalize_text
from model.StageResult import StageResult, StageStatus, run_stage
from userprofile.ProfileProvider import UserProfile
from utility.logging_utils import get_class_logger


class GenerativeFallback:
    """
    Asks the text-generation service for candidates the catalog could not
    supply. One round-trip per call, except that missions may be re-asked a
    bounded number of times for difficulties the first answer skipped. A
    malformed or late answer becomes a degraded StageResult, never an
    exception.
    """

    def __init__(
            self,
            chat: TextGenerator,
            *,
            timeout: Optional[float] = settings.EXTERNAL_TIMEOUT_SECONDS,
            max_tokens: int = settings.GENERATION_MAX_TOKENS,
            mission_attempts: int = settings.MISSION_GENERATION_ATTEMPTS,
            logger=None,
    ):
        self.chat = chat
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.mission_attempts = mission_attempts
        self.logger = logger or get_class_logger(self.__class__)

    async def _ask(self, system_text: str, user_text: str, temperature: float) -> str:
        self.logger.debug("Generation prompt:\n%s", user_text)
        resp = await self.chat.simple_chat(
            user_text,
            system_text,
            temperature=temperature,
            max_tokens=self.max_tokens,
            response_format=JSON_OBJECT_FORMAT,
        )
        return resp.get("answer") or ""

    # -------------------------------------------------------------------------
    # Interests
    # -------------------------------------------------------------------------
    async def _interests(
            self,
            selected_paths: Sequence[Tuple[str, ...]],
            level: int,
            exclusions: Sequence[str],
            count: int,
            profile: Optional[UserProfile],
    ) -> List[Candidate]:
        system_text, user_text = PromptBuilder.interest_prompt(selected_paths, level, exclusions, count, profile)
        answer = await self._ask(system_text, user_text, settings.GENERATION_TEMPERATURE)
        payload = parse_payload(answer, InterestPayload)

        parent: Tuple[str, ...] = tuple(selected_paths[0][:level - 1]) if selected_paths else ()
        blocked = {normalize_text(t) for t in exclusions}
        out: List[Candidate] = []
        for item in payload.interests:
            key = normalize_text(item.name)
            if key in blocked:
                continue
            blocked.add(key)
            out.append(Candidate(
                content=item.name,
                path=parent + (item.name,),
                source=CandidateSource.GENERATED,
                level=level,
            ))
        return out[:count]

    async def generate_interests(
            self,
            selected_paths: Sequence[Tuple[str, ...]],
            level: int,
            exclusions: Sequence[str],
            count: int,
            profile: Optional[UserProfile] = None,
            *,
            stage: str = "generation",
    ) -> StageResult[Candidate]:
        if count <= 0:
            return StageResult.skipped(stage, "no shortfall")
        self.logger.info("Generating %d interest(s) at level %d (%d exclusion(s))", count, level, len(exclusions))
        return await run_stage(
            stage,
            self._interests(selected_paths, level, exclusions, count, profile),
            timeout=self.timeout,
            logger=self.logger,
        )

    # -------------------------------------------------------------------------
    # Missions
    # -------------------------------------------------------------------------
    def _accept_missions(
            self,
            payload: MissionPayload,
            category_path: Tuple[str, ...],
            wanted: Sequence[int],
            blocked: set,
            by_difficulty: dict,
    ) -> None:
        for item in payload.missions:
            key = normalize_text(item.content)
            if item.difficulty not in wanted or item.difficulty in by_difficulty or key in blocked:
                continue
            blocked.add(key)
            by_difficulty[item.difficulty] = Candidate(
                content=item.content,
                path=tuple(category_path),
                source=CandidateSource.GENERATED,
                difficulty=item.difficulty,
            )

    async def _missions(
            self,
            category_path: Tuple[str, ...],
            difficulties: Sequence[int],
            exclusions: Sequence[str],
            profile: Optional[UserProfile],
    ) -> List[Candidate]:
        wanted = sorted(set(difficulties))
        blocked = {normalize_text(t) for t in exclusions}
        by_difficulty = {}

        system_text, user_text = PromptBuilder.mission_prompt(category_path, wanted, exclusions, profile)
        answer = await self._ask(system_text, user_text, settings.MISSION_TEMPERATURE)
        self._accept_missions(parse_payload(answer, MissionPayload), category_path, wanted, blocked, by_difficulty)

        for attempt in range(2, self.mission_attempts + 1):
            missing = [d for d in wanted if d not in by_difficulty]
            if not missing:
                break
            self.logger.warning(
                "Generation left difficulties %s unfilled for %s; asking again (attempt %d/%d)",
                missing, category_path, attempt, self.mission_attempts,
            )
            accepted = [c.content for c in by_difficulty.values()]
            system_text, user_text = PromptBuilder.mission_prompt(
                category_path, missing, list(exclusions) + accepted, profile, retry=True
            )
            try:
                answer = await self._ask(system_text, user_text, settings.MISSION_TEMPERATURE)
                payload = parse_payload(answer, MissionPayload)
            except Exception as e:
                # keep what the first answer already delivered
                self.logger.warning("Mission re-ask failed for %s: %s", category_path, e)
                break
            self._accept_missions(payload, category_path, missing, blocked, by_difficulty)

        missing = [d for d in wanted if d not in by_difficulty]
        if missing:
            self.logger.warning("Generation left difficulties %s unfilled for %s", missing, category_path)
        return [by_difficulty[d] for d in sorted(by_difficulty)]

    async def generate_missions(
            self,
            category_path: Tuple[str, ...],
            difficulties: Sequence[int],
            exclusions: Sequence[str],
            profile: Optional[UserProfile] = None,
            *,
            stage: str = "generation",
    ) -> StageResult[Candidate]:
        """All requested difficulties in one batched call, at most one mission each."""
        if not difficulties:
            return StageResult.skipped(stage, "no difficulties missing")
        self.logger.info(
            "Generating missions for '%s' difficulties=%s (%d exclusion(s))",
            " > ".join(category_path), sorted(set(difficulties)), len(exclusions),
        )
        return await run_stage(
            stage,
            self._missions(category_path, difficulties, exclusions, profile),
            timeout=self.timeout,
            logger=self.logger,
        )

    # -------------------------------------------------------------------------
    # Labels
    # -------------------------------------------------------------------------
    async def _label(self, context_path: Sequence[str], content: str) -> str:
        system_text, user_text = PromptBuilder.label_prompt(context_path, content)
        answer = await self._ask(system_text, user_text, settings.LABEL_TEMPERATURE)
        payload = parse_payload(answer, LabelPayload)
        return payload.label.strip("\"'").strip()

    async def generate_label(
            self,
            context_path: Sequence[str],
            content: str,
            *,
            stage: str = "label_generation",
    ) -> StageResult[str]:
        result = await run_stage(stage, self._label(context_path, content), timeout=self.timeout, logger=self.logger)
        # stripping quotes can leave nothing behind
        if result.items and not result.items[0]:
            return StageResult.failure(stage, StageStatus.PARSE_ERROR, "empty label")
        return result
