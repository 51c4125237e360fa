# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-14
# Description: test_today_mission_service.py
# -----------------------------------------------------------------------------
import itertools
import json

import pytest

from cache.ExclusionCache import InMemoryExclusionCache
from conftest import ScriptedChat, ScriptedEmbedder, make_record, missions_json
from errors.RecommendationErrors import InvalidRequestError, OwnershipError, RetryLimitExceededError
from model.StageResult import StageStatus
from services.TodayMissionService import TodayMissionService
from store.InMemoryRecordStore import InMemoryRecordStore
from userprofile.ProfileProvider import InMemoryProfileProvider, UserProfile
from userprofile.UserCategoryRegistry import InMemoryUserCategoryRegistry

LEAF = ("운동", "헬스", "근력 키우기")
USER = "user-1"


def fresh_missions():
    """Chat answer producing never-before-seen missions for every difficulty."""
    batch = itertools.count(1)

    def answer(user_text: str) -> str:
        n = next(batch)
        return missions_json(*[(f"근력 미션 {n}-{d}", d) for d in range(1, 6)])

    return answer


class FailingCache:
    async def get(self, user_id, scope_key):
        raise ConnectionError("redis down")

    async def append(self, user_id, scope_key, ids):
        raise ConnectionError("redis down")

    async def increment_retry(self, user_id, scope_key):
        raise ConnectionError("redis down")

    async def retry_count(self, user_id, scope_key):
        raise ConnectionError("redis down")

    async def test_connection(self):
        return False


class UnavailableCatalog(InMemoryRecordStore):
    async def find_by_key(self, path, content):
        raise ConnectionError("catalog down")


@pytest.fixture
def registry():
    reg = InMemoryUserCategoryRegistry()
    reg.register(USER, LEAF)
    return reg


@pytest.fixture
def build_service(build_orchestrator, interest_store, mission_store, registry, exclusion_cache):
    interest_store.seed(make_record(LEAF, level=3))

    def _build(chat, *, embedder=None, cache=None, catalog=None, profiles=None):
        embedder = embedder or ScriptedEmbedder()
        return TodayMissionService(
            build_orchestrator(embedder, chat),
            catalog or interest_store,
            mission_store,
            registry,
            cache or exclusion_cache,
            profiles or InMemoryProfileProvider(),
            ceiling=3,
            timeout=2.0,
        )

    return _build


@pytest.mark.asyncio
async def test_today_then_three_rerolls_never_repeat_a_mission(build_service, exclusion_cache):
    chat = ScriptedChat([fresh_missions()] * 4)
    service = build_service(chat)

    today = await service.recommend_today(USER, list(LEAF))
    assert len(today.candidates) == 5

    seen = set(today.record_ids)
    for _ in range(3):
        result = await service.reroll(USER, list(LEAF))
        assert len(result.candidates) == 5
        assert not seen & set(result.record_ids)
        seen |= set(result.record_ids)

    assert len(seen) == 20
    assert await exclusion_cache.get(USER, "운동 > 헬스 > 근력 키우기") == seen
    # earlier texts are fed back as exclusions
    assert "- 근력 미션 1-1" in chat.calls[1]["user"]
    assert "- 근력 미션 3-5" in chat.calls[3]["user"]


@pytest.mark.asyncio
async def test_fourth_reroll_is_rejected_without_calling_out(build_service):
    chat = ScriptedChat([fresh_missions()] * 3)
    service = build_service(chat)
    for _ in range(3):
        await service.reroll(USER, LEAF)

    with pytest.raises(RetryLimitExceededError) as err:
        await service.reroll(USER, LEAF)

    assert err.value.ceiling == 3
    assert err.value.attempts == 4
    assert len(chat.calls) == 3


@pytest.mark.asyncio
async def test_repeated_generation_is_never_served_twice(build_service):
    same = missions_json(*[(f"같은 미션 {d}", d) for d in range(1, 6)])
    chat = ScriptedChat([same, same])
    service = build_service(chat)

    first = await service.recommend_today(USER, LEAF)
    second = await service.reroll(USER, LEAF)

    assert len(first.candidates) == 5
    assert second.candidates == []
    assert second.stage_status("generation") == StageStatus.EMPTY


@pytest.mark.asyncio
async def test_retrieval_first_serves_catalog_missions_before_generating(build_service, mission_store):
    for d in (1, 2, 3):
        mission_store.seed(make_record(LEAF, f"카탈로그 미션 {d}", difficulty=d, vector=(1, 0.1 * d)))
    chat = ScriptedChat([fresh_missions()])
    service = build_service(chat, embedder=ScriptedEmbedder({"운동 > 헬스 > 근력 키우기": (1, 0)}))

    result = await service.recommend_today(USER, LEAF)

    assert result.retrieved_count == 3
    assert result.generated_count == 2
    assert "난이도 4, 5 각각 1개씩" in chat.calls[0]["user"]


@pytest.mark.asyncio
async def test_reroll_keeps_requested_difficulties(build_service):
    chat = ScriptedChat([fresh_missions()])
    service = build_service(chat)

    result = await service.reroll(USER, LEAF, keep_difficulties=[1, 2])

    assert sorted(c.difficulty for c in result.candidates) == [3, 4, 5]
    assert "난이도 3, 4, 5 각각 1개씩, 총 3개의 미션을 생성하세요." in chat.calls[0]["user"]


@pytest.mark.asyncio
async def test_keeping_every_difficulty_is_invalid(build_service):
    chat = ScriptedChat()
    with pytest.raises(InvalidRequestError):
        await build_service(chat).reroll(USER, LEAF, keep_difficulties=[1, 2, 3, 4, 5])
    assert chat.calls == []


@pytest.mark.asyncio
async def test_active_missions_and_profile_shape_the_prompt(build_service):
    chat = ScriptedChat([fresh_missions()])
    profiles = InMemoryProfileProvider({USER: UserProfile(age=29, gender="FEMALE", job_name="개발자")})
    service = build_service(chat, profiles=profiles)

    await service.recommend_today(USER, LEAF, active_mission_texts=["플랭크 1분"])

    user_text = chat.calls[0]["user"]
    assert "- 플랭크 1분" in user_text
    assert "사용자 정보: 29세, 여성" in user_text
    assert "직업: 개발자" in user_text


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "user, path, error",
    [
        (USER, ("운동", "헬스"), InvalidRequestError),
        (USER, ("운동", "헬스", "없는 카테고리"), InvalidRequestError),
        ("someone-else", LEAF, OwnershipError),
    ],
)
async def test_bad_category_is_rejected_before_any_call(build_service, user, path, error):
    embedder, chat = ScriptedEmbedder(), ScriptedChat()
    service = build_service(chat, embedder=embedder)

    with pytest.raises(error):
        await service.recommend_today(user, path)
    with pytest.raises(error):
        await service.reroll(user, path)

    assert embedder.calls == [] and chat.calls == []


@pytest.mark.asyncio
async def test_inactive_category_is_rejected(build_service, interest_store, registry):
    path = ("운동", "헬스", "폐지된 카테고리")
    interest_store.seed(make_record(path, level=3, active=False))
    registry.register(USER, path)

    with pytest.raises(InvalidRequestError):
        await build_service(ScriptedChat()).recommend_today(USER, path)


@pytest.mark.asyncio
async def test_unavailable_catalog_accepts_leaf_depth(build_service):
    chat = ScriptedChat([fresh_missions()])
    service = build_service(chat, catalog=UnavailableCatalog())

    result = await service.recommend_today(USER, LEAF)

    assert len(result.candidates) == 5


@pytest.mark.asyncio
async def test_unavailable_cache_degrades_but_still_serves(build_service):
    chat = ScriptedChat([fresh_missions(), fresh_missions()])
    service = build_service(chat, cache=FailingCache())

    today = await service.recommend_today(USER, LEAF)
    reroll = await service.reroll(USER, LEAF)

    assert len(today.candidates) == 5
    assert len(reroll.candidates) == 5
    assert reroll.stage_status("retry_counter") == StageStatus.FAILED
    assert reroll.stage_status("exclusion_read") == StageStatus.FAILED
    assert reroll.stage_status("exclusion_write") == StageStatus.FAILED


@pytest.mark.asyncio
async def test_stage_report_is_json_friendly(build_service):
    service = build_service(ScriptedChat([fresh_missions()]))

    result = await service.recommend_today(USER, LEAF)

    summary = json.loads(json.dumps(result.summary()))
    assert set(summary["stages"]) == {
        "exclusion_read", "retrieval", "generation", "persist", "exclusion_write",
    }
    assert summary["stages"]["generation"] == "ok"
    assert summary["generated"] == 5
    assert result.degraded_stages() == []
