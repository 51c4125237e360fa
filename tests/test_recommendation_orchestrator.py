# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-13
# Description: test_recommendation_orchestrator.py
# -----------------------------------------------------------------------------
import pytest

from conftest import ScriptedChat, ScriptedEmbedder, interests_json, make_record, missions_json
from errors.RecommendationErrors import InvalidRequestError
from model.Candidate import Candidate, CandidateSource
from model.EmbeddingRecord import Provenance
from model.StageResult import StageStatus
from services.RecommendationOrchestrator import Strategy, merge_candidates, validate_difficulties

LEAF = ("운동", "헬스", "근력 키우기")


def _seed_main_categories(store):
    usage = {"운동": 7, "공부": 6, "독서": 5, "요리": 4, "음악": 3, "여행": 2, "게임": 1}
    return {name: store.seed(make_record([name], level=1, usage=u)) for name, u in usage.items()}


# -----------------------------------------------------------------------------
# Interests
# -----------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_cold_start_is_served_from_popularity_without_generation(build_orchestrator, interest_store):
    _seed_main_categories(interest_store)
    embedder, chat = ScriptedEmbedder(), ScriptedChat()
    orch = build_orchestrator(embedder, chat)

    result = await orch.recommend_interests([], 1, 5)

    assert [c.content for c in result.candidates] == ["운동", "공부", "독서", "요리", "음악"]
    assert result.retrieved_count == 5
    assert result.generated_count == 0
    assert chat.calls == []
    assert embedder.calls == []
    assert result.stage_status("generation") == StageStatus.SKIPPED


@pytest.mark.asyncio
async def test_empty_catalog_falls_back_to_generation_and_persists(build_orchestrator, interest_store):
    names = ("헬스", "요가", "필라테스", "수영", "등산")
    chat = ScriptedChat([interests_json(*names)])
    orch = build_orchestrator(ScriptedEmbedder(), chat)

    result = await orch.recommend_interests([["운동"]], 2, 5)

    assert [c.content for c in result.candidates] == list(names)
    assert result.generated_count == 5
    assert len(chat.calls) == 1
    assert "정확히 5개만 추천해주세요." in chat.calls[0]["user"]
    assert result.stage_status("retrieval") == StageStatus.EMPTY

    stored = interest_store.all_records()
    assert sorted(r.path for r in stored) == sorted(("운동", n) for n in names)
    assert all(r.vector is None and r.level == 2 for r in stored)
    assert all(r.provenance == Provenance.GENERATED for r in stored)
    assert set(result.record_ids) == {r.id for r in stored}


@pytest.mark.asyncio
async def test_partial_catalog_generates_only_the_shortfall(build_orchestrator, interest_store):
    seeded = [
        interest_store.seed(make_record(["운동", name], level=2, vector=(1, 0)))
        for name in ("헬스", "요가", "필라테스")
    ]
    chat = ScriptedChat([interests_json("헬스", "수영", "등산")])
    orch = build_orchestrator(ScriptedEmbedder({"운동": (1, 0)}), chat)

    result = await orch.recommend_interests([["운동"]], 2, 5)

    assert len(chat.calls) == 1
    user_text = chat.calls[0]["user"]
    assert "정확히 2개만 추천해주세요." in user_text
    for rec in seeded:
        assert f"- {rec.content}" in user_text

    assert [c.content for c in result.candidates] == ["헬스", "요가", "필라테스", "수영", "등산"]
    assert [c.source for c in result.candidates] == [CandidateSource.RETRIEVED] * 3 + [CandidateSource.GENERATED] * 2
    assert len(interest_store.all_records()) == 5


@pytest.mark.asyncio
async def test_regenerating_a_known_name_reuses_its_record(build_orchestrator, interest_store):
    chat = ScriptedChat([interests_json("헬스"), interests_json("헬스")])
    orch = build_orchestrator(ScriptedEmbedder(), chat)

    first = await orch.recommend_interests([["운동"]], 2, 1)
    second = await orch.recommend_interests([["운동"]], 2, 1)

    assert first.record_ids == second.record_ids
    (record,) = interest_store.all_records()
    assert record.usage_count == 2


@pytest.mark.asyncio
async def test_every_dependency_down_yields_empty_result_not_error(build_orchestrator):
    orch = build_orchestrator(ScriptedEmbedder(fail=True), ScriptedChat(fail=ConnectionError("down")))

    result = await orch.recommend_interests([["운동"]], 2, 5)

    assert result.candidates == []
    assert result.stage_status("retrieval") == StageStatus.FAILED
    assert result.stage_status("generation") == StageStatus.FAILED
    assert result.stage_status("persist") == StageStatus.SKIPPED
    assert result.degraded_stages() == ["retrieval", "generation"]


@pytest.mark.asyncio
async def test_retrieval_failure_still_generates_full_count(build_orchestrator):
    chat = ScriptedChat([interests_json("헬스", "요가", "수영")])
    orch = build_orchestrator(ScriptedEmbedder(fail=True), chat)

    result = await orch.recommend_interests([["운동"]], 2, 3)

    assert result.generated_count == 3
    assert "정확히 3개만 추천해주세요." in chat.calls[0]["user"]


@pytest.mark.asyncio
async def test_excluded_ids_and_texts_never_come_back(build_orchestrator, interest_store):
    records = _seed_main_categories(interest_store)
    orch = build_orchestrator(ScriptedEmbedder(), ScriptedChat())

    result = await orch.recommend_interests(
        [], 1, 3, exclusion_ids=[records["운동"].id], exclusion_texts=["공부"]
    )

    contents = [c.content for c in result.candidates]
    assert "운동" not in contents
    assert "공부" not in contents
    assert contents[:2] == ["독서", "요리"]


@pytest.mark.asyncio
async def test_zero_count_returns_empty_without_calls(build_orchestrator):
    embedder, chat = ScriptedEmbedder(), ScriptedChat()
    result = await build_orchestrator(embedder, chat).recommend_interests([["운동"]], 2, 0)

    assert result.candidates == []
    assert embedder.calls == [] and chat.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "paths, level",
    [
        ([], 2),
        ([["운동"]], 4),
        ([["운동"]], 0),
        ([["운동"]], 3),
        ([["a", "b", "c", "d"]], 2),
    ],
)
async def test_invalid_interest_requests_fail_before_any_call(build_orchestrator, paths, level):
    embedder, chat = ScriptedEmbedder(), ScriptedChat()
    orch = build_orchestrator(embedder, chat)

    with pytest.raises(InvalidRequestError):
        await orch.recommend_interests(paths, level, 5)

    assert embedder.calls == [] and chat.calls == []


@pytest.mark.asyncio
async def test_per_category_runs_one_pipeline_per_parent(build_orchestrator):
    def answer(user_text: str) -> str:
        if "'운동'의" in user_text:
            return interests_json("헬스", "요가")
        return interests_json("영어", "수학")

    chat = ScriptedChat([answer, answer])
    orch = build_orchestrator(ScriptedEmbedder(), chat)

    results = await orch.recommend_interests_per_category([["운동"], ["공부"]], 2)

    assert set(results) == {("운동",), ("공부",)}
    assert [c.path for c in results[("운동",)].candidates] == [("운동", "헬스"), ("운동", "요가")]
    assert [c.path for c in results[("공부",)].candidates] == [("공부", "영어"), ("공부", "수학")]
    assert len(chat.calls) == 2


@pytest.mark.asyncio
async def test_per_category_rejects_leaf_paths(build_orchestrator):
    chat = ScriptedChat()
    with pytest.raises(InvalidRequestError):
        await build_orchestrator(ScriptedEmbedder(), chat).recommend_interests_per_category([["운동"], list(LEAF)])
    assert chat.calls == []


# -----------------------------------------------------------------------------
# Missions
# -----------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_missions_generate_only_uncovered_difficulties(build_orchestrator, mission_store):
    mission_store.seed(make_record(LEAF, "스트레칭 5분", difficulty=1, vector=(1, 0.5)))
    mission_store.seed(make_record(LEAF, "스쿼트 20회", difficulty=2, vector=(1, 0.2)))
    chat = ScriptedChat([missions_json(("런지 30회", 3), ("버피 30회", 4), ("스쿼트 100회", 5))])
    orch = build_orchestrator(ScriptedEmbedder({"운동 > 헬스 > 근력 키우기": (1, 0)}), chat)

    result = await orch.recommend_missions(LEAF)

    assert [(c.difficulty, c.source) for c in result.candidates] == [
        (1, CandidateSource.RETRIEVED),
        (2, CandidateSource.RETRIEVED),
        (3, CandidateSource.GENERATED),
        (4, CandidateSource.GENERATED),
        (5, CandidateSource.GENERATED),
    ]
    user_text = chat.calls[0]["user"]
    assert "난이도 3, 4, 5 각각 1개씩, 총 3개의 미션을 생성하세요." in user_text
    assert "- 스트레칭 5분" in user_text
    assert all(c.record_id for c in result.candidates)
    assert len(mission_store.all_records()) == 5


@pytest.mark.asyncio
async def test_mission_retrieval_is_capped_by_ratio(build_orchestrator, mission_store):
    for d in (1, 2, 3, 4, 5):
        mission_store.seed(make_record(LEAF, f"미션 {d}", difficulty=d, vector=(1, 0.1 * d)))
    chat = ScriptedChat([missions_json(("새 미션 4", 4), ("새 미션 5", 5))])
    orch = build_orchestrator(ScriptedEmbedder({"운동 > 헬스 > 근력 키우기": (1, 0)}), chat)

    result = await orch.recommend_missions(LEAF)

    assert result.retrieved_count == 3
    assert result.generated_count == 2
    assert sorted(c.difficulty for c in result.candidates) == [1, 2, 3, 4, 5]


@pytest.mark.asyncio
async def test_missions_from_a_sibling_sub_category_are_reused(build_orchestrator, mission_store):
    jogging = ("운동", "러닝", "조깅")
    siblings = [
        mission_store.seed(make_record(jogging, f"조깅 미션 {d}", difficulty=d, vector=(1, 0)))
        for d in (1, 2, 3)
    ]
    mission_store.seed(make_record(("공부", "영어", "단어"), "단어 20개 외우기", difficulty=4, vector=(1, 0)))
    chat = ScriptedChat([missions_json(("하프 마라톤 완주", 4), ("풀 마라톤 완주", 5))])
    orch = build_orchestrator(ScriptedEmbedder({"운동 > 러닝 > 마라톤": (1, 0.05)}), chat)

    result = await orch.recommend_missions(("운동", "러닝", "마라톤"))

    assert result.retrieved_count == 3
    assert result.generated_count == 2
    retrieved = [c for c in result.candidates if c.source == CandidateSource.RETRIEVED]
    assert [c.record_id for c in retrieved] == [r.id for r in siblings]
    assert all(c.path == jogging for c in retrieved)
    assert "난이도 4, 5 각각 1개씩, 총 2개의 미션을 생성하세요." in chat.calls[0]["user"]


@pytest.mark.asyncio
async def test_generation_first_skips_retrieval(build_orchestrator, mission_store):
    mission_store.seed(make_record(LEAF, "스트레칭 5분", difficulty=1, vector=(1, 0)))
    embedder = ScriptedEmbedder({"운동 > 헬스 > 근력 키우기": (1, 0)})
    chat = ScriptedChat([missions_json(("폼롤러 10분", 1), ("팔굽혀펴기 15회", 2))])
    orch = build_orchestrator(embedder, chat)

    result = await orch.recommend_missions(
        LEAF, [1, 2], strategy=Strategy.GENERATION_FIRST, exclusion_texts=["스트레칭 5분"]
    )

    assert embedder.calls == []
    assert result.stage_status("retrieval") == StageStatus.SKIPPED
    assert [c.content for c in result.candidates] == ["폼롤러 10분", "팔굽혀펴기 15회"]
    assert "- 스트레칭 5분" in chat.calls[0]["user"]


@pytest.mark.asyncio
@pytest.mark.parametrize("difficulties", [[], [0], [6], [1, 9]])
async def test_invalid_difficulties_are_rejected(build_orchestrator, difficulties):
    chat = ScriptedChat()
    with pytest.raises(InvalidRequestError):
        await build_orchestrator(ScriptedEmbedder(), chat).recommend_missions(LEAF, difficulties)
    assert chat.calls == []


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def test_merge_candidates_dedups_on_normalized_text_and_truncates():
    retrieved = [Candidate("헬스", ("운동", "헬스"), CandidateSource.RETRIEVED, record_id="r1")]
    generated = [
        Candidate(" 헬스 ", ("운동", " 헬스 "), CandidateSource.GENERATED),
        Candidate("Yoga", ("운동", "Yoga"), CandidateSource.GENERATED),
        Candidate("yoga", ("운동", "yoga"), CandidateSource.GENERATED),
        Candidate("수영", ("운동", "수영"), CandidateSource.GENERATED),
    ]

    merged = merge_candidates(retrieved, generated, 2)

    assert [c.content for c in merged] == ["헬스", "Yoga"]
    assert merged[0].source == CandidateSource.RETRIEVED


def test_validate_difficulties_sorts_and_dedups():
    assert validate_difficulties([3, 1, 3]) == (1, 3)
