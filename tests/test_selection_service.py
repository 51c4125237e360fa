# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-14
# Description: test_selection_service.py
# -----------------------------------------------------------------------------
import numpy as np
import pytest

from conftest import ScriptedChat, ScriptedEmbedder, interests_json, make_record
from errors.RecommendationErrors import InvalidRequestError, OwnershipError
from model.Candidate import CandidateSource
from model.EmbeddingRecord import Provenance
from model.StageResult import StageStatus
from services.SelectionService import SelectionService
from userprofile.UserCategoryRegistry import InMemoryUserCategoryRegistry

LEAF = ("운동", "헬스", "근력 키우기")
USER = "user-1"


@pytest.fixture
def registry():
    reg = InMemoryUserCategoryRegistry()
    reg.register(USER, LEAF)
    return reg


@pytest.fixture
def build_selection(interest_store, mission_store, registry):
    def _build(embedder) -> SelectionService:
        return SelectionService(interest_store, mission_store, embedder, registry, timeout=2.0)

    return _build


@pytest.mark.asyncio
async def test_first_selection_embeds_and_later_ones_only_count(build_selection, interest_store):
    rec = interest_store.seed(make_record(["운동", "헬스"], level=2))
    embedder = ScriptedEmbedder({"운동 > 헬스": (1, 0)})
    service = build_selection(embedder)

    first = await service.select_interest(rec.id)
    second = await service.select_interest(rec.id)

    assert (first.usage_count, first.embedded) == (2, True)
    assert first.embedding.status == StageStatus.OK
    assert (second.usage_count, second.embedded) == (3, True)
    assert second.embedding.status == StageStatus.SKIPPED
    assert embedder.calls == ["운동 > 헬스"]
    assert np.allclose((await interest_store.get(rec.id)).vector, embedder.mapping["운동 > 헬스"])


@pytest.mark.asyncio
async def test_embedding_failure_is_retried_on_next_selection(build_selection, interest_store):
    rec = interest_store.seed(make_record(["운동", "헬스"], level=2))
    embedder = ScriptedEmbedder(fail=True)
    service = build_selection(embedder)

    failed = await service.select_interest(rec.id)
    assert failed.embedded is False
    assert failed.embedding.status == StageStatus.FAILED
    assert failed.usage_count == 2
    assert (await interest_store.get(rec.id)).vector is None

    embedder.fail = False
    retried = await service.select_interest(rec.id)
    assert retried.embedded is True
    assert (await interest_store.get(rec.id)).vector is not None


@pytest.mark.asyncio
async def test_generated_then_selected_interest_becomes_retrievable(
        build_orchestrator, build_selection, interest_store
):
    embedder = ScriptedEmbedder({"운동": (1, 0), "운동 > 헬스": (1, 0)})
    chat = ScriptedChat([interests_json("헬스", "요가"), interests_json("요가", "필라테스")])
    orch = build_orchestrator(embedder, chat)

    first = await orch.recommend_interests([["운동"]], 2, 2)
    assert first.generated_count == 2

    health = next(c for c in first.candidates if c.content == "헬스")
    await build_selection(embedder).select_interest(health.record_id)

    second = await orch.recommend_interests([["운동"]], 2, 2)

    assert [(c.content, c.source) for c in second.candidates] == [
        ("헬스", CandidateSource.RETRIEVED),
        ("요가", CandidateSource.GENERATED),
    ]
    assert second.candidates[0].record_id == health.record_id
    assert "- 헬스" in chat.calls[1]["user"]


@pytest.mark.asyncio
async def test_unknown_or_inactive_record_cannot_be_selected(build_selection, interest_store):
    gone = interest_store.seed(make_record(["게임"], level=1, active=False))
    service = build_selection(ScriptedEmbedder())

    with pytest.raises(InvalidRequestError):
        await service.select_interest("missing")
    with pytest.raises(InvalidRequestError):
        await service.select_interest(gone.id)


@pytest.mark.asyncio
async def test_mission_selection_requires_registered_category(build_selection, mission_store):
    own = mission_store.seed(make_record(LEAF, "스쿼트 20회", difficulty=2))
    other = mission_store.seed(make_record(("공부", "영어", "단어"), "단어 20개 외우기", difficulty=1))
    embedder = ScriptedEmbedder()
    service = build_selection(embedder)

    outcome = await service.select_mission(USER, own.id)
    assert outcome.embedded is True
    assert embedder.calls == ["운동 > 헬스 > 근력 키우기 : 스쿼트 20회"]

    with pytest.raises(OwnershipError):
        await service.select_mission(USER, other.id)
    assert (await mission_store.get(other.id)).usage_count == 1


@pytest.mark.asyncio
async def test_sibling_mission_is_selected_against_the_requested_category(build_selection, mission_store):
    sibling = mission_store.seed(make_record(("운동", "러닝", "조깅"), "30분 조깅하기", difficulty=2))
    foreign = mission_store.seed(make_record(("공부", "영어", "단어"), "단어 20개 외우기", difficulty=1))
    service = build_selection(ScriptedEmbedder())

    with pytest.raises(OwnershipError):
        await service.select_mission(USER, sibling.id)

    outcome = await service.select_mission(USER, sibling.id, category_path=list(LEAF))
    assert outcome.usage_count == 2

    with pytest.raises(InvalidRequestError):
        await service.select_mission(USER, foreign.id, category_path=LEAF)
    assert (await mission_store.get(foreign.id)).usage_count == 1


@pytest.mark.asyncio
async def test_author_interest_path_upserts_every_prefix(build_selection, interest_store):
    service = build_selection(ScriptedEmbedder())

    results = await service.author_interest_path([" 운동 ", "헬스", "근력 키우기"])
    again = await service.author_interest_path(["운동", "헬스"])

    assert [r.record.path for r in results] == [("운동",), ("운동", "헬스"), LEAF]
    assert [r.record.level for r in results] == [1, 2, 3]
    assert all(r.created and r.record.provenance == Provenance.USER_AUTHORED for r in results)
    assert [r.created for r in again] == [False, False]
    assert all(r.vector is None for r in interest_store.all_records())


@pytest.mark.asyncio
async def test_author_mission_validates_before_writing(build_selection, mission_store):
    service = build_selection(ScriptedEmbedder())

    with pytest.raises(InvalidRequestError):
        await service.author_mission(USER, LEAF, "스쿼트 20회", 6)
    with pytest.raises(InvalidRequestError):
        await service.author_mission(USER, LEAF, "  ", 2)
    with pytest.raises(OwnershipError):
        await service.author_mission("someone-else", LEAF, "스쿼트 20회", 2)
    assert mission_store.all_records() == []

    created = await service.author_mission(USER, LEAF, "스쿼트 20회", 2)
    assert created.created is True
    assert created.record.provenance == Provenance.USER_AUTHORED
    assert created.record.vector is None
