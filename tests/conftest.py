# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-13
# Description: conftest.py
# -----------------------------------------------------------------------------

import asyncio
import json
import sys
import uuid
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Union

import numpy as np
import pytest

# add project root to sys.path
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from cache.ExclusionCache import InMemoryExclusionCache  # noqa: E402
from generation.GenerativeFallback import GenerativeFallback  # noqa: E402
from model.EmbeddingRecord import EmbeddingRecord, Provenance  # noqa: E402
from retrieval.VectorRetriever import VectorRetriever  # noqa: E402
from services.RecommendationOrchestrator import RecommendationOrchestrator  # noqa: E402
from store.InMemoryRecordStore import InMemoryRecordStore  # noqa: E402

DIM = 64
_FIRST_FREE_AXIS = 8


def vec(*values: float) -> np.ndarray:
    """Vector whose first components are `values`; the rest are zero."""
    v = np.zeros(DIM, dtype=np.float32)
    v[:len(values)] = values
    return v


class ScriptedEmbedder:
    """
    Known texts map to given vectors; every unknown text gets its own unused
    axis, so unknown texts are mutually orthogonal (similarity 0).
    """

    def __init__(self, mapping: Optional[Dict[str, Sequence[float]]] = None, *, fail: bool = False, delay: float = 0.0):
        self.mapping: Dict[str, np.ndarray] = {
            k: (v if isinstance(v, np.ndarray) else vec(*v)) for k, v in (mapping or {}).items()
        }
        self.fail = fail
        self.delay = delay
        self.calls: List[str] = []
        self._next_axis = _FIRST_FREE_AXIS

    async def embed_text(self, text: str) -> np.ndarray:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("embedding service unavailable")
        if text not in self.mapping:
            v = np.zeros(DIM, dtype=np.float32)
            v[self._next_axis] = 1.0
            self._next_axis += 1
            self.mapping[text] = v
        return self.mapping[text]

    async def embed_texts(self, texts: Sequence[str]) -> List[np.ndarray]:
        return [await self.embed_text(t) for t in texts]


Answer = Union[str, Callable[[str], str]]


class ScriptedChat:
    """Returns queued answers in order and records every request."""

    def __init__(self, answers: Optional[List[Answer]] = None, *, fail: Optional[Exception] = None, delay: float = 0.0):
        self.answers: List[Answer] = list(answers or [])
        self.fail = fail
        self.delay = delay
        self.calls: List[dict] = []

    async def simple_chat(self, user_text: str, system_text: Optional[str] = None, **kwargs) -> dict:
        self.calls.append({"user": user_text, "system": system_text, **kwargs})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail is not None:
            raise self.fail
        answer = self.answers.pop(0) if self.answers else "{}"
        if callable(answer):
            answer = answer(user_text)
        return {"answer": answer, "usage": None, "model": "scripted"}


def interests_json(*names: str) -> str:
    return json.dumps({"interests": [{"name": n} for n in names]}, ensure_ascii=False)


def missions_json(*items) -> str:
    """items: (content, difficulty) pairs."""
    return json.dumps(
        {"missions": [{"content": c, "relatedInterest": [], "difficulty": d} for c, d in items]},
        ensure_ascii=False,
    )


def make_record(
        path,
        content: Optional[str] = None,
        *,
        level: Optional[int] = None,
        difficulty: Optional[int] = None,
        vector=None,
        usage: int = 1,
        label: Optional[str] = None,
        active: bool = True,
) -> EmbeddingRecord:
    path = tuple(path)
    if vector is not None and not isinstance(vector, np.ndarray):
        vector = vec(*vector)
    return EmbeddingRecord(
        id=uuid.uuid4().hex,
        path=path,
        content=content if content is not None else path[-1],
        level=level,
        difficulty=difficulty,
        vector=vector,
        usage_count=usage,
        label=label,
        is_active=active,
        provenance=Provenance.SYSTEM_SEEDED,
    )


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def interest_store() -> InMemoryRecordStore:
    return InMemoryRecordStore("interests")


@pytest.fixture
def mission_store() -> InMemoryRecordStore:
    return InMemoryRecordStore("missions")


@pytest.fixture
def embedder() -> ScriptedEmbedder:
    return ScriptedEmbedder()


@pytest.fixture
def chat() -> ScriptedChat:
    return ScriptedChat()


@pytest.fixture
def exclusion_cache() -> InMemoryExclusionCache:
    return InMemoryExclusionCache()


@pytest.fixture
def build_orchestrator(interest_store, mission_store):
    def _build(embedder, chat, *, timeout: float = 2.0) -> RecommendationOrchestrator:
        fallback = GenerativeFallback(chat, timeout=timeout)
        return RecommendationOrchestrator(
            interest_store=interest_store,
            mission_store=mission_store,
            interest_retriever=VectorRetriever(interest_store, embedder, timeout=timeout),
            mission_retriever=VectorRetriever(mission_store, embedder, timeout=timeout),
            fallback=fallback,
            timeout=timeout,
        )

    return _build
