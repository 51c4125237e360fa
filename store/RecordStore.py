# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-05
# Description: RecordStore
# -----------------------------------------------------------------------------

from typing import List, Optional, Protocol, Sequence, Tuple, runtime_checkable

import numpy as np

from model.EmbeddingRecord import EmbeddingRecord, Provenance, ScopeFilter, ScoredRecord, UpsertResult


@runtime_checkable
class RecordStore(Protocol):
    """
    Catalog of canonical entries keyed by (path, content).

    Implementations must make `upsert` atomic: concurrent writers on the same
    key end with one record whose usage_count equals the number of upserts.
    """

    async def test_connection(self) -> bool:
        ...

    async def upsert(
            self,
            path: Sequence[str],
            content: str,
            *,
            level: Optional[int] = None,
            difficulty: Optional[int] = None,
            provenance: Provenance = Provenance.GENERATED,
    ) -> UpsertResult:
        ...

    async def get(self, record_id: str) -> Optional[EmbeddingRecord]:
        ...

    async def get_many(self, record_ids: Sequence[str]) -> List[EmbeddingRecord]:
        ...

    async def find_by_key(self, path: Sequence[str], content: str) -> Optional[EmbeddingRecord]:
        ...

    async def increment_usage(self, record_id: str) -> int:
        ...

    async def set_vector(self, record_id: str, vector: np.ndarray) -> None:
        ...

    async def set_label(
            self,
            record_id: str,
            label: str,
            vector: Optional[np.ndarray] = None,
    ) -> Optional[str]:
        """Write the label only if empty; returns the label the record ends up with."""
        ...

    async def deactivate(self, record_id: str) -> bool:
        ...

    async def search(
            self,
            query_vector: np.ndarray,
            scope: ScopeFilter,
            top_k: int,
            min_score: float,
    ) -> List[ScoredRecord]:
        """Active, embedded records in scope, cosine similarity descending, >= min_score."""
        ...

    async def popular(self, scope: ScopeFilter, top_k: int) -> List[EmbeddingRecord]:
        ...

    async def max_usage(self, scope: ScopeFilter) -> int:
        ...

    async def list_unlabeled(self, limit: int, embedded_only: bool = True) -> List[EmbeddingRecord]:
        ...


def key_of(path: Sequence[str], content: str) -> Tuple[Tuple[str, ...], str]:
    return tuple(path), content
