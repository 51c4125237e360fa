# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-03
# Description: EmbeddingRecord
# -----------------------------------------------------------------------------
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import FrozenSet, Iterable, Optional, Tuple

import numpy as np

from errors.RecommendationErrors import InvalidRequestError

MAX_PATH_DEPTH = 3
PATH_SEPARATOR = " > "


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Provenance(str, Enum):
    SYSTEM_SEEDED = "SYSTEM"
    USER_AUTHORED = "USER"
    GENERATED = "AI"


class CategoryLevel(IntEnum):
    MAIN = 1
    MIDDLE = 2
    SUB = 3


def normalize_text(text: str) -> str:
    """Case/whitespace-insensitive form used for text deduplication."""
    return " ".join((text or "").split()).casefold()


def normalize_path(path: Iterable[str]) -> Tuple[str, ...]:
    """
    Strip every segment and validate the 1..3 depth rule.
    Raises InvalidRequestError on empty paths, blank segments or depth > 3.
    """
    if isinstance(path, str):
        raise InvalidRequestError("path must be a sequence of segments, not a string")

    cleaned = tuple((p or "").strip() for p in path)
    if not cleaned:
        raise InvalidRequestError("path must not be empty")
    if any(not p for p in cleaned):
        raise InvalidRequestError(f"path contains a blank segment: {list(cleaned)}")
    if len(cleaned) > MAX_PATH_DEPTH:
        raise InvalidRequestError(f"path depth must be <= {MAX_PATH_DEPTH}, got {len(cleaned)}")
    return cleaned


def path_to_string(path: Iterable[str]) -> str:
    return PATH_SEPARATOR.join(path)


def build_embedding_text(path: Iterable[str], content: str) -> str:
    """
    Context-qualified text that gets embedded for a record.

    Category records carry their own name as the last path segment, so the
    path alone is the text. Mission records are qualified with their category
    path so identical sentences under different categories may diverge.
    """
    path = tuple(path)
    if not path:
        return content
    if path[-1] == content:
        return path_to_string(path)
    return f"{path_to_string(path)} : {content}"


@dataclass
class EmbeddingRecord:
    """Canonical catalog entry (category name or mission sentence) + optional vector."""
    id: str
    path: Tuple[str, ...]
    content: str
    level: Optional[int] = None
    difficulty: Optional[int] = None
    vector: Optional[np.ndarray] = None
    usage_count: int = 0
    label: Optional[str] = None
    is_active: bool = True
    provenance: Provenance = Provenance.GENERATED
    created_at: datetime = field(default_factory=utc_now)
    updated_at: Optional[datetime] = None

    @property
    def has_vector(self) -> bool:
        return self.vector is not None

    @property
    def key(self) -> Tuple[Tuple[str, ...], str]:
        return self.path, self.content

    def embedding_text(self) -> str:
        return build_embedding_text(self.path, self.content)

    def short_preview(self, n: int = 60) -> str:
        clean = " ".join(self.content.split())
        preview = (clean[:n] + "...") if len(clean) > n else clean
        return f"[{path_to_string(self.path)}] {preview}"


@dataclass(frozen=True)
class ScopeFilter:
    """
    Restricts which records a query may return.
    Inactive records never match.
    """
    level: Optional[int] = None
    path_prefix: Tuple[str, ...] = ()
    difficulties: Optional[FrozenSet[int]] = None
    labeled_only: bool = False
    exclude_ids: FrozenSet[str] = frozenset()

    def matches(self, record: EmbeddingRecord) -> bool:
        if not record.is_active:
            return False
        if self.level is not None and record.level != self.level:
            return False
        if self.path_prefix and tuple(record.path[:len(self.path_prefix)]) != tuple(self.path_prefix):
            return False
        if self.difficulties is not None and record.difficulty not in self.difficulties:
            return False
        if self.labeled_only and not record.label:
            return False
        if record.id in self.exclude_ids:
            return False
        return True


@dataclass(frozen=True)
class ScoredRecord:
    record: EmbeddingRecord
    similarity: float
    score: float


@dataclass(frozen=True)
class UpsertResult:
    record: EmbeddingRecord
    created: bool
