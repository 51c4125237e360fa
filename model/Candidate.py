# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-03
# Description: Candidate
# -----------------------------------------------------------------------------
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Tuple

from model.EmbeddingRecord import EmbeddingRecord, normalize_text
from model.StageResult import StageResult, StageStatus


class CandidateSource(str, Enum):
    RETRIEVED = "retrieved"
    GENERATED = "generated"


@dataclass(frozen=True)
class Candidate:
    """One recommended item, tagged with where it came from."""
    content: str
    path: Tuple[str, ...]
    source: CandidateSource
    level: Optional[int] = None
    difficulty: Optional[int] = None
    record_id: Optional[str] = None
    score: Optional[float] = None

    @property
    def dedup_key(self) -> str:
        return normalize_text(self.content)

    def with_record(self, record: EmbeddingRecord) -> "Candidate":
        return replace(self, record_id=record.id)

    @classmethod
    def from_record(cls, record: EmbeddingRecord, score: Optional[float] = None) -> "Candidate":
        return cls(
            content=record.content,
            path=tuple(record.path),
            source=CandidateSource.RETRIEVED,
            level=record.level,
            difficulty=record.difficulty,
            record_id=record.id,
            score=score,
        )


@dataclass
class RecommendationResult:
    """Merged candidates plus per-stage outcomes for observability."""
    candidates: List[Candidate] = field(default_factory=list)
    stages: Dict[str, StageResult] = field(default_factory=dict)

    @property
    def retrieved_count(self) -> int:
        return sum(1 for c in self.candidates if c.source == CandidateSource.RETRIEVED)

    @property
    def generated_count(self) -> int:
        return sum(1 for c in self.candidates if c.source == CandidateSource.GENERATED)

    @property
    def record_ids(self) -> List[str]:
        return [c.record_id for c in self.candidates if c.record_id]

    def stage_status(self, stage: str) -> Optional[StageStatus]:
        res = self.stages.get(stage)
        return res.status if res is not None else None

    def degraded_stages(self) -> List[str]:
        return [name for name, res in self.stages.items() if res.degraded]

    def summary(self) -> dict:
        return {
            "total": len(self.candidates),
            "retrieved": self.retrieved_count,
            "generated": self.generated_count,
            "stages": {name: res.status.value for name, res in self.stages.items()},
        }
