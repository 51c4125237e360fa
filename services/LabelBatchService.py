# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-11
# Description: LabelBatchService
# -----------------------------------------------------------------------------
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

import settings
from model.StageResult import run_stage
from services.LabelEngine import LabelDecision, LabelEngine
from store.RecordStore import RecordStore
from utility.logging_utils import get_class_logger


@dataclass
class LabelBatchResult:
    processed: int = 0
    existing: int = 0
    reused: int = 0
    generated: int = 0
    failed: int = 0
    label_counts: Counter = field(default_factory=Counter)

    def record(self, decision: LabelDecision, label: Optional[str]) -> None:
        self.processed += 1
        if decision == LabelDecision.EXISTING:
            self.existing += 1
        elif decision == LabelDecision.REUSED:
            self.reused += 1
        elif decision == LabelDecision.GENERATED:
            self.generated += 1
        else:
            self.failed += 1
        if label:
            self.label_counts[label] += 1

    def summary(self) -> dict:
        return {
            "processed": self.processed,
            "existing": self.existing,
            "reused": self.reused,
            "generated": self.generated,
            "failed": self.failed,
            "top_labels": self.label_counts.most_common(10),
        }


class LabelBatchService:
    """
    One pass over selected (embedded) mission records that still lack a
    label. Records are handled one at a time so a label written early in the
    pass can be reused by a near-duplicate later in the same pass.
    """

    def __init__(self, store: RecordStore, engine: LabelEngine, *, logger=None):
        self.store = store
        self.engine = engine
        self.logger = logger or get_class_logger(self.__class__)

    async def run(self, limit: int = settings.LABEL_BATCH_SIZE) -> LabelBatchResult:
        result = LabelBatchResult()
        records = await self.store.list_unlabeled(limit, embedded_only=True)
        self.logger.info("Label batch starting: %d unlabeled record(s)", len(records))

        for record in records:
            outcome = await run_stage("label_record", self.engine.canonicalize(record), timeout=None, logger=self.logger)
            if outcome.degraded or not outcome.items:
                result.record(LabelDecision.FAILED, None)
                continue
            label_outcome = outcome.items[0]
            result.record(label_outcome.decision, label_outcome.label)

        self.logger.info("Label batch finished: %s", result.summary())
        return result
