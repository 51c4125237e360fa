# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-03
# Description: StageResult
# -----------------------------------------------------------------------------
import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Generic, List, Optional, TypeVar

from pydantic import ValidationError

from errors.RecommendationErrors import RecommendationError

T = TypeVar("T")


class StageStatus(str, Enum):
    OK = "ok"
    EMPTY = "empty"
    SKIPPED = "skipped"
    FAILED = "failed"
    TIMEOUT = "timeout"
    PARSE_ERROR = "parse_error"


DEGRADED_STATUSES = frozenset({StageStatus.FAILED, StageStatus.TIMEOUT, StageStatus.PARSE_ERROR})


class PayloadError(ValueError):
    """Generative service answered with something outside the agreed contract."""


@dataclass
class StageResult(Generic[T]):
    """
    Outcome of one pipeline stage.

    Infrastructure failures never escape a stage: they become a result with
    no items and a degraded status, so callers can tell an empty-but-healthy
    stage from a broken one.
    """
    stage: str
    status: StageStatus
    items: List[T] = field(default_factory=list)
    reason: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.status in DEGRADED_STATUSES

    @classmethod
    def success(cls, stage: str, items: List[T]) -> "StageResult[T]":
        items = list(items)
        return cls(stage=stage, status=StageStatus.OK if items else StageStatus.EMPTY, items=items)

    @classmethod
    def skipped(cls, stage: str, reason: str) -> "StageResult[T]":
        return cls(stage=stage, status=StageStatus.SKIPPED, reason=reason)

    @classmethod
    def failure(cls, stage: str, status: StageStatus, reason: str) -> "StageResult[T]":
        return cls(stage=stage, status=status, reason=reason)


async def run_stage(
        stage: str,
        awaitable: Awaitable[Any],
        *,
        timeout: Optional[float],
        logger: logging.Logger,
) -> StageResult:
    """
    Await one external-facing step under a bounded timeout and fold every
    infrastructure/contract failure into a StageResult.

    Policy errors (RecommendationError) are not infrastructure failures and
    propagate unchanged.
    """
    try:
        if timeout is not None:
            value = await asyncio.wait_for(awaitable, timeout=timeout)
        else:
            value = await awaitable
    except asyncio.TimeoutError:
        logger.warning("Stage '%s' timed out after %.1fs", stage, timeout or 0.0)
        return StageResult.failure(stage, StageStatus.TIMEOUT, f"timed out after {timeout}s")
    except RecommendationError:
        raise
    except (ValidationError, PayloadError, json.JSONDecodeError) as e:
        logger.warning("Stage '%s' got a non-conforming payload: %s", stage, e)
        return StageResult.failure(stage, StageStatus.PARSE_ERROR, str(e))
    except Exception as e:
        logger.error("Stage '%s' failed: %s", stage, e, exc_info=True)
        return StageResult.failure(stage, StageStatus.FAILED, f"{type(e).__name__}: {e}")

    if isinstance(value, StageResult):
        return value
    if value is None:
        return StageResult.success(stage, [])
    if isinstance(value, (list, tuple)):
        return StageResult.success(stage, list(value))
    return StageResult.success(stage, [value])
