# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-07
# Description: PayloadSchemas
# -----------------------------------------------------------------------------
import re
from typing import List, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field

import settings
from model.StageResult import PayloadError

M = TypeVar("M", bound=BaseModel)

_FENCE_OPEN = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```")


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, populate_by_name=True)


class InterestItem(_Payload):
    name: str = Field(min_length=1)


class InterestPayload(_Payload):
    interests: List[InterestItem]


class MissionItem(_Payload):
    content: str = Field(min_length=1)
    related_interest: List[str] = Field(default_factory=list, alias="relatedInterest")
    difficulty: int = Field(ge=1, le=5)


class MissionPayload(_Payload):
    missions: List[MissionItem]


class LabelPayload(_Payload):
    label: str = Field(min_length=1, max_length=settings.LABEL_MAX_CHARS)


def extract_json(raw: str) -> str:
    """
    Strip markdown code fences and any chatter around the outermost JSON
    object. Raises PayloadError when no object is present at all.
    """
    text = (raw or "").strip()
    text = _FENCE_OPEN.sub("", text)
    text = _FENCE_CLOSE.sub("", text).strip()

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise PayloadError(f"no JSON object in response: {text[:80]!r}")
    return text[start:end + 1]


def parse_payload(raw: str, model: Type[M]) -> M:
    """Fence-strip then validate; pydantic.ValidationError on contract mismatch."""
    return model.model_validate_json(extract_json(raw))
