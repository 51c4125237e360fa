# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-04
# Description: ProfileProvider
# -----------------------------------------------------------------------------
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, runtime_checkable

_GENDER_LABELS = {"MALE": "남성", "FEMALE": "여성"}


@dataclass(frozen=True)
class UserProfile:
    """Only used to condition prompts; every field is optional."""
    age: Optional[int] = None
    gender: Optional[str] = None
    job_name: Optional[str] = None
    job_detail_name: Optional[str] = None
    bio: Optional[str] = None

    def to_prompt_lines(self) -> List[str]:
        lines: List[str] = []
        basics: List[str] = []
        if self.age is not None:
            basics.append(f"{self.age}세")
        if self.gender:
            basics.append(_GENDER_LABELS.get(self.gender.upper(), self.gender))
        if basics:
            lines.append(f"사용자 정보: {', '.join(basics)}")
        if self.job_detail_name:
            lines.append(f"직업상세: {self.job_detail_name}")
        elif self.job_name:
            lines.append(f"직업: {self.job_name}")
        if self.bio and self.bio.strip():
            lines.append(f"자기소개: {self.bio.strip()}")
        return lines


@runtime_checkable
class ProfileProvider(Protocol):
    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        ...


class InMemoryProfileProvider:
    def __init__(self, profiles: Optional[Dict[str, UserProfile]] = None) -> None:
        self._profiles: Dict[str, UserProfile] = dict(profiles or {})

    def put(self, user_id: str, profile: UserProfile) -> None:
        self._profiles[user_id] = profile

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        return self._profiles.get(user_id)
