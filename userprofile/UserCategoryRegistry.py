# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-04
# Description: UserCategoryRegistry
# -----------------------------------------------------------------------------
from typing import Dict, Iterable, Protocol, Set, Tuple, runtime_checkable


@runtime_checkable
class UserCategoryRegistry(Protocol):
    """Which category paths a user has registered (owned by the profile side)."""

    async def is_registered(self, user_id: str, category_path: Tuple[str, ...]) -> bool:
        ...


class InMemoryUserCategoryRegistry:
    def __init__(self) -> None:
        self._paths: Dict[str, Set[Tuple[str, ...]]] = {}

    def register(self, user_id: str, category_path: Iterable[str]) -> None:
        self._paths.setdefault(user_id, set()).add(tuple(category_path))

    async def is_registered(self, user_id: str, category_path: Tuple[str, ...]) -> bool:
        return tuple(category_path) in self._paths.get(user_id, set())
