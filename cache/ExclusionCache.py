# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-08
# Description: ExclusionCache
# -----------------------------------------------------------------------------
from datetime import datetime, timedelta, tzinfo
from typing import Callable, Dict, Iterable, Optional, Protocol, Set, Tuple, runtime_checkable
from zoneinfo import ZoneInfo

import settings

Clock = Callable[[], datetime]


def resolve_timezone(name: Optional[str] = None) -> Optional[tzinfo]:
    name = settings.EXCLUSION_TIMEZONE if name is None else name
    return ZoneInfo(name) if name else None


def local_now(tz: Optional[tzinfo] = None) -> datetime:
    return datetime.now(tz) if tz else datetime.now().astimezone()


def seconds_until_midnight(now: datetime) -> int:
    """Whole seconds until the next local midnight of `now`'s own time zone (min 1)."""
    tomorrow = (now + timedelta(days=1)).date()
    midnight = datetime(tomorrow.year, tomorrow.month, tomorrow.day, tzinfo=now.tzinfo)
    return max(1, int((midnight - now).total_seconds()))


def exclusion_key(user_id: str, scope_key: str, day: str, prefix: str = settings.EXCLUSION_KEY_PREFIX) -> str:
    return f"{prefix}:{user_id}:{scope_key}:{day}"


def retry_key(user_id: str, scope_key: str, day: str, prefix: str = settings.EXCLUSION_KEY_PREFIX) -> str:
    return f"{prefix}-retry:{user_id}:{scope_key}:{day}"


@runtime_checkable
class ExclusionCache(Protocol):
    """
    Per (user, scope, local day) set of ids already shown, plus a re-roll
    counter keyed the same way. Both expire at the next local midnight.
    """

    async def get(self, user_id: str, scope_key: str) -> Set[str]:
        ...

    async def append(self, user_id: str, scope_key: str, ids: Iterable[str]) -> None:
        ...

    async def increment_retry(self, user_id: str, scope_key: str) -> int:
        ...

    async def retry_count(self, user_id: str, scope_key: str) -> int:
        ...

    async def test_connection(self) -> bool:
        ...


class InMemoryExclusionCache:
    """Test double with an injectable clock; expiry is checked on access."""

    def __init__(self, clock: Optional[Clock] = None, tz: Optional[tzinfo] = None) -> None:
        self.tz = tz if tz is not None else resolve_timezone()
        self.clock: Clock = clock or (lambda: local_now(self.tz))
        self._sets: Dict[str, Tuple[Set[str], datetime]] = {}
        self._counters: Dict[str, Tuple[int, datetime]] = {}

    def _now(self) -> datetime:
        now = self.clock()
        return now.astimezone(self.tz) if self.tz else now

    def _keys(self, user_id: str, scope_key: str) -> Tuple[str, str, datetime]:
        now = self._now()
        day = now.date().isoformat()
        expires_at = now + timedelta(seconds=seconds_until_midnight(now))
        return exclusion_key(user_id, scope_key, day), retry_key(user_id, scope_key, day), expires_at

    async def get(self, user_id: str, scope_key: str) -> Set[str]:
        set_key, _, _ = self._keys(user_id, scope_key)
        entry = self._sets.get(set_key)
        if entry is None or entry[1] <= self._now():
            return set()
        return set(entry[0])

    async def append(self, user_id: str, scope_key: str, ids: Iterable[str]) -> None:
        ids = [i for i in ids if i]
        if not ids:
            return
        set_key, _, expires_at = self._keys(user_id, scope_key)
        current = await self.get(user_id, scope_key)
        current.update(ids)
        self._sets[set_key] = (current, expires_at)

    async def increment_retry(self, user_id: str, scope_key: str) -> int:
        _, counter_key, expires_at = self._keys(user_id, scope_key)
        value = await self.retry_count(user_id, scope_key) + 1
        self._counters[counter_key] = (value, expires_at)
        return value

    async def retry_count(self, user_id: str, scope_key: str) -> int:
        _, counter_key, _ = self._keys(user_id, scope_key)
        entry = self._counters.get(counter_key)
        if entry is None or entry[1] <= self._now():
            return 0
        return entry[0]

    async def test_connection(self) -> bool:
        return True
