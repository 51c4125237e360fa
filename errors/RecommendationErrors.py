# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-03
# Description: RecommendationErrors
# -----------------------------------------------------------------------------
from typing import Optional


class RecommendationError(Exception):
    """Base class for errors the engine surfaces to its callers."""


class InvalidRequestError(RecommendationError, ValueError):
    """Request violates an input invariant (bad path, non-leaf category, ...)."""


class OwnershipError(InvalidRequestError):
    """User references a category they never registered."""

    def __init__(self, user_id: str, category_path):
        self.user_id = user_id
        self.category_path = tuple(category_path)
        super().__init__(
            f"Category {' > '.join(self.category_path)!r} is not registered for user {user_id!r}"
        )


class RetryLimitExceededError(RecommendationError):
    """Re-roll ceiling for the day has been reached."""

    def __init__(self, user_id: str, scope_key: str, ceiling: int, attempts: Optional[int] = None):
        self.user_id = user_id
        self.scope_key = scope_key
        self.ceiling = ceiling
        self.attempts = attempts
        super().__init__(
            f"Re-roll limit exceeded for user {user_id!r} scope {scope_key!r}: "
            f"at most {ceiling} re-roll(s) per day"
        )
