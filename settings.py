# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-02
# Updated: 2026-10-14
# Description: settings.py
# -----------------------------------------------------------------------------
import os


def _env(name: str, default: str = "") -> str:
    """Read env var safely and strip whitespace."""
    return (os.getenv(name) or default).strip()


def _env_int(name: str, default: int) -> int:
    v = _env(name, "")
    if v == "":
        return default
    try:
        return int(v)
    except ValueError as e:
        raise RuntimeError(f"Env var {name} must be an int, got {v!r}") from e


def _env_float(name: str, default: float) -> float:
    v = _env(name, "")
    if v == "":
        return default
    try:
        return float(v)
    except ValueError as e:
        raise RuntimeError(f"Env var {name} must be a float, got {v!r}") from e


def _env_bool(name: str, default: bool) -> bool:
    v = _env(name, "")
    if v == "":
        return default
    v = v.lower()
    if v in ("1", "true", "t", "yes", "y", "on"):
        return True
    if v in ("0", "false", "f", "no", "n", "off"):
        return False
    raise RuntimeError(f"Env var {name} must be a boolean, got {v!r}")


# -----------------------------------------------------------------------------
# Collections / tables
# -----------------------------------------------------------------------------
INTEREST_COLLECTION = _env("HARU_INTEREST_COLLECTION", "interest_embeddings")
MISSION_COLLECTION = _env("HARU_MISSION_COLLECTION", "mission_embeddings")


# -----------------------------------------------------------------------------
# Retrieval thresholds
#
# Tuned against one embedding model's score distribution. Short Korean phrases
# all land very close together, so category retrieval needs a near-1.0 floor.
# Re-tune every value here when the embedding model changes.
# -----------------------------------------------------------------------------
RAG_RATIO = _env_float("HARU_RAG_RATIO", 0.7)

CATEGORY_MIN_SCORE = _env_float("HARU_CATEGORY_MIN_SCORE", 0.975)

# cosine distance 0.8 -> similarity 0.2
MISSION_MIN_SCORE = _env_float("HARU_MISSION_MIN_SCORE", 0.2)

# near-duplicate detection for labels (cosine distance, 0..2 scale)
LABEL_MAX_DISTANCE = _env_float("HARU_LABEL_MAX_DISTANCE", 0.3)

HYBRID_SIMILARITY_WEIGHT = _env_float("HARU_HYBRID_SIMILARITY_WEIGHT", 0.7)
HYBRID_POPULARITY_WEIGHT = _env_float("HARU_HYBRID_POPULARITY_WEIGHT", 0.3)

# how many similarity candidates hybrid re-ranking looks at
HYBRID_CANDIDATE_POOL = _env_int("HARU_HYBRID_CANDIDATE_POOL", 50)


# -----------------------------------------------------------------------------
# Recommendation defaults
# -----------------------------------------------------------------------------
DEFAULT_INTEREST_COUNT = _env_int("HARU_DEFAULT_INTEREST_COUNT", 10)
TODAY_MISSION_COUNT = _env_int("HARU_TODAY_MISSION_COUNT", 5)
ALL_DIFFICULTIES = (1, 2, 3, 4, 5)

REROLL_CEILING = _env_int("HARU_REROLL_CEILING", 3)

LABEL_MAX_CHARS = _env_int("HARU_LABEL_MAX_CHARS", 10)
LABEL_BATCH_SIZE = _env_int("HARU_LABEL_BATCH_SIZE", 200)


# -----------------------------------------------------------------------------
# External calls
# -----------------------------------------------------------------------------
EXTERNAL_TIMEOUT_SECONDS = _env_float("HARU_EXTERNAL_TIMEOUT_SECONDS", 15.0)

GENERATION_TEMPERATURE = _env_float("HARU_GENERATION_TEMPERATURE", 0.5)
MISSION_TEMPERATURE = _env_float("HARU_MISSION_TEMPERATURE", 0.3)
# first call plus one re-ask for difficulties the model skipped or repeated
MISSION_GENERATION_ATTEMPTS = _env_int("HARU_MISSION_GENERATION_ATTEMPTS", 2)
LABEL_TEMPERATURE = _env_float("HARU_LABEL_TEMPERATURE", 0.3)
GENERATION_MAX_TOKENS = _env_int("HARU_GENERATION_MAX_TOKENS", 1024)


# -----------------------------------------------------------------------------
# Exclusion cache
# -----------------------------------------------------------------------------
# blank means the server's local time zone
EXCLUSION_TIMEZONE = _env("HARU_EXCLUSION_TIMEZONE", "Asia/Seoul")
EXCLUSION_KEY_PREFIX = _env("HARU_EXCLUSION_KEY_PREFIX", "today-mission")


# -----------------------------------------------------------------------------
# Sanity checks (tunable)
# -----------------------------------------------------------------------------
if not 0.0 <= RAG_RATIO <= 1.0:
    raise RuntimeError(f"HARU_RAG_RATIO must be within [0, 1], got {RAG_RATIO}")

if REROLL_CEILING < 0:
    raise RuntimeError("HARU_REROLL_CEILING must not be negative")

if MISSION_GENERATION_ATTEMPTS < 1:
    raise RuntimeError("HARU_MISSION_GENERATION_ATTEMPTS must be at least 1")

if not INTEREST_COLLECTION or not MISSION_COLLECTION:
    raise RuntimeError("Collection names resolved to empty value")
