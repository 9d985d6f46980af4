from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


# ---------------------------
# Paths
# ---------------------------

PROJECT_ROOT = Path(__file__).resolve().parents[1]

DATA_DIR = PROJECT_ROOT / "data"
HACS_DATA_DIR = DATA_DIR / "hacs"
CATALOG_SNAPSHOT_PATH = DATA_DIR / "catalog.json"


# ---------------------------
# Time
# ---------------------------

DAY_MS = 1000 * 60 * 60 * 24


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


# ---------------------------
# Score model
# ---------------------------

SCORE_WEIGHTS: Dict[str, float] = {
    "popularity": 0.5,
    "freshness": 0.3,
    "maintenance": 0.2,
}

CONFIDENCE_WEIGHTS: Dict[str, float] = {
    "popularity": 0.6,
    "freshness": 0.4,
}

FRESHNESS_GRACE_DAYS = 14
FRESHNESS_DECAY_DAYS = 90

MAINTENANCE_STARS_FACTOR = 0.15
MAINTENANCE_BASELINE = 15

# featured = popular enough and touched within the last year
FEATURED_MIN_STARS = 600
FEATURED_MAX_AGE_DAYS = 365

MAX_TOPICS = 6


# ---------------------------
# Catalog state vocabulary
# ---------------------------

# Sorted ascending; the first entry is the "no constraint" default.
STARS_BUCKETS: Tuple[int, ...] = (0, 100, 250, 500, 1000, 2500)
UPDATED_BUCKETS: Tuple[int, ...] = (0, 7, 30, 90, 180, 365)
CONFIDENCE_BUCKETS: Tuple[int, ...] = (0, 50, 65, 75, 85)

ALL_CATEGORIES = "all"

# preset name -> field overrides applied on top of the default state
PRESETS: Dict[str, Dict[str, object]] = {
    "popular": {"stars": 1000, "sort": "stars-desc"},
    "recent": {"updated": 30, "sort": "updated-desc"},
    "featured": {"featured": True, "sort": "recommended-desc"},
    "reliable": {"confidence": 75, "stars": 500, "sort": "recommended-desc"},
}


# ---------------------------
# Session / UI policy
# ---------------------------

MAX_COMPARE_ITEMS = 3
MIN_SHARE_ITEMS = 2
SHARE_REFUSED_STATUS = "Select at least two integrations to share this comparison."
SHARE_READY_STATUS = "Share link ready."

DEFAULT_PAGE_SIZE = 24
PAGE_SIZE = int(os.getenv("CATALOG_PAGE_SIZE", str(DEFAULT_PAGE_SIZE)))

SEARCH_DEBOUNCE_MS = 180

# seconds the host waits on the worker outbox per pump
WORKER_POLL_TIMEOUT = 0.05


# ---------------------------
# HACS sync / HTTP hardening
# ---------------------------

HACS_DATA_BASE_URL = "https://data-v2.hacs.xyz/integration"

DEFAULT_FETCH_TIMEOUT_MS = 20_000
HACS_FETCH_TIMEOUT_MS = int(os.getenv("HACS_FETCH_TIMEOUT_MS", str(DEFAULT_FETCH_TIMEOUT_MS)))
HACS_FETCH_STRICT = (
    os.getenv("HACS_FETCH_STRICT") == "true" or os.getenv("CI") == "true"
)

HTTP_USER_AGENT = "hacs-catalog-engine/1.0 (+https://github.com/hacs)"


# ---------------------------
# Pydantic models shared around the app
# ---------------------------

class CatalogItem(BaseModel):
    """
    Immutable, already-scored snapshot of one integration.

    JSON uses camelCase keys (``recommendedScore``, ``updatedTs`` ...);
    attributes are snake_case. Either spelling is accepted on input.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    slug: str
    name: str
    author: str = "unknown"
    repo: str = ""
    category: str = "General"
    domain: str = "n/a"
    stars: int = Field(default=0, ge=0)
    featured: bool = False
    recommended_score: float = Field(default=0.0, ge=0, le=100)
    score_confidence: float = Field(default=0.0, ge=0, le=100)
    updated_ts: int = 0
    updated_at: Optional[str] = None
    open_issues: int = Field(default=0, ge=0)
    topics: List[str] = Field(default_factory=list)
    description: str = ""
    url: str = ""
    details_path: str = ""

    @model_validator(mode="before")
    @classmethod
    def _confidence_defaults_to_score(cls, data):
        # A record without a confidence is reported with confidence == score.
        if not isinstance(data, dict):
            return data
        has_confidence = any(
            data.get(key) is not None for key in ("scoreConfidence", "score_confidence")
        )
        if has_confidence:
            return data
        score = data.get("recommendedScore", data.get("recommended_score"))
        if score is None:
            return data
        out = {k: v for k, v in data.items() if k not in ("scoreConfidence", "score_confidence")}
        out["scoreConfidence"] = score
        return out

    @field_validator("topics")
    @classmethod
    def _cap_topics(cls, value: List[str]) -> List[str]:
        return list(value)[:MAX_TOPICS]

    @field_validator("updated_ts", mode="before")
    @classmethod
    def _unknown_timestamp(cls, value):
        if value is None:
            return 0
        return value


class HealthResponse(BaseModel):
    """
    Response body for GET /health.
    """

    status: str
