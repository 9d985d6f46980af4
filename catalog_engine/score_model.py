from __future__ import annotations

"""
Scoring model for catalog integrations.

Turns three raw, noisy signals (stars, last update, open issues) into a
0-100 recommended score plus a 0-100 confidence value.

Public helpers:

* percentile_ranks(values) -> List[float]
    Midpoint-of-ties rank of every value, normalised into [0, 1].

* popularity_signal(stars) -> List[float]
    log1p-compressed stars fed through percentile_ranks.

* freshness_signal(updated_ms, now_ms) -> float
    1.0 inside the grace window, exponential decay afterwards.

* maintenance_signal(open_issues, stars) -> float
    Open issues discounted by project size.

* recommended_score / score_confidence
    Weighted combinations scaled to 0-100 with one decimal.

Every function is total: any numeric input (negative, NaN, inf) maps to a
value inside the documented range instead of raising.
"""

import math
from typing import List, Sequence, Tuple

import numpy as np

from .config import (
    CONFIDENCE_WEIGHTS,
    DAY_MS,
    FRESHNESS_DECAY_DAYS,
    FRESHNESS_GRACE_DAYS,
    MAINTENANCE_BASELINE,
    MAINTENANCE_STARS_FACTOR,
    SCORE_WEIGHTS,
)

SCORE_HELP_TEXT = (
    "HACS Score = 50% popularity percentile + 30% freshness decay "
    "+ 20% maintenance health."
)


# ---------------------------------------------------------------------------
# Low-level helpers
# ---------------------------------------------------------------------------


def round1(value: float) -> float:
    """Round half-up to one decimal."""
    return math.floor(value * 10 + 0.5) / 10


def clamp01(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


def _non_negative(value: float) -> float:
    value = float(value)
    if math.isnan(value) or value < 0:
        return 0.0
    return value


# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------


def percentile_ranks(values: Sequence[float]) -> List[float]:
    """
    Normalised rank of every value in ``values``.

    Values are ordered ascending; a run of equal values at sorted positions
    ``start..end`` all receive ``((start + end) / 2) / (n - 1)``, so ties are
    deterministic regardless of input order. NaN ranks below every number.
    """
    total = len(values)
    if total == 0:
        return []
    if total == 1:
        return [1.0]

    arr = np.asarray(values, dtype="float64")
    arr = np.where(np.isnan(arr), -np.inf, arr)

    order = np.argsort(arr, kind="stable")
    sorted_vals = arr[order]
    ranks = np.zeros(total, dtype="float64")

    start = 0
    while start < total:
        end = start
        while end + 1 < total and sorted_vals[end + 1] == sorted_vals[start]:
            end += 1
        ranks[order[start:end + 1]] = ((start + end) / 2) / (total - 1)
        start = end + 1

    return ranks.tolist()


def popularity_signal(stars: Sequence[float]) -> List[float]:
    """Percentile of log1p(stars); rewards early growth more than huge counts."""
    if len(stars) == 0:
        return []
    arr = np.asarray(stars, dtype="float64")
    arr = np.where(np.isnan(arr), 0.0, np.maximum(arr, 0.0))
    return percentile_ranks(np.log1p(arr).tolist())


def freshness_signal(updated_ms: float, now_ms: float) -> float:
    """
    1.0 for anything updated within the grace period, then
    ``exp(-(age_days - grace) / decay)``. Unknown timestamps (<= 0) give 0.
    """
    updated_ms = float(updated_ms)
    now_ms = float(now_ms)
    if not math.isfinite(updated_ms) or updated_ms <= 0:
        return 0.0

    age_days = (now_ms - updated_ms) / DAY_MS
    if math.isnan(age_days):
        return 0.0
    age_days = max(0.0, age_days)
    if age_days <= FRESHNESS_GRACE_DAYS:
        return 1.0
    return math.exp(-(age_days - FRESHNESS_GRACE_DAYS) / FRESHNESS_DECAY_DAYS)


def maintenance_signal(open_issues: float, stars: float) -> float:
    issues = _non_negative(open_issues)
    stars_safe = _non_negative(stars)
    denom = issues + stars_safe * MAINTENANCE_STARS_FACTOR + MAINTENANCE_BASELINE
    ratio = issues / denom
    if math.isnan(ratio):
        # inf / inf: an unbounded issue count cannot be judged healthy
        return 0.0
    return clamp01(1.0 - ratio)


# ---------------------------------------------------------------------------
# Composite score
# ---------------------------------------------------------------------------


def recommended_score(popularity: float, freshness: float, maintenance: float) -> float:
    combined = (
        SCORE_WEIGHTS["popularity"] * popularity
        + SCORE_WEIGHTS["freshness"] * freshness
        + SCORE_WEIGHTS["maintenance"] * maintenance
    )
    return round1(combined * 100)


def score_confidence(popularity: float, freshness: float) -> float:
    # maintenance is left out on purpose: it lowers the score, not the certainty
    combined = (
        CONFIDENCE_WEIGHTS["popularity"] * popularity
        + CONFIDENCE_WEIGHTS["freshness"] * freshness
    )
    return round1(combined * 100)


def score_catalog(
    stars: Sequence[float],
    updated_ms: Sequence[float],
    open_issues: Sequence[float],
    now_ms: float,
) -> Tuple[List[float], List[float]]:
    """
    Score a whole catalog at once.

    Popularity is relative to the catalog passed in, so this must see every
    row together. Returns ``(recommended_scores, confidences)`` in input order.
    """
    if not (len(stars) == len(updated_ms) == len(open_issues)):
        raise ValueError("stars, updated_ms and open_issues must have equal length")

    popularity = popularity_signal(stars)
    scores: List[float] = []
    confidences: List[float] = []
    for pop, ts, issues, star_count in zip(popularity, updated_ms, open_issues, stars):
        fresh = freshness_signal(ts, now_ms)
        maint = maintenance_signal(issues, star_count)
        scores.append(recommended_score(pop, fresh, maint))
        confidences.append(score_confidence(pop, fresh))
    return scores, confidences
