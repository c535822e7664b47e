"""
scoring.py — Pure scoring kernel: raw aggregates → Metric.

No I/O. Every function takes primitives or value records so the loops,
the API and the tests all score identically.

  score = 0.25 · symptom_score + 0.25 · behavior_score + 0.5 · confirmed_score

Risk bands (inclusive upper bounds):

  red     [0, 33]
  yellow  (33, 66]
  green   (66, 100]

USAGE
─────
    from autonomy.services.scoring import calculate_metric, band_changed

    metric = calculate_metric(raw, now_ts=1590000000, spike_threshold=3)
    if band_changed(previous.score, metric.score):
        ...

TESTING
────────
    pytest tests/test_scoring.py -v
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Mapping, Optional, Sequence

from autonomy.models.catalog import (
    OFFICIAL_SYMPTOM_WEIGHTS,
    TOTAL_OFFICIAL_BEHAVIOR_WEIGHT,
)
from autonomy.models.metric import (
    BehaviorData,
    BehaviorDetail,
    ConfirmDetail,
    Details,
    Metric,
    RawMetric,
    SymptomData,
    SymptomDetail,
)

# ── Coefficients ──────────────────────────────────────────────────────────────

SYMPTOM_COEFFICIENT   = 0.25
BEHAVIOR_COEFFICIENT  = 0.25
CONFIRMED_COEFFICIENT = 0.5

CONFIRMED_WINDOW = 7   # days of confirmed cases considered

_RED_MAX    = 33
_YELLOW_MAX = 66


class Band(str, Enum):
    RED = "red"
    YELLOW = "yellow"
    GREEN = "green"


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    if math.isnan(value):
        return low
    return max(low, min(high, value))


# ── Factor scores ─────────────────────────────────────────────────────────────

def confirmed_score(daily_cases: Sequence[float]) -> float:
    """
    Score the last CONFIRMED_WINDOW daily case counts (most recent last).

    Recent days weigh exponentially more: pᵢ = (i+1)/2 and

        score = 100 · (1 − Σ e^pᵢ·cᵢ / Σ e^pᵢ·(cᵢ+1))

    Fewer than CONFIRMED_WINDOW days are left-padded with zeros; all zeros → 100.
    """
    cases = [max(0.0, float(c)) for c in daily_cases][-CONFIRMED_WINDOW:]
    cases = [0.0] * (CONFIRMED_WINDOW - len(cases)) + cases

    numerator = 0.0
    denominator = 0.0
    for i, c in enumerate(cases):
        weight = math.exp((i + 1) / 2)
        numerator += weight * c
        denominator += weight * (c + 1)

    return _clamp(100 * (1 - numerator / denominator))


def behavior_score(
    official_weight: float,
    customized_weight: float,
    users: int,
    total_official_weight: float = TOTAL_OFFICIAL_BEHAVIOR_WEIGHT,
) -> float:
    """
    Share of the achievable behavior weight that nearby people reported.

    Customized behaviors may contribute at most half of the total: when
    cust_w / total_w > ½ the nearby weight becomes total_w/2 + off_w.
    """
    total_w = users * total_official_weight + customized_weight
    if total_w <= 0:
        return 0.0

    if customized_weight / total_w > 0.5:
        nearby = total_w / 2 + official_weight
    else:
        nearby = official_weight + customized_weight

    return _clamp(100 * nearby / total_w)


def symptom_weight(symptom_id: str, weights: Optional[Mapping[str, float]] = None) -> float:
    weights = OFFICIAL_SYMPTOM_WEIGHTS if weights is None else weights
    return weights.get(symptom_id, 1.0)


def symptom_score(
    distribution: Mapping[str, int],
    users: int,
    weights: Optional[Mapping[str, float]] = None,
) -> float:
    """
    100 · (1 − weighted / max) over today's symptom distribution.

    weighted = Σ dᵢ·wᵢ (non-official ids weigh 1)
    max      = users · Σ official weights + Σ d over non-official ids
    """
    weights = OFFICIAL_SYMPTOM_WEIGHTS if weights is None else weights

    weighted = 0.0
    customized = 0
    for symptom_id, count in distribution.items():
        weighted += count * symptom_weight(symptom_id, weights)
        if symptom_id not in weights:
            customized += count

    max_weight = users * sum(weights.values()) + customized
    if max_weight <= 0:
        return 100.0
    return _clamp(100 * (1 - weighted / max_weight))


def total_score(symptom: float, behavior: float, confirmed: float) -> float:
    return _clamp(
        SYMPTOM_COEFFICIENT * symptom
        + BEHAVIOR_COEFFICIENT * behavior
        + CONFIRMED_COEFFICIENT * confirmed
    )


# ── Deltas & spikes ───────────────────────────────────────────────────────────

def change_rate(new: float, old: float) -> float:
    """Percentage change; 100 when growing from zero, 0 when both are zero."""
    if old > 0:
        return (new - old) / old * 100
    if new > 0:
        return 100.0
    return 0.0


def spike_list(
    today: Mapping[str, int],
    yesterday: Mapping[str, int],
    threshold: int,
) -> list[str]:
    """Symptom ids with today ≥ threshold and more reports than yesterday (sorted)."""
    return sorted(
        symptom_id
        for symptom_id, count in today.items()
        if count >= threshold and count > yesterday.get(symptom_id, 0)
    )


# ── Bands ─────────────────────────────────────────────────────────────────────

def band(score: float) -> Band:
    if score <= _RED_MAX:
        return Band.RED
    if score <= _YELLOW_MAX:
        return Band.YELLOW
    return Band.GREEN


def band_changed(old_score: float, new_score: float) -> bool:
    return band(old_score) != band(new_score)


# ── Metric assembly ───────────────────────────────────────────────────────────

def _symptom_count(data: SymptomData) -> int:
    return data.official_count + data.customized_count


def _behavior_count(data: BehaviorData) -> int:
    return data.official_count + data.customized_count


def calculate_metric(raw: RawMetric, now_ts: int, spike_threshold: int) -> Metric:
    """Turn one collection pass into a candidate Metric stamped at *now_ts*."""
    s_today, s_yesterday = raw.symptom_today, raw.symptom_yesterday
    b_today, b_yesterday = raw.behavior_today, raw.behavior_yesterday

    s_score = symptom_score(s_today.distribution, s_today.user_count)
    b_score = behavior_score(b_today.official_weight, b_today.customized_weight, b_today.user_count)
    c_score = confirmed_score(raw.confirmed_daily)

    spikes = spike_list(s_today.distribution, s_yesterday.distribution, spike_threshold)

    daily = list(raw.confirmed_daily[-CONFIRMED_WINDOW:])
    confirmed_today = daily[-1] if daily else 0.0
    confirmed_yesterday = daily[-2] if len(daily) > 1 else 0.0

    customized_symptoms = sum(
        c for k, c in s_today.distribution.items() if k not in OFFICIAL_SYMPTOM_WEIGHTS
    )

    return Metric(
        confirmed_count=confirmed_today,
        confirmed_delta=change_rate(confirmed_today, confirmed_yesterday),
        symptom_count=_symptom_count(s_today),
        symptom_delta=change_rate(_symptom_count(s_today), _symptom_count(s_yesterday)),
        behavior_count=_behavior_count(b_today),
        behavior_delta=change_rate(_behavior_count(b_today), _behavior_count(b_yesterday)),
        score=total_score(s_score, b_score, c_score),
        last_update=now_ts,
        details=Details(
            confirm=ConfirmDetail(
                daily_cases=daily,
                today=confirmed_today,
                yesterday=confirmed_yesterday,
                score=c_score,
            ),
            behaviors=BehaviorDetail(
                total_people=b_today.user_count,
                official_weight=b_today.official_weight,
                customized_weight=b_today.customized_weight,
                max_score_per_person=TOTAL_OFFICIAL_BEHAVIOR_WEIGHT,
                score=b_score,
            ),
            symptoms=SymptomDetail(
                total_weight=sum(
                    c * symptom_weight(k) for k, c in s_today.distribution.items()
                ),
                total_people=s_today.user_count,
                max_weight=s_today.user_count * sum(OFFICIAL_SYMPTOM_WEIGHTS.values()) + customized_symptoms,
                score=s_score,
                last_spike_list=spikes,
                last_spike_update=now_ts if spikes else 0,
                today_data=s_today,
                yesterday_data=s_yesterday,
            ),
        ),
    )
