"""
metric.py — The aggregate score record kept for every account and POI.

A Metric is written whole (replace, never patch) by the single loop that
owns the entity. Shape as stored in MongoDB (`profile.metric`, `poi.metric`,
`profile.points_of_interest[].metric`):

  {
    "confirmed_count": 12, "confirmed_delta": 50.0,
    "symptom_count": 4,    "symptom_delta": 100.0,
    "behavior_count": 9,   "behavior_delta": -10.0,
    "score": 71.3,
    "last_update": 1590000000,            ← unix seconds, never decreases
    "details": {
      "confirm":   { "daily_cases": [...], "score": ... },
      "behaviors": { ... },
      "symptoms":  { "last_spike_list": ["cough"], "last_spike_update": 1590000000, ... }
    }
  }
"""

from pydantic import BaseModel, Field


class ConfirmDetail(BaseModel):
    daily_cases: list[float] = Field(default_factory=list)   # oldest first
    today: float = 0
    yesterday: float = 0
    score: float = 0


class BehaviorData(BaseModel):
    """Raw behavior aggregates for one window around a point."""

    user_count: int = 0
    report_count: int = 0
    official_weight: float = 0     # Σ weights of official behaviors reported
    customized_weight: float = 0   # count of customized behaviors reported
    official_count: int = 0
    customized_count: int = 0


class BehaviorDetail(BaseModel):
    total_people: int = 0
    official_weight: float = 0
    customized_weight: float = 0
    max_score_per_person: float = 0
    score: float = 0


class SymptomData(BaseModel):
    """Raw symptom aggregates for one window around a point."""

    user_count: int = 0
    official_count: int = 0
    customized_count: int = 0
    distribution: dict[str, int] = Field(default_factory=dict)   # symptom id → count


class SymptomDetail(BaseModel):
    total_weight: float = 0
    total_people: int = 0
    max_weight: float = 0
    score: float = 0
    last_spike_list: list[str] = Field(default_factory=list)
    last_spike_update: int = 0     # unix seconds; 0 = never spiked
    today_data: SymptomData = Field(default_factory=SymptomData)
    yesterday_data: SymptomData = Field(default_factory=SymptomData)


class Details(BaseModel):
    confirm: ConfirmDetail = Field(default_factory=ConfirmDetail)
    behaviors: BehaviorDetail = Field(default_factory=BehaviorDetail)
    symptoms: SymptomDetail = Field(default_factory=SymptomDetail)


class Metric(BaseModel):
    confirmed_count: float = 0
    confirmed_delta: float = 0
    symptom_count: float = 0
    symptom_delta: float = 0
    behavior_count: float = 0
    behavior_delta: float = 0
    score: float = Field(default=0, ge=0, le=100)
    last_update: int = 0
    details: Details = Field(default_factory=Details)


class RawMetric(BaseModel):
    """Everything the scoring kernel needs, gathered by one collection pass."""

    behavior_today: BehaviorData = Field(default_factory=BehaviorData)
    behavior_yesterday: BehaviorData = Field(default_factory=BehaviorData)
    symptom_today: SymptomData = Field(default_factory=SymptomData)
    symptom_yesterday: SymptomData = Field(default_factory=SymptomData)
    confirmed_daily: list[float] = Field(default_factory=list)   # oldest first
