"""
profile.py — Account profile and the places it follows.

MongoDB document shape (`profile` collection):

  {
    "id": "3f2c…",                          ← unique
    "account_number": "e1Vb…",              ← unique, workflow key
    "timezone": "GMT+8",
    "location": { "type": "Point", "coordinates": [lng, lat] },   ← 2dsphere
    "metric": { … },                        ← see models/metric.py
    "last_nudge": { "symptom_follow_up": 1590000000, … },
    "points_of_interest": [
      { "id": "5ec…", "alias": "Office", "address": "…", "score": 71.3, "metric": { … } }
    ]
  }
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from autonomy.models.location import Location
from autonomy.models.metric import Metric


class NudgeKind(str, Enum):
    SYMPTOM_FOLLOW_UP = "symptom_follow_up"
    BEHAVIOR_ON_HIGH_RISK = "behavior_on_high_risk"
    BEHAVIOR_ON_SYMPTOM_SPIKE = "behavior_on_symptom_spike"


class ProfilePOI(BaseModel):
    """A profile's view of a shared POI (alias + per-profile metric snapshot)."""

    id: str
    alias: str = ""
    address: str = ""
    score: float = 0
    metric: Metric = Field(default_factory=Metric)


class Profile(BaseModel):
    id: str
    account_number: str
    timezone: str = ""
    location: Optional[Location] = None
    metric: Metric = Field(default_factory=Metric)
    last_nudge: dict[str, int] = Field(default_factory=dict)   # NudgeKind value → unix seconds
    points_of_interest: list[ProfilePOI] = Field(default_factory=list)

    def last_nudged(self, kind: NudgeKind) -> int:
        return self.last_nudge.get(kind.value, 0)

    def poi(self, poi_id: str) -> Optional[ProfilePOI]:
        for p in self.points_of_interest:
            if p.id == poi_id:
                return p
        return None

    @classmethod
    def from_document(cls, doc: dict) -> "Profile":
        return cls(
            id=str(doc.get("id") or doc.get("_id")),
            account_number=doc["account_number"],
            timezone=doc.get("timezone") or "",
            location=Location.from_geojson(doc.get("location")),
            metric=Metric(**(doc.get("metric") or {})),
            last_nudge=doc.get("last_nudge") or {},
            points_of_interest=[ProfilePOI(**p) for p in doc.get("points_of_interest") or []],
        )


class ProfileCreate(BaseModel):
    timezone: str = Field(..., max_length=16)
    location: Optional[Location] = None
