"""
report.py — Inbound self-reports and their persisted shape.

Reports are immutable once written. Each report collection carries a
unique (profile_id, ts) index and a 2dsphere index on `location`:

  symptomReport   { profile_id, account_number, official_symptoms, customized_symptoms, location, ts }
  behaviorReport  { profile_id, account_number, official_behaviors, customized_behaviors, location, ts }
  geographic      { profile_id, account_number, location, ts }
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from autonomy.models.location import Location


class ReportKind(str, Enum):
    SYMPTOM = "symptom"
    BEHAVIOR = "behavior"
    GEOGRAPHIC = "geographic"

    @property
    def collection(self) -> str:
        return _COLLECTIONS[self]

    @property
    def item_fields(self) -> tuple[str, ...]:
        """Document fields listing the reported item ids (official first)."""
        return _ITEM_FIELDS[self]


_COLLECTIONS = {
    ReportKind.SYMPTOM: "symptomReport",
    ReportKind.BEHAVIOR: "behaviorReport",
    ReportKind.GEOGRAPHIC: "geographic",
}

_ITEM_FIELDS = {
    ReportKind.SYMPTOM: ("official_symptoms", "customized_symptoms"),
    ReportKind.BEHAVIOR: ("official_behaviors", "customized_behaviors"),
    ReportKind.GEOGRAPHIC: (),
}


# ── Request bodies ────────────────────────────────────────────────────────────

class SymptomReportIn(BaseModel):
    symptoms: list[str] = Field(default_factory=list, max_length=64)
    location: Optional[Location] = None   # falls back to the Geo-Position header
    ts: Optional[int] = Field(None, ge=0)  # unix seconds; server time when omitted


class BehaviorReportIn(BaseModel):
    behaviors: list[str] = Field(default_factory=list, max_length=64)
    location: Optional[Location] = None
    ts: Optional[int] = Field(None, ge=0)


class GeographicIn(BaseModel):
    location: Optional[Location] = None
    ts: Optional[int] = Field(None, ge=0)


# ── Responses ─────────────────────────────────────────────────────────────────

class ReportReceipt(BaseModel):
    """Result of an ingest: who should be re-scored because of it."""

    id: str
    ts: int
    nearby_accounts: list[str] = Field(default_factory=list)
    nearby_pois: list[str] = Field(default_factory=list)


class ReportCount(BaseModel):
    today: float
    yesterday: float
