"""
poi.py — Shared places of interest.

`poi` documents are keyed by a generated ObjectId (rendered as lowercase
hex everywhere outside MongoDB) and carry a 2dsphere-indexed location.
"""

from typing import Optional

from pydantic import BaseModel, Field

from autonomy.models.location import Location
from autonomy.models.metric import Metric


class POIRefresh(BaseModel):
    """
    Recipients decided when the POI metric stamped `last_update` was
    written. Stored with the metric in one update, so a retried refresh
    reuses the decision instead of re-classifying followers whose
    snapshots it already overwrote.
    """

    last_update: int = 0
    state_changed_accounts: list[str] = Field(default_factory=list)
    symptoms_spike_accounts: list[str] = Field(default_factory=list)


class POI(BaseModel):
    id: str
    location: Optional[Location] = None
    address: str = ""
    metric: Metric = Field(default_factory=Metric)
    last_refresh: Optional[POIRefresh] = None

    @classmethod
    def from_document(cls, doc: dict) -> "POI":
        return cls(
            id=str(doc["_id"]),
            location=Location.from_geojson(doc.get("location")),
            address=doc.get("address") or "",
            metric=Metric(**(doc.get("metric") or {})),
            last_refresh=POIRefresh(**doc["last_refresh"]) if doc.get("last_refresh") else None,
        )


class POICreate(BaseModel):
    alias: str = Field("", max_length=128)
    address: str = Field("", max_length=512)
    location: Location


class POIOut(BaseModel):
    id: str
    alias: str
    address: str
    location: Location
