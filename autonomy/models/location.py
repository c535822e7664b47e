"""
location.py — Coordinates as the API sees them and as MongoDB stores them.

Clients speak {lat, lng} in WGS-84 degrees. Every persisted geometry is a
GeoJSON Point so the 2dsphere indexes apply:

  { "type": "Point", "coordinates": [lng, lat] }   ← longitude first
"""

from typing import Optional

from pydantic import BaseModel, Field


class Location(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    def to_geojson(self) -> dict:
        return {"type": "Point", "coordinates": [self.lng, self.lat]}

    @classmethod
    def from_geojson(cls, doc: Optional[dict]) -> Optional["Location"]:
        """Return None for a missing or malformed GeoJSON point."""
        if not doc:
            return None
        coords = doc.get("coordinates") or []
        if len(coords) != 2:
            return None
        return cls(lat=coords[1], lng=coords[0])


class Boundary(BaseModel):
    """Administrative area a point resolves to (read-only, ingested offline)."""

    country: str = ""
    state: str = ""
    county: str = ""
