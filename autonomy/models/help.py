"""
help.py — Help requests between neighbours.

An account asks its cohort for help; any other account may answer while
the request is PENDING. Unanswered requests expire after
`settings.help_expiry_hours`.

  help  { _id, requester, helper, subject, exact_needs, meeting_location,
          contact_info, state, location, created_at }

At most one PENDING request per requester (partial unique index).
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from autonomy.models.location import Location


class HelpState(str, Enum):
    PENDING = "PENDING"
    RESPONDED = "RESPONDED"
    EXPIRED = "EXPIRED"


class HelpRequest(BaseModel):
    id: str
    requester: str
    helper: str = ""
    subject: str = ""
    exact_needs: str = ""
    meeting_location: str = ""
    contact_info: str = ""
    state: HelpState = HelpState.PENDING
    location: Optional[Location] = None
    created_at: int = 0

    @classmethod
    def from_document(cls, doc: dict) -> "HelpRequest":
        return cls(
            id=str(doc["_id"]),
            requester=doc["requester"],
            helper=doc.get("helper") or "",
            subject=doc.get("subject") or "",
            exact_needs=doc.get("exact_needs") or "",
            meeting_location=doc.get("meeting_location") or "",
            contact_info=doc.get("contact_info") or "",
            state=doc.get("state") or HelpState.PENDING,
            location=Location.from_geojson(doc.get("location")),
            created_at=doc.get("created_at") or 0,
        )


class HelpCreate(BaseModel):
    subject: str = Field(..., min_length=1, max_length=256)
    exact_needs: str = Field("", max_length=2048)
    meeting_location: str = Field("", max_length=512)
    contact_info: str = Field("", max_length=512)


class HelpNearby(HelpRequest):
    """A listed request with its distance from the asking account."""

    distance_m: float = 0.0
