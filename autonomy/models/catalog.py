"""
catalog.py — Official symptom / behavior ids and their scoring weights.

Ids outside these tables are "customized": user-defined items that always
weigh 1. The `symptom` collection mirrors the official table and stores
customized symptoms as they are first reported:

  { "_id": "fever", "name": "Fever", "desc": "…", "source": "official", "weight": 3 }
"""

from enum import Enum

from pydantic import BaseModel

OFFICIAL_SYMPTOM_WEIGHTS: dict[str, float] = {
    "fever":   3,
    "cough":   2,
    "fatigue": 1,
    "breath":  1,
    "nasal":   1,
    "throat":  1,
    "chest":   2,
    "face":    2,
}

OFFICIAL_BEHAVIOR_WEIGHTS: dict[str, float] = {
    "clean_hand":        1,
    "social_distancing": 1,
    "touch_face":        1,
    "wear_mask":         1,
    "covering_coughs":   1,
    "clean_surface":     1,
}

TOTAL_OFFICIAL_SYMPTOM_WEIGHT = sum(OFFICIAL_SYMPTOM_WEIGHTS.values())
TOTAL_OFFICIAL_BEHAVIOR_WEIGHT = sum(OFFICIAL_BEHAVIOR_WEIGHTS.values())


class SymptomSource(str, Enum):
    OFFICIAL = "official"
    CUSTOMIZED = "customized"


class Symptom(BaseModel):
    id: str
    name: str = ""
    desc: str = ""
    source: SymptomSource = SymptomSource.CUSTOMIZED
    weight: float = 1


def split_official(ids: list[str], official: dict[str, float]) -> tuple[list[str], list[str]]:
    """Partition reported ids into (official, customized), dropping duplicates."""
    seen = set()
    off, cust = [], []
    for i in ids:
        i = i.strip()
        if not i or i in seen:
            continue
        seen.add(i)
        (off if i in official else cust).append(i)
    return off, cust
