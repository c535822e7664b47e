"""
catalog.py — Symptom id lookup against the `symptom` collection.

Spike enrichment and follow-up formatting both need full descriptors for
a list of bare ids; this is the single place that resolves them.
"""

import logging

from autonomy.core.database import SYMPTOM_COLLECTION
from autonomy.models.catalog import OFFICIAL_SYMPTOM_WEIGHTS, Symptom, SymptomSource

logger = logging.getLogger(__name__)


class SymptomCatalog:
    def __init__(self, db) -> None:
        self.db = db

    async def ids_to_symptoms(self, ids: list[str]) -> tuple[list[Symptom], list[Symptom], list[str]]:
        """
        Resolve ids into (official, customized, not_found).

        Output order follows the input order; duplicate ids are resolved once.
        """
        unique = list(dict.fromkeys(i for i in ids if i))
        if not unique:
            return [], [], []

        found: dict[str, Symptom] = {}
        cursor = self.db[SYMPTOM_COLLECTION].find({"_id": {"$in": unique}})
        async for doc in cursor:
            symptom_id = str(doc["_id"])
            found[symptom_id] = Symptom(
                id=symptom_id,
                name=doc.get("name") or symptom_id,
                desc=doc.get("desc") or "",
                source=doc.get("source") or SymptomSource.CUSTOMIZED,
                weight=doc.get("weight") or 1,
            )

        official, customized, not_found = [], [], []
        for symptom_id in unique:
            symptom = found.get(symptom_id)
            if symptom is None and symptom_id in OFFICIAL_SYMPTOM_WEIGHTS:
                # official ids resolve even before the collection is seeded
                official.append(Symptom(
                    id=symptom_id,
                    name=symptom_id,
                    source=SymptomSource.OFFICIAL,
                    weight=OFFICIAL_SYMPTOM_WEIGHTS[symptom_id],
                ))
            elif symptom is None:
                not_found.append(symptom_id)
            elif symptom.source == SymptomSource.OFFICIAL or symptom_id in OFFICIAL_SYMPTOM_WEIGHTS:
                official.append(symptom)
            else:
                customized.append(symptom)

        if not_found:
            logger.debug("Unknown symptom ids %s", not_found)
        return official, customized, not_found
