#!/usr/bin/env python3
"""
ensure_indexes.py — Create the MongoDB indexes the service relies on.

Usage (from the repo root):
    python scripts/ensure_indexes.py                  # indexes only
    python scripts/ensure_indexes.py --seed-symptoms  # + official symptom catalog

Prerequisites:
    • MONGO_URI env var set (or .env file present)
    • `pip install -e .`

Safe to re-run: index creation is idempotent and symptom seeding upserts on
the symptom id, so official entries are refreshed in place.

What this script creates
────────────────────────
  profile / poi / *Report  ← unique + 2dsphere indexes
  boundary / confirm*      ← geometry and (country, state, county, report_ts)
  help                     ← one PENDING request per requester, 2dsphere
  symptom                  ← official entries (names from i18n/en.yaml)
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv

load_dotenv(ROOT / ".env")

import certifi  # noqa: E402
from motor.motor_asyncio import AsyncIOMotorClient  # noqa: E402

from autonomy.core.database import SYMPTOM_COLLECTION, ensure_indexes  # noqa: E402
from autonomy.core.i18n import Bundle  # noqa: E402
from autonomy.models.catalog import OFFICIAL_SYMPTOM_WEIGHTS, SymptomSource  # noqa: E402

MONGO_URI = os.environ.get("MONGO_URI", "")
MONGO_DB_NAME = os.environ.get("MONGO_DB_NAME", "autonomy")
I18N_DIR = os.environ.get("I18N_DIR", str(ROOT / "i18n"))

if not MONGO_URI:
    print("ERROR: MONGO_URI not set. Add it to .env")
    sys.exit(1)


async def seed_symptoms(db) -> int:
    bundle = Bundle().load_dir(I18N_DIR)
    for symptom_id, weight in OFFICIAL_SYMPTOM_WEIGHTS.items():
        try:
            name = bundle.localize("en", f"symptoms.{symptom_id}.name")
        except KeyError:
            name = symptom_id
        await db[SYMPTOM_COLLECTION].update_one(
            {"_id": symptom_id},
            {"$set": {"name": name, "source": SymptomSource.OFFICIAL.value, "weight": weight}},
            upsert=True,
        )
    return len(OFFICIAL_SYMPTOM_WEIGHTS)


async def main(seed: bool) -> None:
    client = AsyncIOMotorClient(MONGO_URI, tlsCAFile=certifi.where(), serverSelectionTimeoutMS=10_000)
    db = client[MONGO_DB_NAME]

    try:
        print(f"Connecting to {MONGO_DB_NAME}...")
        await client.admin.command("ping")

        await ensure_indexes(db)
        print("  ✓ indexes ensured")

        if seed:
            n = await seed_symptoms(db)
            print(f"  ✓ {n} official symptoms upserted")
    finally:
        client.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Ensure Autonomy MongoDB indexes")
    parser.add_argument(
        "--seed-symptoms", action="store_true",
        help="Also upsert the official symptom catalog into the symptom collection",
    )
    args = parser.parse_args()
    asyncio.run(main(args.seed_symptoms))
