"""
Seed script for the CityFlux Firestore collections.

Usage:
  - Dry run (default): python scripts/seed_db.py
  - Apply to Firestore: python scripts/seed_db.py --apply
  - Use another seed file: python scripts/seed_db.py --file path/to/seed.json --apply

Behavior:
  - Loads `db_seed.json` from the repo root unless --file is given.
  - Only the `users` and `parking` collections are written; other keys are reported and skipped.
  - Gets Firestore via `cityflux.config.firebase.get_db()`.

NOTE: Parking documents written here fire the parking-written event in a deployed
stack, which mirrors slot counts into `parking_live/`. Nothing is mirrored here.
"""

import argparse
import json
import os
from typing import Any

from cityflux.config.firebase import get_db

SEEDABLE_COLLECTIONS = ("users", "parking")


def load_seed(path: str = "./db_seed.json") -> dict:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def write_to_db(db: Any, seed: dict, apply: bool = False) -> int:
    written = 0
    for collection, docs in seed.items():
        if collection not in SEEDABLE_COLLECTIONS:
            print(f"Skipping unknown collection: {collection}")
            continue
        for doc_id, data in docs.items():
            print(f"Preparing: {collection}/{doc_id}")
            if not apply:
                continue
            db.collection(collection).document(doc_id).set(data)
            written += 1
            print(f"Wrote: {collection}/{doc_id}")
    return written


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--apply", action="store_true", help="Write seed to Firestore instead of dry-run")
    parser.add_argument("--file", default=os.path.join(os.getcwd(), "db_seed.json"), help="Seed file path")
    args = parser.parse_args()

    if not os.path.exists(args.file):
        print(f"Seed file not found: {args.file}")
        return

    seed = load_seed(args.file)

    if not args.apply:
        write_to_db(None, seed, apply=False)
        print("Dry run complete. Re-run with --apply to write to Firestore.")
        return

    written = write_to_db(get_db(), seed, apply=True)
    print(f"Seeding completed: {written} documents written.")


if __name__ == "__main__":
    main()
