#!/usr/bin/env python3
"""
scripts/import_places.py

Bulk-load places into the configured places backend (PLACES_BACKEND).

  CSV  (same columns as POST /admin/import):
    python scripts/import_places.py places.csv

  Seed JSON (list of curated place objects, geocode {lat,lng}, "City, MI"):
    python scripts/import_places.py michigan_munchies_seed.json

Each record is upserted on its own; failures are reported and the run
continues. Exit code is 1 when any record failed.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import orjson
from dotenv import load_dotenv

from munchies.core.settings import Settings
from munchies.core.storage import connect_sqlite
from munchies.core.places_db import create_places_db
from munchies.services.importer import import_csv, import_seed
from munchies.services.places import PlacesService


def run(path: Path, *, fmt: str) -> int:
    cfg = Settings()
    db = create_places_db(
        backend=cfg.places_backend,
        sqlite_conn=connect_sqlite(cfg.places_db_path) if cfg.places_backend == "sqlite" else None,
        supabase_url=cfg.supabase_url,
        supabase_anon_key=cfg.supabase_anon_key,
        supabase_service_role_key=cfg.supabase_service_role_key,
        timeout_s=cfg.supabase_timeout_s,
    )
    service = PlacesService(db=db)

    try:
        if fmt == "json":
            records = orjson.loads(path.read_bytes())
            if not isinstance(records, list):
                print("ERROR: seed JSON must be a list of place objects")
                return 2
            result = import_seed(service, records)
        else:
            result = import_csv(service, path.read_text(encoding="utf-8-sig"))
    finally:
        db.close()

    print(f"[import] backend={cfg.places_backend} imported={result.imported} failed={result.skipped}")
    for err in result.errors:
        print(f"  {err}")
    return 1 if result.errors else 0


def main():
    parser = argparse.ArgumentParser(description="Import places from CSV or seed JSON")
    parser.add_argument("path", type=Path, help="CSV or JSON file")
    parser.add_argument("--format", choices=["csv", "json"], default=None, help="Default: from file extension")
    parser.add_argument("--env-file", type=Path, default=Path(".env"))
    args = parser.parse_args()

    load_dotenv(args.env_file)

    if not args.path.exists():
        parser.error(f"no such file: {args.path}")

    fmt = args.format or ("json" if args.path.suffix.lower() == ".json" else "csv")
    sys.exit(run(args.path, fmt=fmt))


if __name__ == "__main__":
    main()
