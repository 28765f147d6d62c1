#!/usr/bin/env python3
"""
scripts/apply_supabase_schema.py

Create (or update) the places table, indexes, RLS policy and the
get_places_in_bounds / get_nearby_places RPCs on a Supabase Postgres.

Idempotent: every statement is CREATE ... IF NOT EXISTS / CREATE OR REPLACE,
so re-running after a schema tweak is safe.

  python scripts/apply_supabase_schema.py --database-url postgresql://...
"""

from __future__ import annotations

import argparse
import os
import sys

try:
    import psycopg2
except ImportError:
    print("ERROR: psycopg2-binary not installed.")
    print("  pip install 'michigan-munchies[postgres]'")
    sys.exit(1)

from munchies.core.places_db import POSTGRES_SCHEMA_SQL


def apply_schema(database_url: str, *, dry_run: bool = False) -> None:
    if dry_run:
        print(POSTGRES_SCHEMA_SQL)
        return

    print("[schema] Connecting ...")
    pg = psycopg2.connect(database_url)
    try:
        with pg:
            with pg.cursor() as cur:
                cur.execute(POSTGRES_SCHEMA_SQL)
                cur.execute("SELECT COUNT(*) FROM places")
                (n,) = cur.fetchone()
        print(f"[schema] ✅ Applied. places currently has {n:,} rows")
    finally:
        pg.close()


def main():
    parser = argparse.ArgumentParser(description="Apply the places schema + RPCs to Supabase Postgres")
    parser.add_argument(
        "--database-url",
        default=os.environ.get("SUPABASE_DB_URL"),
        help="Postgres connection string (default: $SUPABASE_DB_URL)",
    )
    parser.add_argument("--dry-run", action="store_true", help="Print the SQL instead of running it")
    args = parser.parse_args()

    if not args.database_url and not args.dry_run:
        parser.error("--database-url (or SUPABASE_DB_URL) is required")

    apply_schema(args.database_url, dry_run=args.dry_run)


if __name__ == "__main__":
    main()
