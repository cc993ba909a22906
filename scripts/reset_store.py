#!/usr/bin/env python3
"""Drop every collection in a record store.

Usage:
    # Using environment variables:
    DATABASE_URL=postgresql://app@localhost/records python scripts/reset_store.py --yes

    # Or with command line args:
    python scripts/reset_store.py --database-url postgresql://app@localhost/records --yes

Environment Variables:
    DATABASE_URL: PostgreSQL connection string
    USE_MEMORY_STORE: Target the in-memory store instead (useful for dry runs)
"""
from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


async def reset_store(database_url: str | None = None, dry_run: bool = False) -> dict:
    """Drop all collections and close the store.

    Returns:
        dict with the masked target and status ('dropped' or 'dry_run')
    """
    # Import here to avoid loading config before env vars are set
    from recordstore.config import get_settings
    from recordstore.logging import mask_url_password
    from recordstore.runtime import create_store

    settings = get_settings()
    if database_url:
        settings = settings.model_copy(update={"database_url": database_url})
    target = "memory" if settings.use_memory_store else mask_url_password(settings.database_url)

    if dry_run:
        print(f"[DRY RUN] Would drop every collection in {target}")
        return {"target": target, "status": "dry_run"}

    store = create_store(settings)
    try:
        await store.delete_all()
    finally:
        await store.close()
    print(f"Dropped every collection in {target}")
    return {"target": target, "status": "dropped"}


def main() -> int:
    parser = argparse.ArgumentParser(description="Drop every collection in a record store")
    parser.add_argument(
        "--database-url",
        default=os.getenv("DATABASE_URL"),
        help="PostgreSQL connection string (default: DATABASE_URL)",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Confirm that all collections should be dropped",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would happen without dropping anything",
    )
    args = parser.parse_args()

    if not args.yes and not args.dry_run:
        print("Refusing to drop collections without --yes", file=sys.stderr)
        return 1

    try:
        asyncio.run(reset_store(args.database_url, dry_run=args.dry_run))
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
