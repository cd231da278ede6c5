#!/usr/bin/env python3
"""Create document collections ahead of first use.

Usage:
    # Collections from the environment:
    JSONDOC_COLLECTIONS=users,orders python scripts/bootstrap_collections.py

    # Or named on the command line:
    python scripts/bootstrap_collections.py users orders

Environment Variables:
    DATABASE_URL: PostgreSQL connection string (uses the memory store if not set)
    JSONDOC_COLLECTIONS: Comma separated collection names
    JSONDOC_LOOKUP_COLUMN: Set to false to skip the generated doc_id column
"""
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import List

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def bootstrap_collections(names: List[str], dry_run: bool = False) -> List[dict]:
    """Ensure each collection exists.

    Returns:
        one dict per collection with name, lookup_column and status
    """
    # Import here to avoid loading config before env vars are set
    from jsondoc.config import get_settings
    from jsondoc.logging import log_scope
    from jsondoc.runtime import build_store
    from jsondoc.storage.schema import validate_collection_name

    settings = get_settings()
    if dry_run:
        for name in names:
            validate_collection_name(name)
            print(f"[DRY RUN] Would ensure collection {name}")
        return [{"name": name, "lookup_column": None, "status": "dry_run"} for name in names]

    store = build_store(settings.model_copy(update={"collections": []}))
    try:
        results = []
        with log_scope(operation="bootstrap_collections"):
            infos = store.bootstrap(names)
        for info in infos:
            results.append(
                {"name": info.name, "lookup_column": info.lookup_column, "status": "ready"}
            )
            print(f"Collection {info.name} ready (lookup column: {info.lookup_column or 'none'})")
        return results
    finally:
        store.close()


def main():
    parser = argparse.ArgumentParser(
        description="Create jsondoc collections",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "collections",
        nargs="*",
        help="Collection names (defaults to JSONDOC_COLLECTIONS)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate names without touching the database",
    )

    args = parser.parse_args()

    if not os.environ.get("DATABASE_URL"):
        os.environ["USE_MEMORY_STORE"] = "true"
        print("Note: Using in-memory store (set DATABASE_URL for persistence)")

    names = args.collections
    if not names:
        from jsondoc.config import get_settings

        names = get_settings().collections

    if not names:
        print("Error: name collections on the command line or set JSONDOC_COLLECTIONS")
        sys.exit(1)

    try:
        bootstrap_collections(names, args.dry_run)
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
