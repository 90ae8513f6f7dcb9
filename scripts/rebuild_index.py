#!/usr/bin/env python3
"""
Index Rebuild Utility
Re-adds stored report records that are missing from the report_keys index,
e.g. after a submission whose index append failed or lost a race.
"""

import argparse
import sys
from pathlib import Path

# Add the project root to sys.path to import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from credit_bureau.core.config import get_kv_store
from credit_bureau.core.errors import StoreUnavailable, StoreWriteError
from credit_bureau.core.store import ReportStore


def main(argv=None):
    """Rebuild the report index from the records present in the store."""
    parser = argparse.ArgumentParser(description="Recover orphaned credit reports into the index")
    parser.add_argument("--dry-run", action="store_true",
                        help="List orphaned reports without changing the index")
    args = parser.parse_args(argv)

    store = ReportStore(get_kv_store())

    if not store.kv.supports_scan:
        print(f"ERROR: {store.kv.__class__.__name__} cannot enumerate keys")
        sys.exit(1)

    print("Starting report index rebuild...")

    ids = store.list_ids()
    print(f"Found {len(ids)} ids in {store.index_key}")

    if args.dry_run:
        try:
            orphans = store.find_orphans()
        except StoreUnavailable as e:
            print(f"ERROR: {e}")
            sys.exit(1)

        for report in orphans:
            print(f"  would add {report.id}")
        print(f"Found {len(orphans)} orphaned reports")
        print("Dry run, index left unchanged.")
        return

    try:
        added = store.rebuild_index()
    except StoreUnavailable as e:
        print(f"ERROR: {e}")
        sys.exit(1)
    except StoreWriteError as e:
        print(f"ERROR: Failed to update index: {e}")
        sys.exit(1)

    if not added:
        print("✓ No orphaned reports found")
    else:
        for report_id in added:
            print(f"  + {report_id}")
        print(f"✓ Re-indexed {len(added)} orphaned reports")

    print("Index rebuild complete!")


if __name__ == "__main__":
    main()
