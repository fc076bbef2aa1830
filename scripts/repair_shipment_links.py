"""
Repair thread links that contradict their shipment.

Every active thread link is checked against the document's own booking
and bill numbers. Conflicting links are revoked, logged to
link_corrections, and the document is re-resolved by identifier.
Shipments on either side are then recomputed.

Usage:
    python scripts/repair_shipment_links.py            # dry run
    python scripts/repair_shipment_links.py --execute
"""

import argparse
import os
import sys

# Allow imports from the project root when running as a script
_root_dir = os.path.join(os.path.dirname(__file__), "..")
sys.path.insert(0, _root_dir)

from dotenv import load_dotenv
load_dotenv(os.path.join(_root_dir, ".env"))

import structlog

from config import configure_logging, create_supabase_client, get_settings
from exceptions import StoreConnectionError
from services.batch_processor import BatchProcessor
from services.shipment_store import ShipmentStore

logger = structlog.get_logger(__name__)


def main():
    parser = argparse.ArgumentParser(
        description="Revoke and re-resolve thread links that conflict with their shipment."
    )
    parser.add_argument(
        "--execute",
        action="store_true",
        help="Write repairs (default is a dry run)",
    )
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings)

    try:
        store = ShipmentStore(create_supabase_client(settings))
        summary = BatchProcessor(store, settings).run(
            execute=args.execute,
            link=False,
            reconcile=True,
            recompute=True,
        )
    except StoreConnectionError as e:
        logger.error("repair_aborted", error=e.message)
        print(f"ERROR: {e.message}")
        sys.exit(2)

    print("=" * 60)
    print("THREAD LINK REPAIR" + (" (DRY RUN)" if summary.dry_run else ""))
    print("=" * 60)
    print(f"  Links revoked:         {summary.links_repaired}")
    print(f"  Relinked elsewhere:    {summary.links_relinked}")
    print(f"  Left unlinked:         {summary.links_repaired - summary.links_relinked}")
    print(f"  Attempts exhausted:    {summary.repairs_exhausted}")
    print(f"  Shipments recomputed:  {summary.shipments_recomputed}")
    print(f"  States advanced:       {summary.states_advanced}")
    print("=" * 60)

    if not args.execute:
        print("\nDry run only. Re-run with --execute to apply.")


if __name__ == "__main__":
    main()
