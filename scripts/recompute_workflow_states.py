"""
Recompute workflow state from linked documents.

State only ever moves forward (or to cancelled), so this can be run at
any time to catch shipments whose state lags behind their documents.

Usage:
    python scripts/recompute_workflow_states.py                     # all, dry run
    python scripts/recompute_workflow_states.py --execute
    python scripts/recompute_workflow_states.py --shipment-id <uuid> --execute
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
        description="Recompute shipment workflow states from linked documents."
    )
    parser.add_argument(
        "--execute",
        action="store_true",
        help="Write state changes (default is a dry run)",
    )
    parser.add_argument(
        "--shipment-id",
        action="append",
        default=[],
        help="Only this shipment (repeatable)",
    )
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings)
    dry_run = not args.execute

    try:
        store = ShipmentStore(create_supabase_client(settings))
        processor = BatchProcessor(store, settings)

        if args.shipment_id:
            results = processor.recompute_states(args.shipment_id, dry_run=dry_run)
            for result in results:
                marker = "->" if result.new_state != result.previous_state else "=="
                print(f"  {result.shipment_id}  {result.previous_state or '-'} {marker} "
                      f"{result.new_state or '-'}  ({result.reason})")
            changed = sum(1 for r in results if r.new_state != r.previous_state)
            total = len(args.shipment_id)
        else:
            summary = processor.recompute_all(dry_run=dry_run)
            changed = summary.states_advanced
            total = summary.shipments_recomputed + summary.state_failures
    except StoreConnectionError as e:
        logger.error("recompute_aborted", error=e.message)
        print(f"ERROR: {e.message}")
        sys.exit(2)

    print("=" * 60)
    print("WORKFLOW RECOMPUTE" + (" (DRY RUN)" if dry_run else ""))
    print("=" * 60)
    print(f"  Shipments: {total}")
    print(f"  {'Would advance' if dry_run else 'Advanced'}: {changed}")
    print("=" * 60)


if __name__ == "__main__":
    main()
