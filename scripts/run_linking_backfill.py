"""
Linking backfill — link every unlinked document, repair thread links,
and advance workflow state of every shipment that was touched.

Dry run by default; nothing is written without --execute.

Usage:
    # See what would be linked
    python scripts/run_linking_backfill.py

    # Write links and state, then regenerate follow-up tasks
    python scripts/run_linking_backfill.py --execute --tasks

Safe to interrupt and re-run: links are keyed on document and state only
moves forward.
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


def print_summary(summary) -> None:
    print("=" * 60)
    print("LINKING BACKFILL" + (" (DRY RUN)" if summary.dry_run else ""))
    print("=" * 60)
    print(f"  Documents scanned:     {summary.documents_scanned}")
    print(f"  Linked:                {summary.documents_linked}")
    for method, count in sorted(summary.links_by_method.items()):
        print(f"    via {method:<18} {count}")
    print(f"  Still unlinked:        {summary.documents_unlinked}")
    print(f"  Link failures:         {summary.link_failures}")
    print("-" * 60)
    print(f"  Thread links repaired: {summary.links_repaired}")
    print(f"    relinked:            {summary.links_relinked}")
    print(f"    attempts exhausted:  {summary.repairs_exhausted}")
    print("-" * 60)
    print(f"  Shipments recomputed:  {summary.shipments_recomputed}")
    print(f"  States advanced:       {summary.states_advanced}")
    print(f"  Lost races:            {summary.lost_races}")
    print(f"  Unhandled doc types:   {summary.unhandled_type_count}")
    print(f"  Tasks generated:       {summary.tasks_generated}")
    print("=" * 60)


def main():
    parser = argparse.ArgumentParser(
        description="Link unlinked documents to shipments and advance workflow state."
    )
    parser.add_argument(
        "--execute",
        action="store_true",
        help="Write results (default is a dry run)",
    )
    parser.add_argument(
        "--skip-reconcile",
        action="store_true",
        help="Do not re-check existing thread links",
    )
    parser.add_argument(
        "--skip-recompute",
        action="store_true",
        help="Do not recompute workflow state",
    )
    parser.add_argument(
        "--tasks",
        action="store_true",
        help="Regenerate follow-up tasks for touched shipments",
    )
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings)

    try:
        store = ShipmentStore(create_supabase_client(settings))
        summary = BatchProcessor(store, settings).run(
            execute=args.execute,
            reconcile=not args.skip_reconcile,
            recompute=not args.skip_recompute,
            generate_tasks=args.tasks,
        )
    except StoreConnectionError as e:
        logger.error("backfill_aborted", error=e.message)
        print(f"ERROR: {e.message}")
        sys.exit(2)

    print_summary(summary)
    sys.exit(1 if summary.link_failures else 0)


if __name__ == "__main__":
    main()
