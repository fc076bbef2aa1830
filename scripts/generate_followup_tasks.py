"""
Generate scored follow-up tasks for shipments.

Tasks are upserted on their natural key, so running this repeatedly
refreshes priorities without creating duplicates.

Usage:
    python scripts/generate_followup_tasks.py                  # all, dry run
    python scripts/generate_followup_tasks.py --execute
    python scripts/generate_followup_tasks.py --shipment-id <uuid> --top 5
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
from services.task_service import TaskService

logger = structlog.get_logger(__name__)


def main():
    parser = argparse.ArgumentParser(
        description="Generate prioritized follow-up tasks from shipment state."
    )
    parser.add_argument(
        "--execute",
        action="store_true",
        help="Upsert tasks (default is a dry run)",
    )
    parser.add_argument(
        "--shipment-id",
        action="append",
        default=[],
        help="Only this shipment (repeatable)",
    )
    parser.add_argument(
        "--top",
        type=int,
        default=10,
        help="How many tasks to print per shipment (with --shipment-id)",
    )
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings)
    dry_run = not args.execute

    try:
        store = ShipmentStore(create_supabase_client(settings))

        if args.shipment_id:
            service = TaskService(store)
            for shipment_id in args.shipment_id:
                candidates = service.generate_for_shipment(shipment_id, dry_run=dry_run)
                print(f"\n{shipment_id}")
                print("-" * 60)
                for candidate in candidates[:args.top]:
                    print(f"  [{candidate.priority_label.value:<8}] {candidate.priority_score:>3}  "
                          f"{candidate.title}")
            return

        summary = BatchProcessor(store, settings).generate_tasks_for_all(dry_run=dry_run)
    except StoreConnectionError as e:
        logger.error("task_generation_aborted", error=e.message)
        print(f"ERROR: {e.message}")
        sys.exit(2)

    print("=" * 60)
    print("FOLLOW-UP TASKS" + (" (DRY RUN)" if dry_run else ""))
    print("=" * 60)
    print(f"  Tasks {'built' if dry_run else 'upserted'}: {summary.tasks_generated}")
    print(f"  Failures: {summary.task_failures}")
    print("=" * 60)


if __name__ == "__main__":
    main()
