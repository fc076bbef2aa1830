"""
Shipment workflow and priority routes.

Read/compute surface for the dashboard plus manual workflow correction.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
import structlog

from models.priority import PriorityResult
from models.task import TaskCandidate
from models.workflow import (
    ShipmentWorkflowStatus,
    TransitionResult,
    WorkflowCorrectionRequest,
)
from routes.dependencies import get_store, handle_error
from services.shipment_store import ShipmentStore
from services.task_service import TaskService
from services.workflow_state_machine import WorkflowStateService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/shipments", tags=["Shipments"])


# ===================
# WORKFLOW
# ===================

@router.get("/{shipment_id}/workflow", response_model=ShipmentWorkflowStatus)
async def get_workflow(
    shipment_id: str,
    history_limit: int = Query(20, ge=0, le=200, description="History rows to include"),
    store: ShipmentStore = Depends(get_store)
):
    """
    Get a shipment's workflow state, phase and recent transitions.
    """
    try:
        return WorkflowStateService(store).get_status(shipment_id, history_limit=history_limit)

    except Exception as e:
        return handle_error(e)


@router.post("/{shipment_id}/workflow/recompute", response_model=TransitionResult)
async def recompute_workflow(
    shipment_id: str,
    dry_run: bool = Query(False, description="Compute without writing"),
    store: ShipmentStore = Depends(get_store)
):
    """
    Recompute workflow state from the shipment's linked documents.

    Never moves the state backward; safe to call repeatedly.
    """
    try:
        return WorkflowStateService(store).recompute(shipment_id, dry_run=dry_run)

    except Exception as e:
        return handle_error(e)


@router.post("/{shipment_id}/workflow/correct", response_model=TransitionResult)
async def correct_workflow(
    shipment_id: str,
    data: WorkflowCorrectionRequest,
    store: ShipmentStore = Depends(get_store)
):
    """
    Manually set a shipment's workflow state.

    Backward moves return 422 unless force is set.
    """
    try:
        logger.info(
            "workflow_correction_requested",
            shipment_id=shipment_id,
            state=data.state,
            force=data.force
        )
        return WorkflowStateService(store).correct_state(
            shipment_id,
            data.state,
            data.reason,
            force=data.force,
            corrected_by=data.corrected_by
        )

    except Exception as e:
        return handle_error(e)


# ===================
# PRIORITY
# ===================

@router.get("/{shipment_id}/priority", response_model=PriorityResult)
async def get_priority(
    shipment_id: str,
    at: Optional[datetime] = Query(None, description="Score as of this time (default now)"),
    store: ShipmentStore = Depends(get_store)
):
    """
    Priority score (0-100), label and factor breakdown for a shipment.
    """
    try:
        return TaskService(store).score_shipment(shipment_id, now=at)

    except Exception as e:
        return handle_error(e)


@router.get("/{shipment_id}/tasks", response_model=list[TaskCandidate])
async def get_tasks(
    shipment_id: str,
    store: ShipmentStore = Depends(get_store)
):
    """
    Ranked follow-up task candidates for a shipment. Writes nothing.
    """
    try:
        return TaskService(store).generate_for_shipment(shipment_id, dry_run=True)

    except Exception as e:
        return handle_error(e)


@router.post("/{shipment_id}/tasks/generate", response_model=list[TaskCandidate])
async def generate_tasks(
    shipment_id: str,
    store: ShipmentStore = Depends(get_store)
):
    """
    Upsert the shipment's follow-up tasks.

    Tasks are keyed on dedup_key, so repeated calls do not duplicate them.
    """
    try:
        return TaskService(store).generate_for_shipment(shipment_id)

    except Exception as e:
        return handle_error(e)
