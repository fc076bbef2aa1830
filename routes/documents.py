"""
Document resolution routes.
"""

from fastapi import APIRouter, Depends
import structlog

from exceptions import ValidationError
from models.link import ResolvePreviewRequest, ResolvePreviewResponse
from routes.dependencies import get_store, handle_error
from services.shipment_index import ShipmentIndex
from services.shipment_resolver import ShipmentResolver
from services.shipment_store import ShipmentStore

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/documents", tags=["Documents"])


@router.post("/resolve", response_model=ResolvePreviewResponse)
async def resolve_document(
    data: ResolvePreviewRequest,
    store: ShipmentStore = Depends(get_store)
):
    """
    Preview which shipment a document would link to.

    Builds a fresh index snapshot and runs the cascade. Writes nothing.
    """
    try:
        if data.document is not None:
            document = data.document
        elif data.document_id:
            document = store.get_document(data.document_id)
        else:
            raise ValidationError("Provide document_id or document")

        index = ShipmentIndex.build(store.iter_shipments(), store.iter_thread_links())
        resolver = ShipmentResolver(index)

        resolution = resolver.resolve(document)
        authority = resolver.thread_authority(document)
        thread_conflict = resolver.find_conflict(document, authority.shipment_id) if authority else None

        logger.info(
            "resolution_previewed",
            document_id=document.id,
            shipment_id=resolution.shipment_id if resolution else None,
            method=resolution.method.value if resolution else None
        )

        return ResolvePreviewResponse(
            document_id=document.id,
            resolution=resolution,
            thread_conflict=thread_conflict,
            existing_link=store.get_link(document.id),
        )

    except Exception as e:
        return handle_error(e)
