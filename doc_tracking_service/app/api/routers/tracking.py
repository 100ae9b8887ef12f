# API Router for submitting document-received events directly (manual replays, backfills)
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from doc_tracking_service.app.config import TrackingConfig
from doc_tracking_service.app.dependencies.crm import CrmCollaborators, get_crm_collaborators, get_tracking_config
from doc_tracking_service.app.service.commands.handlers import handle_document_received
from doc_tracking_service.app.service.commands.models import TrackingUpdateResult
from doc_tracking_service.app.service.exceptions import CrmApiError
from doc_tracking_service.infrastructure.kafka.schemas import DocumentReceivedMessage

logger = logging.getLogger(__name__)
router = APIRouter()

@router.post(
    "/tracking/document-received",
    response_model=TrackingUpdateResult,
    response_model_by_alias=True,
    response_model_exclude_none=True,
    tags=["Tracking"],
)
async def document_received(
    event: DocumentReceivedMessage,
    collaborators: CrmCollaborators = Depends(get_crm_collaborators),
    tracking_config: TrackingConfig = Depends(get_tracking_config),
):
    command = event.to_command()
    try:
        return await handle_document_received(
            command,
            borrower_store=collaborators.borrower_store,
            deal_store=collaborators.deal_store,
            notes_client=collaborators.notes_client,
            tasks_client=collaborators.tasks_client,
            tracking_config=tracking_config,
        )
    except CrmApiError as e:
        logger.error(f"CRM failure while handling command {command.command_id}: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"CRM request failed: {e}")
