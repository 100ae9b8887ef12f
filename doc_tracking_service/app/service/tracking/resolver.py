# Borrower and deal resolution for a document-received event
import logging
from typing import List, Optional

from pydantic import BaseModel, Field

from doc_tracking_service.app.service.commands.models import DocumentReceivedCommand
from doc_tracking_service.app.service.interfaces.crm_clients import (
    AbstractBorrowerStore,
    AbstractDealStore,
    Deal,
)
from doc_tracking_service.app.service.tracking.matcher import is_property_specific

logger = logging.getLogger(__name__)


class DealScope(BaseModel):
    """
    Deals an event applies to. An empty, non-ambiguous scope means the borrower
    has no open deals and the borrower record itself is tracked.
    """
    deals: List[Deal] = Field(default_factory=list)
    ambiguous: bool = False

    @property
    def borrower_fallback(self) -> bool:
        return not self.ambiguous and not self.deals


async def resolve_contact_id(command: DocumentReceivedCommand, borrower_store: AbstractBorrowerStore) -> Optional[str]:
    if command.contact_id:
        return command.contact_id
    if command.sender_email:
        contact_id = await borrower_store.find_by_email(command.sender_email)
        if contact_id:
            return contact_id
    if command.borrower_name:
        return await borrower_store.find_by_name(command.borrower_name)
    return None


async def resolve_deal_scope(
    contact_id: str,
    document_type: str,
    finmo_application_id: Optional[str],
    deal_store: AbstractDealStore,
    pipeline_id: str,
    application_field_id: str,
) -> DealScope:
    found = await deal_store.search_open_deals(contact_id, pipeline_id)
    # Search results may include won/lost/abandoned deals; a missing status counts as open
    open_deals = [deal for deal in found if (deal.status or "open") == "open"]

    if len(open_deals) <= 1:
        return DealScope(deals=open_deals)

    if not is_property_specific(document_type):
        logger.info(f"Reusable document type '{document_type}' fans out to {len(open_deals)} open deals.")
        return DealScope(deals=open_deals)

    if finmo_application_id and application_field_id:
        matching = [
            deal for deal in open_deals
            if deal_store.read_field(deal, application_field_id) == finmo_application_id
        ]
        if len(matching) == 1:
            return DealScope(deals=matching)

    logger.info(
        f"Property-specific document type '{document_type}' cannot be placed: "
        f"{len(open_deals)} open deals and no unique application match."
    )
    return DealScope(ambiguous=True)
