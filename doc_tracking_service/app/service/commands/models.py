# Pydantic models for the document-received command and its result
import datetime
import uuid
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SkipReason = Literal["no-contact", "ambiguous-deal", "no-match-in-checklist"]
TrackingTargetKind = Literal["opportunity", "contact"]


class BaseCommand(BaseModel):
    command_id: str = Field(default_factory=lambda: str(uuid.uuid4()))


class DocumentReceivedCommand(BaseCommand):
    # Borrower identification, tried in this order: contact_id, sender_email, borrower_name
    contact_id: Optional[str] = None
    sender_email: Optional[str] = None
    borrower_name: Optional[str] = None # Classifier's name guess

    document_type: str # Classifier type code, e.g. "t4", "pay_stub"
    drive_file_id: str
    source: str # e.g. "gmail", "finmo"
    received_at: datetime.datetime = Field(default_factory=lambda: datetime.datetime.now(datetime.UTC))
    finmo_application_id: Optional[str] = None # Selects the deal for property-specific documents


class TrackingUpdateResult(BaseModel):
    """Outcome of one document-received event. Serialized camelCase for callers."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    updated: bool
    reason: Optional[SkipReason] = None
    contact_id: Optional[str] = None
    opportunity_id: Optional[str] = None
    tracking_target: Optional[TrackingTargetKind] = None
    cross_deal_updates: Optional[int] = None
    new_status: Optional[str] = None
    note_id: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
