# Pydantic models for Kafka message structures
import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from pydantic.alias_generators import to_camel

from doc_tracking_service.app.service.commands.models import DocumentReceivedCommand


class DocumentReceivedMessage(BaseModel):
    """A classified, filed document announced by the intake pipeline. Payload keys are camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    contact_id: Optional[str] = None
    sender_email: Optional[str] = None
    borrower_name: Optional[str] = None
    document_type: str
    drive_file_id: str
    source: str
    received_at: Optional[datetime.datetime] = None
    finmo_application_id: Optional[str] = None

    @field_validator('document_type', 'source')
    @classmethod
    def normalize_code(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError('must not be empty')
        return v

    @model_validator(mode='after')
    def check_borrower_identifiable(self) -> 'DocumentReceivedMessage':
        if not (self.contact_id or self.sender_email or self.borrower_name):
            raise ValueError('one of contactId, senderEmail or borrowerName is required')
        return self

    def to_command(self) -> DocumentReceivedCommand:
        fields = self.model_dump(exclude_none=True)
        return DocumentReceivedCommand(**fields)
