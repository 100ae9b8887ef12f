# Audit notes on CRM contacts
import datetime
import logging
from typing import Optional

from doc_tracking_service.app.service.interfaces.crm_clients import AbstractNotesClient, AuditNoteInput
from doc_tracking_service.infrastructure.crm.client import CrmHttpClient

logger = logging.getLogger(__name__)

NOTE_FOOTER = "[Automated by Doc Tracking Service]"


def build_audit_note_body(note: AuditNoteInput, received_at: Optional[datetime.datetime] = None) -> str:
    received_at = received_at or datetime.datetime.now(datetime.UTC)
    return "\n".join([
        f"Document received: {note.document_type}",
        f"Source: {note.source}",
        f"Filed to Drive: {note.drive_file_id}",
        f"Received: {received_at.isoformat()}",
        "",
        NOTE_FOOTER,
    ])


class CrmNotesClient(AbstractNotesClient):
    def __init__(self, crm_client: CrmHttpClient, author_user_id: str):
        self.crm_client = crm_client
        self.author_user_id = author_user_id

    async def create_audit_note(self, contact_id: str, note: AuditNoteInput) -> str:
        body = {"body": build_audit_note_body(note), "userId": self.author_user_id}
        data = await self.crm_client.request("POST", f"/contacts/{contact_id}/notes", json=body)
        note_id = data["note"]["id"]
        logger.info(f"Audit note {note_id} created on contact {contact_id}.")
        return note_id
