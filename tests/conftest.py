# Shared fixtures: in-memory CRM collaborators and tracking configuration
import copy
from typing import Dict, List, Optional, Tuple

import pytest

from doc_tracking_service.app.config import TrackingConfig, TrackingFieldIds
from doc_tracking_service.app.service.exceptions import CrmApiError
from doc_tracking_service.app.service.interfaces.crm_clients import (
    AbstractBorrowerStore,
    AbstractDealStore,
    AbstractNotesClient,
    AbstractTasksClient,
    AuditNoteInput,
    BorrowerCustomField,
    BorrowerRecord,
    CustomFieldUpdate,
    Deal,
    DealCustomField,
)

BORROWER_FIELD_IDS = TrackingFieldIds(
    doc_status="b-status",
    missing_docs="b-missing",
    received_docs="b-received",
    pre_docs_total="b-pre-total",
    pre_docs_received="b-pre-received",
    full_docs_total="b-full-total",
    full_docs_received="b-full-received",
)

DEAL_FIELD_IDS = TrackingFieldIds(
    doc_status="d-status",
    missing_docs="d-missing",
    received_docs="d-received",
    pre_docs_total="d-pre-total",
    pre_docs_received="d-pre-received",
    full_docs_total="d-full-total",
    full_docs_received="d-full-received",
)

APPLICATION_FIELD_ID = "d-finmo-app"
STAGE_ALL_DOCS_RECEIVED = "stage-all-docs"


def make_deal(
    deal_id: str,
    contact_id: str = "c1",
    missing: str = "",
    received: str = "",
    counters: Tuple[int, int, int, int] = (0, 0, 0, 0),
    status: Optional[str] = "open",
    application_id: Optional[str] = None,
) -> Deal:
    pre_total, pre_received, full_total, full_received = counters
    fields = [
        DealCustomField(id=DEAL_FIELD_IDS.missing_docs, field_value_string=missing),
        DealCustomField(id=DEAL_FIELD_IDS.received_docs, field_value_string=received),
        DealCustomField(id=DEAL_FIELD_IDS.pre_docs_total, field_value_number=pre_total),
        DealCustomField(id=DEAL_FIELD_IDS.pre_docs_received, field_value_number=pre_received),
        DealCustomField(id=DEAL_FIELD_IDS.full_docs_total, field_value_number=full_total),
        DealCustomField(id=DEAL_FIELD_IDS.full_docs_received, field_value_number=full_received),
    ]
    if application_id:
        fields.append(DealCustomField(id=APPLICATION_FIELD_ID, field_value_string=application_id))
    return Deal(id=deal_id, name=f"Deal {deal_id}", contact_id=contact_id, status=status, custom_fields=fields)


def make_borrower(
    contact_id: str = "c1",
    email: str = "jane@example.com",
    first_name: str = "Jane",
    last_name: str = "Doe",
    missing=None,
    received=None,
    counters: Tuple[int, int, int, int] = (0, 0, 0, 0),
) -> BorrowerRecord:
    pre_total, pre_received, full_total, full_received = counters
    values = {
        BORROWER_FIELD_IDS.missing_docs: missing,
        BORROWER_FIELD_IDS.received_docs: received,
        BORROWER_FIELD_IDS.pre_docs_total: pre_total,
        BORROWER_FIELD_IDS.pre_docs_received: pre_received,
        BORROWER_FIELD_IDS.full_docs_total: full_total,
        BORROWER_FIELD_IDS.full_docs_received: full_received,
    }
    return BorrowerRecord(
        id=contact_id,
        email=email,
        first_name=first_name,
        last_name=last_name,
        custom_fields=[BorrowerCustomField(id=field_id, value=value) for field_id, value in values.items() if value is not None],
    )


class InMemoryBorrowerStore(AbstractBorrowerStore):
    def __init__(self, contacts: Optional[List[BorrowerRecord]] = None):
        self.contacts: Dict[str, BorrowerRecord] = {c.id: c for c in contacts or []}
        self.upserts: List[tuple] = []
        self.email_lookups: List[str] = []
        self.get_calls: List[str] = []
        self.fail_upsert: Optional[Exception] = None

    async def get(self, contact_id: str) -> BorrowerRecord:
        self.get_calls.append(contact_id)
        if contact_id not in self.contacts:
            raise CrmApiError("CRM API error: 404 Not Found", 404)
        return copy.deepcopy(self.contacts[contact_id])

    async def upsert(self, email, first_name, last_name, custom_fields: List[CustomFieldUpdate]) -> str:
        if self.fail_upsert:
            raise self.fail_upsert
        self.upserts.append((email, first_name, last_name, custom_fields))
        contact = next(c for c in self.contacts.values() if c.email == email)
        for update in custom_fields:
            existing = next((f for f in contact.custom_fields if f.id == update.id), None)
            if existing:
                existing.value = update.field_value
            else:
                contact.custom_fields.append(BorrowerCustomField(id=update.id, value=update.field_value))
        return contact.id

    async def find_by_email(self, email: str) -> Optional[str]:
        self.email_lookups.append(email)
        return next((c.id for c in self.contacts.values() if c.email == email), None)

    async def find_by_name(self, full_name: str) -> Optional[str]:
        hits = [c.id for c in self.contacts.values() if c.full_name.lower() == full_name.lower()]
        return hits[0] if len(hits) == 1 else None


class InMemoryDealStore(AbstractDealStore):
    """Search returns every deal of the contact regardless of status, like an unfiltered CRM search."""

    def __init__(self, deals: Optional[List[Deal]] = None):
        self.deals: Dict[str, Deal] = {d.id: d for d in deals or []}
        self.field_updates: List[Tuple[str, List[CustomFieldUpdate]]] = []
        self.stage_updates: List[Tuple[str, str]] = []
        self.fail_update_for: Dict[str, Exception] = {}
        self.fail_get_for: Dict[str, Exception] = {}

    async def search_open_deals(self, contact_id: str, pipeline_id: str) -> List[Deal]:
        return [copy.deepcopy(d) for d in self.deals.values() if d.contact_id == contact_id]

    async def get(self, deal_id: str) -> Deal:
        if deal_id in self.fail_get_for:
            raise self.fail_get_for[deal_id]
        return copy.deepcopy(self.deals[deal_id])

    async def update_fields(self, deal_id: str, fields: List[CustomFieldUpdate]) -> None:
        if deal_id in self.fail_update_for:
            raise self.fail_update_for[deal_id]
        self.field_updates.append((deal_id, fields))
        deal = self.deals[deal_id]
        for update in fields:
            field = next((f for f in deal.custom_fields if f.id == update.id), None)
            if field is None:
                field = DealCustomField(id=update.id)
                deal.custom_fields.append(field)
            if isinstance(update.field_value, str):
                field.field_value_string = update.field_value
                field.field_value_number = None
            else:
                field.field_value_string = None
                field.field_value_number = update.field_value

    async def update_stage(self, deal_id: str, stage_id: str) -> None:
        self.stage_updates.append((deal_id, stage_id))


class RecordingNotesClient(AbstractNotesClient):
    def __init__(self):
        self.notes: List[Tuple[str, AuditNoteInput]] = []
        self.fail_with: Optional[Exception] = None

    async def create_audit_note(self, contact_id: str, note: AuditNoteInput) -> str:
        if self.fail_with:
            raise self.fail_with
        self.notes.append((contact_id, note))
        return f"note-{len(self.notes)}"


class RecordingTasksClient(AbstractTasksClient):
    def __init__(self):
        self.tasks: List[Tuple[str, str]] = []
        self.fail_with: Optional[Exception] = None

    async def create_readiness_task(self, contact_id: str, borrower_name: str) -> str:
        if self.fail_with:
            raise self.fail_with
        self.tasks.append((contact_id, borrower_name))
        return f"task-{len(self.tasks)}"


@pytest.fixture
def tracking_config():
    return TrackingConfig(
        borrower_field_ids=BORROWER_FIELD_IDS,
        deal_field_ids=DEAL_FIELD_IDS,
        pipeline_id="pipeline-live",
        all_docs_received_stage_id=STAGE_ALL_DOCS_RECEIVED,
        application_field_id=APPLICATION_FIELD_ID,
    )


@pytest.fixture
def borrower_store():
    return InMemoryBorrowerStore([make_borrower()])


@pytest.fixture
def deal_store():
    return InMemoryDealStore()


@pytest.fixture
def notes_client():
    return RecordingNotesClient()


@pytest.fixture
def tasks_client():
    return RecordingTasksClient()
