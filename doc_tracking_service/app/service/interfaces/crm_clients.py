# Collaborator ports consumed by the tracking engine, with the CRM record shapes they exchange
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CrmModel(BaseModel):
    # CRM payloads are camelCase; Python code uses snake_case attribute names
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class CustomFieldUpdate(BaseModel):
    id: str
    field_value: Union[str, int, float]


class BorrowerCustomField(CrmModel):
    id: str
    value: Any = None


class BorrowerRecord(CrmModel):
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    custom_fields: List[BorrowerCustomField] = Field(default_factory=list)

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def field_value(self, field_id: str) -> Any:
        for field in self.custom_fields:
            if field.id == field_id:
                return field.value
        return None


class DealCustomField(CrmModel):
    id: str
    field_value_string: Optional[str] = None
    field_value_number: Optional[float] = None
    field_value_date: Optional[Union[str, int]] = None


class Deal(CrmModel):
    id: str
    name: Optional[str] = None
    contact_id: Optional[str] = None
    pipeline_id: Optional[str] = None
    pipeline_stage_id: Optional[str] = None
    status: Optional[str] = None
    custom_fields: List[DealCustomField] = Field(default_factory=list)

    def field_value(self, field_id: str) -> Optional[Union[str, float, int]]:
        """Typed deal fields: the string value wins, then the number, then the date."""
        for field in self.custom_fields:
            if field.id != field_id:
                continue
            if field.field_value_string is not None:
                return field.field_value_string
            if field.field_value_number is not None:
                return field.field_value_number
            if field.field_value_date is not None:
                return field.field_value_date
            return None
        return None


class AuditNoteInput(BaseModel):
    document_type: str # Display name of the matched checklist entry
    source: str
    drive_file_id: str


class AbstractBorrowerStore(ABC):
    @abstractmethod
    async def get(self, contact_id: str) -> BorrowerRecord:
        pass

    @abstractmethod
    async def upsert(
        self,
        email: Optional[str],
        first_name: Optional[str],
        last_name: Optional[str],
        custom_fields: List[CustomFieldUpdate],
    ) -> str:
        """Creates or updates a borrower keyed by email. Returns the contact id."""
        pass

    @abstractmethod
    async def find_by_email(self, email: str) -> Optional[str]:
        pass

    @abstractmethod
    async def find_by_name(self, full_name: str) -> Optional[str]:
        """
        Looks a borrower up by name. Returns None when the name is unknown or
        when two or more borrowers carry exactly that name.
        """
        pass


class AbstractDealStore(ABC):
    @abstractmethod
    async def search_open_deals(self, contact_id: str, pipeline_id: str) -> List[Deal]:
        pass

    @abstractmethod
    async def get(self, deal_id: str) -> Deal:
        pass

    @abstractmethod
    async def update_fields(self, deal_id: str, fields: List[CustomFieldUpdate]) -> None:
        pass

    @abstractmethod
    async def update_stage(self, deal_id: str, stage_id: str) -> None:
        pass

    def read_field(self, deal: Deal, field_id: str) -> Optional[Union[str, float, int]]:
        return deal.field_value(field_id)


class AbstractNotesClient(ABC):
    @abstractmethod
    async def create_audit_note(self, contact_id: str, note: AuditNoteInput) -> str:
        pass


class AbstractTasksClient(ABC):
    @abstractmethod
    async def create_readiness_task(self, contact_id: str, borrower_name: str) -> str:
        pass
