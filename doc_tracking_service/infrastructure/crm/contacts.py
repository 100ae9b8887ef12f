# Borrower store backed by the CRM contacts API
import logging
from typing import FrozenSet, List, Optional

from doc_tracking_service.app.service.interfaces.crm_clients import (
    AbstractBorrowerStore,
    BorrowerRecord,
    CustomFieldUpdate,
)
from doc_tracking_service.infrastructure.crm.client import CrmHttpClient

logger = logging.getLogger(__name__)

NAME_SEARCH_PAGE_LIMIT = 10


class CrmContactsClient(AbstractBorrowerStore):
    def __init__(self, crm_client: CrmHttpClient, location_id: str, platform_managed_field_ids: FrozenSet[str] = frozenset()):
        self.crm_client = crm_client
        self.location_id = location_id
        self.platform_managed_field_ids = platform_managed_field_ids

    async def get(self, contact_id: str) -> BorrowerRecord:
        data = await self.crm_client.request("GET", f"/contacts/{contact_id}")
        return BorrowerRecord.model_validate(data["contact"])

    async def upsert(
        self,
        email: Optional[str],
        first_name: Optional[str],
        last_name: Optional[str],
        custom_fields: List[CustomFieldUpdate],
    ) -> str:
        # Fields maintained by the mortgage platform's own sync must never be overwritten
        safe_fields = [field for field in custom_fields if field.id not in self.platform_managed_field_ids]
        if len(safe_fields) != len(custom_fields):
            logger.warning(f"Dropped {len(custom_fields) - len(safe_fields)} platform-managed field(s) from contact upsert.")

        body = {
            "locationId": self.location_id,
            "email": email,
            "firstName": first_name,
            "lastName": last_name,
            "customFields": [field.model_dump() for field in safe_fields],
        }
        data = await self.crm_client.request("POST", "/contacts/upsert", json=body)
        contact_id = data["contact"]["id"]
        logger.info(f"Contact {contact_id} upserted (new: {data.get('new', False)}).")
        return contact_id

    async def _search(self, query: str, page_limit: int) -> List[dict]:
        body = {"locationId": self.location_id, "query": query, "pageLimit": page_limit}
        data = await self.crm_client.request("POST", "/contacts/search", json=body)
        return data.get("contacts") or []

    async def find_by_email(self, email: str) -> Optional[str]:
        contacts = await self._search(email, 1)
        if not contacts:
            return None
        return contacts[0]["id"]

    async def find_by_name(self, full_name: str) -> Optional[str]:
        query = " ".join(full_name.split())
        if not query:
            return None
        contacts = await self._search(query, NAME_SEARCH_PAGE_LIMIT)

        wanted = query.casefold()
        exact = [
            contact for contact in contacts
            if " ".join(filter(None, (contact.get("firstName"), contact.get("lastName")))).casefold() == wanted
        ]
        if len(exact) == 1:
            return exact[0]["id"]
        if len(exact) > 1:
            logger.info(f"Name lookup ambiguous: {len(exact)} contacts share the name.")
            return None
        if len(contacts) == 1:
            return contacts[0]["id"]
        return None
