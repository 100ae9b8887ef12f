# Deal store backed by the CRM opportunities API
import logging
from typing import List

from doc_tracking_service.app.service.interfaces.crm_clients import (
    AbstractDealStore,
    CustomFieldUpdate,
    Deal,
)
from doc_tracking_service.infrastructure.crm.client import CrmHttpClient

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 20


class CrmOpportunitiesClient(AbstractDealStore):
    def __init__(self, crm_client: CrmHttpClient, location_id: str):
        self.crm_client = crm_client
        self.location_id = location_id

    async def search_open_deals(self, contact_id: str, pipeline_id: str) -> List[Deal]:
        params = {
            "location_id": self.location_id,
            "pipeline_id": pipeline_id,
            "contact_id": contact_id,
            "status": "open",
            "limit": SEARCH_LIMIT,
        }
        data = await self.crm_client.request("GET", "/opportunities/search", params=params)
        deals = [Deal.model_validate(item) for item in data.get("opportunities") or []]
        # The status filter is advisory on the CRM side
        open_deals = [deal for deal in deals if deal.status == "open"]
        logger.debug(f"Opportunity search for contact {contact_id}: {len(deals)} found, {len(open_deals)} open.")
        return open_deals

    async def get(self, deal_id: str) -> Deal:
        data = await self.crm_client.request("GET", f"/opportunities/{deal_id}")
        return Deal.model_validate(data["opportunity"])

    async def update_fields(self, deal_id: str, fields: List[CustomFieldUpdate]) -> None:
        body = {"customFields": [field.model_dump() for field in fields]}
        await self.crm_client.request("PUT", f"/opportunities/{deal_id}", json=body)

    async def update_stage(self, deal_id: str, stage_id: str) -> None:
        await self.crm_client.request("PUT", f"/opportunities/{deal_id}", json={"pipelineStageId": stage_id})
        logger.info(f"Opportunity {deal_id} moved to stage {stage_id}.")
