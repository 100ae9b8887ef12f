# Dependency providers wiring the CRM adapters into the tracking engine
from dataclasses import dataclass

import httpx
from fastapi import Depends, Request

from doc_tracking_service.app.config import AppSettings, TrackingConfig, build_tracking_config, settings
from doc_tracking_service.app.service.interfaces.crm_clients import (
    AbstractBorrowerStore,
    AbstractDealStore,
    AbstractNotesClient,
    AbstractTasksClient,
)
from doc_tracking_service.infrastructure.crm.client import CrmHttpClient
from doc_tracking_service.infrastructure.crm.contacts import CrmContactsClient
from doc_tracking_service.infrastructure.crm.notes import CrmNotesClient
from doc_tracking_service.infrastructure.crm.opportunities import CrmOpportunitiesClient
from doc_tracking_service.infrastructure.crm.tasks import CrmTasksClient


@dataclass(frozen=True)
class CrmCollaborators:
    borrower_store: AbstractBorrowerStore
    deal_store: AbstractDealStore
    notes_client: AbstractNotesClient
    tasks_client: AbstractTasksClient


def build_crm_collaborators(http_client: httpx.AsyncClient, app_settings: AppSettings) -> CrmCollaborators:
    """Builds the four CRM adapters over one shared HTTP client. Used by both the API and the consumer."""
    crm_client = CrmHttpClient(http_client, app_settings)
    return CrmCollaborators(
        borrower_store=CrmContactsClient(
            crm_client,
            location_id=app_settings.CRM_LOCATION_ID,
            platform_managed_field_ids=app_settings.platform_managed_field_ids,
        ),
        deal_store=CrmOpportunitiesClient(crm_client, location_id=app_settings.CRM_LOCATION_ID),
        notes_client=CrmNotesClient(crm_client, author_user_id=app_settings.CRM_USER_ASSISTANT_ID),
        tasks_client=CrmTasksClient(
            crm_client,
            assignee_user_id=app_settings.CRM_USER_BROKER_ID,
            dev_mode=app_settings.is_dev,
        ),
    )


async def get_http_client(request: Request) -> httpx.AsyncClient:
    """Returns the shared httpx.AsyncClient held in `request.app.state.http_client`."""
    return request.app.state.http_client


def get_crm_collaborators(http_client: httpx.AsyncClient = Depends(get_http_client)) -> CrmCollaborators:
    return build_crm_collaborators(http_client, settings)


def get_tracking_config() -> TrackingConfig:
    return build_tracking_config(settings)
