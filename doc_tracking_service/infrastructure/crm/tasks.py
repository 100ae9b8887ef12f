# Broker-facing tasks on CRM contacts
import datetime
import logging

from doc_tracking_service.app.service.exceptions import ConfigurationError
from doc_tracking_service.app.service.interfaces.crm_clients import AbstractTasksClient
from doc_tracking_service.infrastructure.crm.client import CrmHttpClient

logger = logging.getLogger(__name__)

DEV_TITLE_PREFIX = "[TEST] "
READINESS_TASK_BODY = "All PRE-approval documents have been received. Client is ready for budget call."


def add_business_days(start: datetime.datetime, days: int) -> datetime.datetime:
    """Adds `days` business days to `start`, skipping Saturdays and Sundays."""
    result = start
    remaining = days
    while remaining > 0:
        result += datetime.timedelta(days=1)
        if result.weekday() < 5:
            remaining -= 1
    return result


class CrmTasksClient(AbstractTasksClient):
    def __init__(self, crm_client: CrmHttpClient, assignee_user_id: str, dev_mode: bool = False):
        self.crm_client = crm_client
        self.assignee_user_id = assignee_user_id
        self.dev_mode = dev_mode

    def _title(self, title: str) -> str:
        return f"{DEV_TITLE_PREFIX}{title}" if self.dev_mode else title

    async def create_readiness_task(self, contact_id: str, borrower_name: str) -> str:
        if not self.assignee_user_id:
            raise ConfigurationError("Broker user ID not configured")

        due = add_business_days(datetime.datetime.now(datetime.UTC), 1)
        body = {
            "title": self._title(f"PRE docs complete — {borrower_name}"),
            "body": READINESS_TASK_BODY,
            "assignedTo": self.assignee_user_id,
            "dueDate": due.isoformat(),
            "completed": False,
        }
        data = await self.crm_client.request("POST", f"/contacts/{contact_id}/tasks", json=body)
        task_id = data["task"]["id"]
        logger.info(f"PRE readiness task {task_id} created on contact {contact_id}.")
        return task_id
