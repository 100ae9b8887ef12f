# HTTP client for the CRM REST API, shared by the contact/opportunity/note/task adapters
import logging
from typing import Any, Dict, Optional

import httpx

from doc_tracking_service.app.config import AppSettings
from doc_tracking_service.app.service.exceptions import CrmApiError, CrmAuthError, CrmRateLimitError

logger = logging.getLogger(__name__)


class CrmHttpClient:
    """
    Issues authenticated requests against the CRM and classifies failures into
    typed errors. Error messages carry status codes only, never request payloads.
    """

    def __init__(self, http_client: httpx.AsyncClient, app_settings: AppSettings):
        self.http_client = http_client
        self.settings = app_settings

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.CRM_API_KEY}",
            "Version": self.settings.CRM_API_VERSION,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = f"{self.settings.CRM_BASE_URL.rstrip('/')}{path}"
        logger.debug(f"CRM request: {method} {path}")

        try:
            response = await self.http_client.request(method, url, json=json, params=params, headers=self._headers())
        except httpx.RequestError as e:
            logger.error(f"Request error calling CRM {method} {path}: {type(e).__name__}", exc_info=True)
            raise CrmApiError(f"CRM API request failed: {e}", 0) from e

        if response.status_code == 429:
            raise CrmRateLimitError(response.text)
        if response.status_code == 401:
            raise CrmAuthError(response.text)
        if response.is_error:
            logger.error(f"HTTP error calling CRM {method} {path}: {response.status_code}")
            raise CrmApiError(
                f"CRM API error: {response.status_code} {response.reason_phrase}",
                response.status_code,
                response.text,
            )

        if not response.content:
            return {}
        return response.json()
