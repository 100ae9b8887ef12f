# API Router for Health Checks
import logging

from fastapi import APIRouter

from doc_tracking_service.app.config import REQUIRED_SETTINGS, settings

logger = logging.getLogger(__name__)
router = APIRouter()

@router.get("/health", tags=["Monitoring"])
async def health_check():
    crm_config_status = "configured"
    if any(not getattr(settings, key) for key in REQUIRED_SETTINGS):
        logger.warning("Health check: CRM configuration incomplete.")
        crm_config_status = "incomplete"
    return {"status": "ok", "components": {"crm_config": crm_config_status}, "service_name": settings.SERVICE_NAME_API}
