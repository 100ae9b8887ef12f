# Application Configuration using Pydantic BaseSettings
import logging
from typing import FrozenSet, Optional

from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict

from doc_tracking_service.app.service.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class TrackingFieldIds(BaseModel):
    """Logical tracking field names mapped to the CRM's opaque custom field ids."""
    model_config = ConfigDict(frozen=True)

    doc_status: str = ""
    missing_docs: str = ""
    received_docs: str = ""
    pre_docs_total: str = ""
    pre_docs_received: str = ""
    full_docs_total: str = ""
    full_docs_received: str = ""
    last_doc_received: Optional[str] = None # Optional: date of the last receipt


class AppSettings(BaseSettings):
    APP_ENV: str = "development" # development | production

    # CRM API
    CRM_BASE_URL: str = "https://services.leadconnectorhq.com"
    CRM_API_KEY: str = ""
    CRM_LOCATION_ID: str = ""
    CRM_API_VERSION: str = "2021-07-28"
    DEFAULT_HTTP_TIMEOUT: float = 10.0

    # CRM users
    CRM_USER_ASSISTANT_ID: str = "" # Audit notes are attributed to this user
    CRM_USER_BROKER_ID: str = "" # Readiness tasks are assigned to this user

    # Pipeline
    LIVE_DEALS_PIPELINE_ID: str = ""
    STAGE_ALL_DOCS_RECEIVED_ID: str = ""

    # Deal-level reference to the mortgage platform application
    DEAL_FIELD_FINMO_APPLICATION_ID: str = ""

    # Contact fields owned by the mortgage platform's own sync; never written by this service
    CONTACT_FIELD_FINMO_DEAL_ID: str = ""
    CONTACT_FIELD_FINMO_APPLICATION_ID: str = ""
    CONTACT_FIELD_FINMO_DEAL_LINK_ID: str = ""

    # Borrower (contact) record tracking fields
    BORROWER_FIELD_DOC_STATUS_ID: str = ""
    BORROWER_FIELD_MISSING_DOCS_ID: str = ""
    BORROWER_FIELD_RECEIVED_DOCS_ID: str = ""
    BORROWER_FIELD_PRE_TOTAL_ID: str = ""
    BORROWER_FIELD_PRE_RECEIVED_ID: str = ""
    BORROWER_FIELD_FULL_TOTAL_ID: str = ""
    BORROWER_FIELD_FULL_RECEIVED_ID: str = ""
    BORROWER_FIELD_LAST_DOC_RECEIVED_ID: Optional[str] = None

    # Deal (opportunity) record tracking fields
    DEAL_FIELD_DOC_STATUS_ID: str = ""
    DEAL_FIELD_MISSING_DOCS_ID: str = ""
    DEAL_FIELD_RECEIVED_DOCS_ID: str = ""
    DEAL_FIELD_PRE_TOTAL_ID: str = ""
    DEAL_FIELD_PRE_RECEIVED_ID: str = ""
    DEAL_FIELD_FULL_TOTAL_ID: str = ""
    DEAL_FIELD_FULL_RECEIVED_ID: str = ""
    DEAL_FIELD_LAST_DOC_RECEIVED_ID: Optional[str] = None

    # Kafka
    KAFKA_BOOTSTRAP_SERVERS: str = "kafka:29092"
    KAFKA_DOCUMENT_TOPIC: str = "document_received_events"
    KAFKA_CONSUMER_GROUP_ID: str = "doc_tracking_group"
    TRACKING_MAX_ATTEMPTS: int = 3

    # Observability
    LOG_LEVEL: str = "INFO"
    OTEL_EXPORTER_OTLP_TRACES_ENDPOINT: Optional[str] = None
    OTEL_EXPORTER_OTLP_METRICS_ENDPOINT: Optional[str] = None
    SERVICE_NAME_API: str = "doc-tracking-api"
    SERVICE_NAME_CONSUMER: str = "doc-tracking-consumer"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def is_dev(self) -> bool:
        return self.APP_ENV == "development"

    @property
    def platform_managed_field_ids(self) -> FrozenSet[str]:
        ids = (
            self.CONTACT_FIELD_FINMO_DEAL_ID,
            self.CONTACT_FIELD_FINMO_APPLICATION_ID,
            self.CONTACT_FIELD_FINMO_DEAL_LINK_ID,
        )
        return frozenset(field_id for field_id in ids if field_id)

    @property
    def borrower_field_ids(self) -> TrackingFieldIds:
        return TrackingFieldIds(
            doc_status=self.BORROWER_FIELD_DOC_STATUS_ID,
            missing_docs=self.BORROWER_FIELD_MISSING_DOCS_ID,
            received_docs=self.BORROWER_FIELD_RECEIVED_DOCS_ID,
            pre_docs_total=self.BORROWER_FIELD_PRE_TOTAL_ID,
            pre_docs_received=self.BORROWER_FIELD_PRE_RECEIVED_ID,
            full_docs_total=self.BORROWER_FIELD_FULL_TOTAL_ID,
            full_docs_received=self.BORROWER_FIELD_FULL_RECEIVED_ID,
            last_doc_received=self.BORROWER_FIELD_LAST_DOC_RECEIVED_ID,
        )

    @property
    def deal_field_ids(self) -> TrackingFieldIds:
        return TrackingFieldIds(
            doc_status=self.DEAL_FIELD_DOC_STATUS_ID,
            missing_docs=self.DEAL_FIELD_MISSING_DOCS_ID,
            received_docs=self.DEAL_FIELD_RECEIVED_DOCS_ID,
            pre_docs_total=self.DEAL_FIELD_PRE_TOTAL_ID,
            pre_docs_received=self.DEAL_FIELD_PRE_RECEIVED_ID,
            full_docs_total=self.DEAL_FIELD_FULL_TOTAL_ID,
            full_docs_received=self.DEAL_FIELD_FULL_RECEIVED_ID,
            last_doc_received=self.DEAL_FIELD_LAST_DOC_RECEIVED_ID,
        )


REQUIRED_SETTINGS = (
    "CRM_API_KEY",
    "CRM_LOCATION_ID",
    "CRM_USER_ASSISTANT_ID",
    "CRM_USER_BROKER_ID",
    "LIVE_DEALS_PIPELINE_ID",
    "STAGE_ALL_DOCS_RECEIVED_ID",
)


def validate_config(app_settings: AppSettings) -> None:
    """
    Checks that every setting needed at runtime is populated.

    Missing tracking field ids only produce a warning: a deployment may track
    exclusively on deals (or exclusively on borrowers) while the other set is
    still being provisioned.
    """
    missing = [key for key in REQUIRED_SETTINGS if not getattr(app_settings, key)]
    if missing:
        raise ConfigurationError(
            "Configuration incomplete. Missing environment variables: " + ", ".join(missing)
        )

    for label, field_ids in (("Borrower", app_settings.borrower_field_ids), ("Deal", app_settings.deal_field_ids)):
        unset = [name for name, value in field_ids.model_dump().items() if value == ""]
        if unset:
            logger.warning(f"{label} tracking field ids not configured: {unset}")


class TrackingConfig(BaseModel):
    """Static configuration handed to the tracking engine."""
    model_config = ConfigDict(frozen=True)

    borrower_field_ids: TrackingFieldIds
    deal_field_ids: TrackingFieldIds
    pipeline_id: str
    all_docs_received_stage_id: str = ""
    application_field_id: str = "" # Deal field holding the mortgage platform application id


def build_tracking_config(app_settings: AppSettings) -> TrackingConfig:
    return TrackingConfig(
        borrower_field_ids=app_settings.borrower_field_ids,
        deal_field_ids=app_settings.deal_field_ids,
        pipeline_id=app_settings.LIVE_DEALS_PIPELINE_ID,
        all_docs_received_stage_id=app_settings.STAGE_ALL_DOCS_RECEIVED_ID,
        application_field_id=app_settings.DEAL_FIELD_FINMO_APPLICATION_ID,
    )


settings = AppSettings()

logger.info("Application settings module initialized.")
