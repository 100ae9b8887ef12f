# FastAPI Application Entry Point
import httpx
from fastapi import FastAPI

from doc_tracking_service.app.config import settings, validate_config
from doc_tracking_service.app.observability import logger, setup_opentelemetry
from doc_tracking_service.app.service.exceptions import ConfigurationError

# Initialize OpenTelemetry
setup_opentelemetry(service_name=settings.SERVICE_NAME_API)

# Import instrumentors after OTel SDK is initialized
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from doc_tracking_service.app.api.routers import health as health_router
from doc_tracking_service.app.api.routers import tracking as tracking_router

app = FastAPI(
    title="Doc Tracking Service",
    description="Keeps borrower and deal document-collection tracking in the CRM in sync with received documents.",
    version="0.1.0"
)

@app.on_event("startup")
async def startup_event():
    logger.info("FastAPI application startup...")
    try:
        validate_config(settings)
    except ConfigurationError as e:
        # The health endpoint reports the gap; tracking requests will fail at the CRM
        logger.error(f"Configuration check failed: {e}")

    app.state.http_client = httpx.AsyncClient(timeout=settings.DEFAULT_HTTP_TIMEOUT)
    HTTPXClientInstrumentor.instrument_client(app.state.http_client)
    logger.info(f"HTTPX AsyncClient initialized with timeout {settings.DEFAULT_HTTP_TIMEOUT} and instrumented.")

@app.on_event("shutdown")
async def shutdown_event():
    logger.info("FastAPI application shutdown...")
    if hasattr(app.state, 'http_client') and app.state.http_client:
        await app.state.http_client.aclose()
        logger.info("HTTPX AsyncClient closed.")

FastAPIInstrumentor.instrument_app(app)
logger.info("FastAPI instrumentation complete.")

app.include_router(health_router.router)
app.include_router(tracking_router.router, prefix="/api/v1")

logger.info("API routers included. Application setup complete.")

# To run: uvicorn doc_tracking_service.app.main:app --reload --port 8000
