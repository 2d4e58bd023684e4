from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from listing_pipeline.api.routes import api_router
from listing_pipeline.core.config import get_settings
from listing_pipeline.core.logging import configure_logging
from listing_pipeline.dependencies import set_orchestrator
from listing_pipeline.models import AuthContext
from listing_pipeline.schemas import HealthResponse
from listing_pipeline.services.http import build_client
from listing_pipeline.services.ledger import JobLedger
from listing_pipeline.services.metadata import GeminiMetadataGenerator
from listing_pipeline.services.orchestrator import PipelineOrchestrator
from listing_pipeline.services.publishers import EtsyPublisher, GoogleDrivePublisher
from listing_pipeline.services.settings_service import SettingsService
from listing_pipeline.user_settings import UserSettings

logger = logging.getLogger(__name__)

settings = get_settings()
configure_logging(settings.log_level)

app = FastAPI(title=settings.app_name, version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

http_client = build_client(settings.collaborator_timeout)


def _drive_publisher(auth: AuthContext, user_settings: UserSettings) -> GoogleDrivePublisher:
    drive = user_settings.google_drive
    return GoogleDrivePublisher(http_client, auth.google_access_token or "", drive.folder_id, drive.folder_name)


def _etsy_publisher(auth: AuthContext, user_settings: UserSettings) -> EtsyPublisher:
    return EtsyPublisher(
        http_client,
        api_key=settings.etsy_api_key or "",
        access_token=auth.etsy_access_token or "",
        shop_id=auth.etsy_shop_id or user_settings.etsy.shop_id or "",
    )


orchestrator = PipelineOrchestrator(
    ledger=JobLedger(),
    settings_service=SettingsService(settings.settings_dir),
    metadata_generator=GeminiMetadataGenerator(http_client, settings.google_ai_api_key, settings.gemini_model),
    storage_factory=_drive_publisher,
    marketplace_factory=_etsy_publisher,
    config=settings,
)
set_orchestrator(orchestrator)


@app.on_event("startup")
async def on_startup() -> None:
    if not settings.metadata_configured:
        logger.warning("APP_GOOGLE_AI_API_KEY is not set; listings will use fallback metadata")
    if not settings.etsy_configured:
        logger.warning("APP_ETSY_API_KEY is not set; draft listings will fail")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await orchestrator.shutdown()
    await http_client.aclose()


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(
        status="ok",
        services={
            "imageProcessing": "available",
            "ai": "configured" if settings.metadata_configured else "not_configured",
            "etsy": "configured" if settings.etsy_configured else "not_configured",
        },
    )


app.include_router(api_router)
