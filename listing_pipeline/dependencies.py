from __future__ import annotations

from typing import Optional

from fastapi import Header

from listing_pipeline.models import AuthContext
from listing_pipeline.services.orchestrator import PipelineOrchestrator

_orchestrator: Optional[PipelineOrchestrator] = None


def set_orchestrator(orchestrator: PipelineOrchestrator) -> None:
    global _orchestrator
    _orchestrator = orchestrator


def get_orchestrator() -> PipelineOrchestrator:
    if _orchestrator is None:
        raise RuntimeError("Orchestrator not initialized")
    return _orchestrator


def get_auth_context(
    x_user_id: Optional[str] = Header(default=None),
    x_google_access_token: Optional[str] = Header(default=None),
    x_etsy_access_token: Optional[str] = Header(default=None),
    x_etsy_shop_id: Optional[str] = Header(default=None),
) -> AuthContext:
    """Credentials are exchanged upstream; this only reads what the gateway forwards."""
    return AuthContext(
        user_id=x_user_id or "default",
        google_access_token=x_google_access_token,
        etsy_access_token=x_etsy_access_token,
        etsy_shop_id=x_etsy_shop_id,
    )
