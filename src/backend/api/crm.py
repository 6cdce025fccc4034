from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from adapters.crm import UnsupportedProviderError
from connectors.crm.credentials import validate_credentials
from pipelines.signal_generation import SignalGenerationService

from .dependencies import get_signal_service, require_user_id


router = APIRouter(prefix="/crm", tags=["crm"])


class ConnectRequest(BaseModel):
    platform: Optional[str] = None
    credentials: Dict[str, Any] = Field(default_factory=dict)
    settings: Dict[str, Any] = Field(default_factory=dict)


@router.post("/connect")
def connect_crm(
    body: ConnectRequest,
    user_id: str = Depends(require_user_id),
    service: SignalGenerationService = Depends(get_signal_service),
):
    platform = (body.platform or "").strip()
    if not platform:
        raise HTTPException(status_code=400, detail="CRM platform is required")
    if not validate_credentials(platform, body.credentials):
        raise HTTPException(status_code=400, detail="Invalid credentials for the selected CRM platform")

    try:
        outcome = service.connect(user_id, platform, body.credentials, body.settings)
    except UnsupportedProviderError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    if not outcome.result.success or outcome.connection is None:
        raise HTTPException(status_code=401, detail=outcome.result.error or "Failed to connect to CRM")

    user = outcome.result.user or {}
    organization = outcome.result.organization or {}
    return {
        "success": True,
        "connectionId": outcome.connection.id,
        "platform": outcome.connection.provider,
        "connected": True,
        "userName": user.get("name"),
        "orgName": organization.get("name"),
        "message": f"Successfully connected to {platform}",
    }
