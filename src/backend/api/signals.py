from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from common.signals_engine.errors import AggregationError, ConfigurationError
from pipelines.signal_generation import SignalGenerationService

from .dependencies import get_signal_service, require_user_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/signals", tags=["signals"])


@router.get("/generate")
def generate_signals(
    type: str | None = Query(None),
    priority: str | None = Query(None),
    user_id: str = Depends(require_user_id),
    service: SignalGenerationService = Depends(get_signal_service),
):
    try:
        result = service.generate_for_user(user_id, signal_type=type, priority=priority)
    except (AggregationError, ConfigurationError) as exc:
        logger.error("Signal generation failed for user %s: %s", user_id, exc)
        raise HTTPException(status_code=500, detail="An error occurred while generating signals") from exc

    if not result.has_connections:
        return {
            "success": False,
            "message": "No CRM connections found. Please connect a CRM first.",
            "signals": [],
        }

    return {
        "success": True,
        "count": result.count,
        "generatedAt": result.generated_at.isoformat(),
        "signals": [s.model_dump(mode="json", by_alias=True) for s in result.signals],
        "errors": [e.model_dump(mode="json", by_alias=True) for e in result.errors],
    }
