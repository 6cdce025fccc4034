from __future__ import annotations

from functools import lru_cache

from fastapi import Header, HTTPException

from common.signals_engine.repositories import is_valid_user_id
from pipelines.config import get_signals_config
from pipelines.signal_generation import SignalGenerationService, build_file_backed_service


@lru_cache(maxsize=1)
def get_signal_service() -> SignalGenerationService:
    return build_file_backed_service(get_signals_config())


def require_user_id(x_user_id: str | None = Header(None)) -> str:
    # Authentication middleware is upstream; it forwards the caller's id in this header.
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not is_valid_user_id(user_id):
        raise HTTPException(status_code=400, detail="Invalid user id")
    return user_id
