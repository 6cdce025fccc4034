from __future__ import annotations

from fastapi import FastAPI

from pipelines.config import configure_logging, get_signals_config

from .crm import router as crm_router
from .signals import router as signals_router


def create_app() -> FastAPI:
    configure_logging(get_signals_config().log_level)
    app = FastAPI(title="CRM Signals")
    app.include_router(crm_router)
    app.include_router(signals_router)
    return app
