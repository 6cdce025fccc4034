import os
import sys


# Ensure `src/backend` is on sys.path so imports like `import pipelines...` work when running this folder alone.
BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

import json
import shutil
from datetime import datetime, timezone
from pathlib import Path

import pytest

from common.signals_engine.models import CrmConnection
from common.signals_engine.repositories import (
    InMemoryConnectionRepository,
    InMemoryRuleRepository,
    InMemorySignalStore,
)
from pipelines.data_source import InMemoryRecordSourceFactory
from pipelines.signal_generation import SignalGenerationService


EXPORTS_DIR = Path(__file__).resolve().parents[1] / "adapters" / "fixtures" / "crm"
PROVIDERS = ("salesforce", "hubspot", "zoho", "pipedrive")


@pytest.fixture
def as_of() -> datetime:
    return datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def exports() -> dict:
    return {p: json.loads((EXPORTS_DIR / f"{p}.json").read_text(encoding="utf-8")) for p in PROVIDERS}


@pytest.fixture
def connections() -> list[CrmConnection]:
    return [
        CrmConnection(id="conn_sf", user_id="user_1", provider="salesforce", connection_token="sf-token"),
        CrmConnection(id="conn_hs", user_id="user_1", provider="hubspot", connection_token="hs-token"),
        CrmConnection(id="conn_zoho", user_id="user_2", provider="zoho", connection_token="zoho-token"),
        CrmConnection(id="conn_pd", user_id="user_2", provider="pipedrive", connection_token="pd-token"),
    ]


@pytest.fixture
def make_service(exports, connections):
    def _make(*, record_sources=None, rules=None, connection_list=None, **kwargs):
        store = InMemorySignalStore()
        repo = InMemoryConnectionRepository(list(connection_list if connection_list is not None else connections))
        service = SignalGenerationService(
            connections=repo,
            rules=rules or InMemoryRuleRepository(),
            signal_store=store,
            record_sources=record_sources or InMemoryRecordSourceFactory(exports=exports),
            **kwargs,
        )
        return service, repo, store

    return _make


@pytest.fixture
def data_dir(tmp_path) -> Path:
    """File-backed layout with the vendor exports under records/."""
    records = tmp_path / "records"
    records.mkdir()
    for provider in PROVIDERS:
        shutil.copy(EXPORTS_DIR / f"{provider}.json", records / f"{provider}.json")
    return tmp_path
