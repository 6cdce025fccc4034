import json
import sys
from decimal import Decimal

import pytest

from common.signals_engine.models import CrmConnection
from pipelines.config import SignalsConfig, get_signals_config
from pipelines.signal_generation import build_file_backed_service
from pipelines.stores import JsonConnectionRepository, JsonSignalStore
from scripts.run_signal_generation import main, run_signal_generation


def _seed_connections(data_dir, *connections):
    repo = JsonConnectionRepository(data_dir / "connections.json")
    for connection in connections:
        repo.save_connection(connection)


def test_signals_config_defaults(monkeypatch):
    for name in ("SIGNALS_DATA_DIR", "SIGNALS_MAX_WORKERS", "SIGNALS_ACTIVITY_LOOKBACK_DAYS", "SIGNALS_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    cfg = get_signals_config()
    assert cfg.max_workers == 4
    assert cfg.activity_lookback_days == 180
    assert cfg.log_level == "INFO"
    assert cfg.data_dir.name == "data"


def test_signals_config_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("SIGNALS_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("SIGNALS_MAX_WORKERS", "2")
    monkeypatch.setenv("SIGNALS_ACTIVITY_LOOKBACK_DAYS", "30")
    monkeypatch.setenv("SIGNALS_LOG_LEVEL", "debug")
    cfg = get_signals_config()
    assert cfg == SignalsConfig(data_dir=tmp_path, max_workers=2, activity_lookback_days=30, log_level="DEBUG")


@pytest.mark.parametrize(
    "name, value",
    [
        ("SIGNALS_MAX_WORKERS", "many"),
        ("SIGNALS_MAX_WORKERS", "0"),
        ("SIGNALS_ACTIVITY_LOOKBACK_DAYS", "-5"),
        ("SIGNALS_LOG_LEVEL", "LOUD"),
    ],
)
def test_signals_config_rejects_bad_values(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError):
        get_signals_config()


def test_file_backed_service_reports_missing_export(data_dir, as_of):
    (data_dir / "records" / "zoho.json").unlink()
    _seed_connections(
        data_dir,
        CrmConnection(id="conn_sf", user_id="user_1", provider="salesforce"),
        CrmConnection(id="conn_zoho", user_id="user_1", provider="zoho"),
    )
    cfg = SignalsConfig(data_dir=data_dir, max_workers=2, activity_lookback_days=180, log_level="INFO")

    result = build_file_backed_service(cfg).generate_for_user("user_1", as_of=as_of)

    assert [(s.rule_id, s.score) for s in result.signals] == [("rule_3", Decimal("100")), ("rule_1", Decimal("90"))]
    assert [(e.connection_id, e.error_type) for e in result.errors] == [("conn_zoho", "AdapterFetchError")]
    stored = JsonSignalStore(data_dir / "signals").list_signals("user_1")
    assert [s.id for s in stored] == [s.id for s in result.signals]


def test_file_backed_service_isolates_undecodable_export(data_dir, as_of):
    (data_dir / "records" / "conn_sf_broken.json").write_bytes(b"\xff\xfe not json")
    _seed_connections(
        data_dir,
        CrmConnection(id="conn_sf_broken", user_id="user_1", provider="salesforce"),
        CrmConnection(id="conn_hs", user_id="user_1", provider="hubspot"),
    )
    cfg = SignalsConfig(data_dir=data_dir, max_workers=2, activity_lookback_days=180, log_level="INFO")

    result = build_file_backed_service(cfg).generate_for_user("user_1", as_of=as_of)

    assert [(s.rule_id, s.entity_ref.connection_id) for s in result.signals] == [("rule_2", "conn_hs")]
    assert [(e.connection_id, e.error_type) for e in result.errors] == [("conn_sf_broken", "AdapterFetchError")]


def test_run_signal_generation_uses_data_dir(data_dir, as_of):
    _seed_connections(data_dir, CrmConnection(id="conn_hs", user_id="user_1", provider="hubspot"))
    result = run_signal_generation(data_dir=data_dir, user_id="user_1", priority="medium", as_of=as_of)
    assert [s.type for s in result.signals] == ["opportunity:rule_2"]


def test_main_writes_json_and_markdown(data_dir, tmp_path, monkeypatch):
    _seed_connections(data_dir, CrmConnection(id="conn_pd", user_id="user_2", provider="pipedrive"))
    out_dir = tmp_path / "out"
    monkeypatch.setattr(
        sys,
        "argv",
        [
            "run_signal_generation.py",
            "--data-dir",
            str(data_dir),
            "--user-id",
            "user_2",
            "--as-of",
            "2025-06-01T12:00:00Z",
            "--output-dir",
            str(out_dir),
        ],
    )

    assert main() == 0

    json_files = sorted(out_dir.glob("signals_user_2_*.json"))
    md_files = sorted(out_dir.glob("signals_user_2_*.md"))
    assert [p.name for p in json_files] == ["signals_user_2_20250601T120000Z.json"]
    payload = json.loads(json_files[0].read_text(encoding="utf-8"))
    assert [s["ruleId"] for s in payload["signals"]] == ["rule_3", "rule_1"]
    markdown = md_files[0].read_text(encoding="utf-8")
    assert "Vandelay - Import Deal" in markdown
    assert "- high: 2" in markdown


def test_main_prints_json(data_dir, monkeypatch, capsys):
    monkeypatch.setattr(
        sys,
        "argv",
        ["run_signal_generation.py", "--data-dir", str(data_dir), "--user-id", "nobody", "--as-of", "2025-06-01"],
    )
    assert main() == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["hasConnections"] is False
    assert payload["signals"] == []

