import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from common.signals_engine.config import DEFAULT_RULES
from common.signals_engine.errors import ConfigurationError
from common.signals_engine.models import CrmConnection, EntityRef, Priority, Signal
from pipelines.data_source import FileRecordSourceFactory
from pipelines.stores import JsonConnectionRepository, JsonRuleRepository, JsonSignalStore


def _signal(**overrides) -> Signal:
    fields = dict(
        type="opportunity:rule_1",
        rule_id="rule_1",
        title="Follow-up needed: Acme",
        priority=Priority.HIGH,
        score=Decimal("90"),
        entity_ref=EntityRef(kind="opportunity", id="OPP-1", connection_id="conn_sf", provider="salesforce"),
        generated_at=datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc),
    )
    fields.update(overrides)
    return Signal(**fields)


def test_connection_repository_round_trip(tmp_path):
    repo = JsonConnectionRepository(tmp_path / "connections.json")
    assert repo.list_connections("user_1") == []

    conn_id = repo.save_connection(
        CrmConnection(id="", user_id="user_1", provider="hubspot", connection_token="secret", settings={"a": 1})
    )
    repo.save_connection(CrmConnection(id="conn_other", user_id="user_2", provider="zoho"))

    assert conn_id.startswith("conn_hubspot_")
    listed = repo.list_connections("user_1")
    assert [(c.id, c.provider, c.settings) for c in listed] == [(conn_id, "hubspot", {"a": 1})]
    on_disk = json.loads((tmp_path / "connections.json").read_text(encoding="utf-8"))
    assert on_disk["connections"][0]["userId"] == "user_1"


def test_saving_existing_connection_replaces_it(tmp_path):
    repo = JsonConnectionRepository(tmp_path / "connections.json")
    repo.save_connection(CrmConnection(id="conn_1", user_id="u", provider="salesforce", connection_token="old"))
    repo.save_connection(CrmConnection(id="conn_1", user_id="u", provider="salesforce", connection_token="new"))
    assert [c.connection_token for c in repo.list_connections("u")] == ["new"]


def test_rule_repository_falls_back_to_defaults(tmp_path):
    conn = CrmConnection(id="conn_sf", user_id="user_1", provider="salesforce")
    repo = JsonRuleRepository(tmp_path / "rules.json")
    assert [r.id for r in repo.rules_for("user_1", conn)] == ["rule_1", "rule_2", "rule_3"]

    strict = JsonRuleRepository(tmp_path / "rules.json", fall_back_to_defaults=False)
    assert strict.rules_for("user_1", conn) == []


def test_rule_repository_reads_user_rules_scoped_to_connection(tmp_path):
    scoped = dict(DEFAULT_RULES[1], id="docs_on_hubspot", connectionIds=["conn_hs"])
    (tmp_path / "rules.json").write_text(
        json.dumps({"user_1": [DEFAULT_RULES[0], scoped]}), encoding="utf-8"
    )
    repo = JsonRuleRepository(tmp_path / "rules.json")

    sf = CrmConnection(id="conn_sf", user_id="user_1", provider="salesforce")
    hs = CrmConnection(id="conn_hs", user_id="user_1", provider="hubspot")
    assert [r.id for r in repo.rules_for("user_1", sf)] == ["rule_1"]
    assert [r.id for r in repo.rules_for("user_1", hs)] == ["rule_1", "docs_on_hubspot"]


def test_rule_repository_surfaces_bad_rules(tmp_path):
    bad = dict(DEFAULT_RULES[0], conditions=[])
    (tmp_path / "rules.json").write_text(json.dumps({"user_1": [bad]}), encoding="utf-8")
    conn = CrmConnection(id="conn_sf", user_id="user_1", provider="salesforce")
    with pytest.raises(ConfigurationError):
        JsonRuleRepository(tmp_path / "rules.json").rules_for("user_1", conn)


def test_signal_store_assigns_ids_and_appends(tmp_path):
    store = JsonSignalStore(tmp_path / "signals")
    first = store.save_signals("user_1", [_signal()])
    second = store.save_signals("user_1", [_signal(id="sig_existing")])

    assert first[0].id.startswith("sig_")
    assert second[0].id == "sig_existing"
    listed = store.list_signals("user_1")
    assert [s.id for s in listed] == [first[0].id, "sig_existing"]
    assert listed[0].score == Decimal("90")
    assert listed[0].entity_ref.connection_id == "conn_sf"
    assert store.list_signals("someone_else") == []


def test_file_record_source_prefers_connection_export(tmp_path):
    (tmp_path / "conn_sf_acme.json").write_text(json.dumps({"records": {}}), encoding="utf-8")
    factory = FileRecordSourceFactory(root_dir=tmp_path)

    specific = factory.source_for(CrmConnection(id="conn_sf_acme", provider="salesforce"))
    shared = factory.source_for(CrmConnection(id="conn_sf_other", provider="Salesforce"))
    assert specific.path == tmp_path / "conn_sf_acme.json"
    assert shared.path == tmp_path / "salesforce.json"


@pytest.mark.parametrize("user_id", ["../connections", "a/b", "..", "", "user 1"])
def test_signal_store_rejects_path_like_user_ids(tmp_path, user_id):
    store = JsonSignalStore(tmp_path / "signals")
    with pytest.raises(ValueError):
        store.save_signals(user_id, [_signal()])
    with pytest.raises(ValueError):
        store.list_signals(user_id)
    assert not (tmp_path / "connections.json").exists()
    assert not (tmp_path / "signals").exists()
