import json

import pytest

from connectors.crm.record_source import InMemoryRecordSource, JsonFileRecordSource, RecordSourceError


def _write(path, payload):
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_json_export_round_trips_identity_and_records(tmp_path):
    path = _write(
        tmp_path / "salesforce.json",
        {
            "identity": {"token": "tok", "user": {"name": "John Doe"}},
            "records": {"Lead": [{"Id": "00Q1"}, "not a record", {"Id": "00Q2"}]},
        },
    )
    source = JsonFileRecordSource(path)
    assert source.authenticate({})["token"] == "tok"
    assert source.fetch_raw("Lead") == [{"Id": "00Q1"}, {"Id": "00Q2"}]
    assert source.fetch_raw("Opportunity") == []


def test_json_export_is_read_once(tmp_path):
    path = _write(tmp_path / "hubspot.json", {"records": {"deals": [{"id": "1"}]}})
    source = JsonFileRecordSource(path)
    assert len(source.fetch_raw("deals")) == 1
    path.unlink()
    assert len(source.fetch_raw("deals")) == 1


def test_missing_export(tmp_path):
    source = JsonFileRecordSource(tmp_path / "nope.json")
    with pytest.raises(RecordSourceError) as excinfo:
        source.fetch_raw("Lead")
    assert "not found" in str(excinfo.value)


@pytest.mark.parametrize(
    "payload",
    [
        ["not", "an", "object"],
        {"records": ["deals"]},
        {"records": {"deals": {"id": "1"}}},
    ],
)
def test_malformed_exports(tmp_path, payload):
    source = JsonFileRecordSource(_write(tmp_path / "export.json", payload))
    with pytest.raises(RecordSourceError):
        source.fetch_raw("deals")


def test_unreadable_exports_are_record_source_errors(tmp_path):
    undecodable = tmp_path / "latin1.json"
    undecodable.write_bytes(b'{"records": {"deals": [{"title": "Caf\xe9"}]}}\xff')
    truncated = tmp_path / "truncated.json"
    truncated.write_text('{"records": {"deals": [', encoding="utf-8")
    directory = tmp_path / "export_dir.json"
    directory.mkdir()

    for path in (undecodable, truncated, directory):
        with pytest.raises(RecordSourceError):
            JsonFileRecordSource(path).fetch_raw("deals")


def test_malformed_identity(tmp_path):
    source = JsonFileRecordSource(_write(tmp_path / "export.json", {"identity": "token"}))
    with pytest.raises(RecordSourceError):
        source.authenticate({})


def test_in_memory_source_returns_copies():
    rows = [{"id": "1", "title": "Deal"}]
    source = InMemoryRecordSource(records={"deals": rows}, identity={"token": "t"})
    fetched = source.fetch_raw("deals")
    fetched[0]["title"] = "changed"
    assert rows[0]["title"] == "Deal"
    assert source.authenticate({"apiToken": "x"}) == {"token": "t"}
