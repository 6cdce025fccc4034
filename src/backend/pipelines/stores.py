"""File-backed repositories for connections, rules and generated signals.

Layout under the data directory:
  connections.json          {"connections": [<connection>, ...]}
  rules.json                {"<user_id>": [<rule>, ...]}
  signals/<user_id>.json    [<signal>, ...]  (appended on every generation)
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, List, Sequence

from common.signals_engine.config import default_rules, load_rules
from common.signals_engine.models import CrmConnection, Signal, SignalRule
from common.signals_engine.repositories import is_valid_user_id, new_connection_id, new_signal_id


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    with path.open(encoding="utf-8") as handle:
        return json.load(handle)


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    tmp.replace(path)


class JsonConnectionRepository:
    def __init__(self, path: Path):
        self._path = Path(path)
        self._lock = threading.Lock()

    def list_connections(self, user_id: str) -> List[CrmConnection]:
        return [c for c in self._load() if c.user_id == user_id]

    def save_connection(self, connection: CrmConnection) -> str:
        if not connection.id:
            connection = connection.model_copy(update={"id": new_connection_id(connection.provider)})
        with self._lock:
            existing = [c for c in self._load() if c.id != connection.id]
            existing.append(connection)
            _write_json(
                self._path,
                {"connections": [c.model_dump(mode="json", by_alias=True) for c in existing]},
            )
        return connection.id

    def _load(self) -> List[CrmConnection]:
        raw = _read_json(self._path, {"connections": []})
        return [CrmConnection.model_validate(c) for c in raw.get("connections", [])]


class JsonRuleRepository:
    def __init__(self, path: Path, *, fall_back_to_defaults: bool = True):
        self._path = Path(path)
        self._fall_back_to_defaults = fall_back_to_defaults

    def rules_for(self, user_id: str, connection: CrmConnection) -> List[SignalRule]:
        raw = _read_json(self._path, {})
        user_rules = raw.get(user_id) if isinstance(raw, dict) else None
        if user_rules:
            rules = load_rules(user_rules)
        elif self._fall_back_to_defaults:
            rules = default_rules()
        else:
            rules = []
        return [r for r in rules if r.applies_to_connection(connection.id)]


class JsonSignalStore:
    def __init__(self, root_dir: Path):
        self._root = Path(root_dir)
        self._lock = threading.Lock()

    def save_signals(self, user_id: str, signals: Sequence[Signal]) -> List[Signal]:
        path = self._user_path(user_id)
        stored = [s if s.id else s.model_copy(update={"id": new_signal_id()}) for s in signals]
        with self._lock:
            existing = _read_json(path, [])
            existing.extend(s.model_dump(mode="json", by_alias=True) for s in stored)
            _write_json(path, existing)
        return stored

    def list_signals(self, user_id: str) -> List[Signal]:
        return [Signal.model_validate(s) for s in _read_json(self._user_path(user_id), [])]

    def _user_path(self, user_id: str) -> Path:
        if not is_valid_user_id(user_id):
            raise ValueError(f"Invalid user id for signal storage: {user_id!r}")
        return self._root / f"{user_id}.json"
