from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence


class RecordSourceError(RuntimeError):
    def __init__(self, message: str, *, vendor_object: str | None = None):
        super().__init__(message)
        self.vendor_object = vendor_object


class RecordSource(Protocol):
    """Raw vendor transport for one CRM connection.

    Returns vendor-native records; adapters normalize them.
    """

    def authenticate(self, credentials: Mapping[str, Any]) -> dict[str, Any]:
        """Return the session identity: token, user, organization, scopes."""
        ...

    def fetch_raw(self, vendor_object: str) -> list[dict[str, Any]]:
        ...


@dataclass(frozen=True)
class InMemoryRecordSource:
    records: Mapping[str, Sequence[dict[str, Any]]] = field(default_factory=dict)
    identity: Mapping[str, Any] = field(default_factory=dict)

    def authenticate(self, credentials: Mapping[str, Any]) -> dict[str, Any]:
        return dict(self.identity)

    def fetch_raw(self, vendor_object: str) -> list[dict[str, Any]]:
        return [dict(r) for r in self.records.get(vendor_object, ())]


class JsonFileRecordSource:
    """Record source backed by a JSON export.

    Expected shape:
      {"identity": {...}, "records": {"<VendorObject>": [ {...}, ... ]}}
    """

    def __init__(self, path: Path):
        self._path = Path(path)
        self._payload: dict[str, Any] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def authenticate(self, credentials: Mapping[str, Any]) -> dict[str, Any]:
        identity = self._load().get("identity") or {}
        if not isinstance(identity, dict):
            raise RecordSourceError(f"{self._path}: 'identity' must be an object.")
        return dict(identity)

    def fetch_raw(self, vendor_object: str) -> list[dict[str, Any]]:
        records = self._load().get("records") or {}
        if not isinstance(records, dict):
            raise RecordSourceError(f"{self._path}: 'records' must be an object.")
        rows = records.get(vendor_object, [])
        if not isinstance(rows, list):
            raise RecordSourceError(
                f"{self._path}: records for '{vendor_object}' must be a list.",
                vendor_object=vendor_object,
            )
        return [r for r in rows if isinstance(r, dict)]

    def _load(self) -> dict[str, Any]:
        if self._payload is None:
            if not self._path.exists():
                raise RecordSourceError(f"Record export not found: {self._path}")
            try:
                text = self._path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                raise RecordSourceError(f"Unreadable record export {self._path}: {exc}") from exc
            try:
                raw = json.loads(text)
            except json.JSONDecodeError as exc:
                raise RecordSourceError(f"Invalid JSON in {self._path}: {exc}") from exc
            if not isinstance(raw, dict):
                raise RecordSourceError(f"{self._path}: export must be a JSON object.")
            self._payload = raw
        return self._payload
