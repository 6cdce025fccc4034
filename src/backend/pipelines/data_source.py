from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Protocol

from common.signals_engine.models import CrmConnection
from connectors.crm.record_source import InMemoryRecordSource, JsonFileRecordSource, RecordSource


class RecordSourceFactory(Protocol):
    def source_for(self, connection: CrmConnection) -> RecordSource:
        """Return the raw-record transport for one connection."""
        ...


@dataclass(frozen=True)
class FileRecordSourceFactory:
    """Resolves `records/<connection id>.json`, falling back to `records/<provider>.json`."""

    root_dir: Path

    def source_for(self, connection: CrmConnection) -> RecordSource:
        by_connection = self.root_dir / f"{connection.id}.json"
        if connection.id and by_connection.exists():
            return JsonFileRecordSource(by_connection)
        return JsonFileRecordSource(self.root_dir / f"{connection.provider.lower()}.json")


@dataclass(frozen=True)
class InMemoryRecordSourceFactory:
    """Test double: exports keyed by connection id or provider name."""

    exports: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)

    def source_for(self, connection: CrmConnection) -> RecordSource:
        export = self.exports.get(connection.id) or self.exports.get(connection.provider.lower()) or {}
        return InMemoryRecordSource(
            records=export.get("records", {}),
            identity=export.get("identity", {}),
        )

