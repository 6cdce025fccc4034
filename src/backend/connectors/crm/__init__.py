"""CRM connector layer (vendor transport + credentials live here; normalization lives in src/backend/adapters/crm)."""

from .credentials import REQUIRED_CREDENTIALS, missing_credentials, validate_credentials
from .record_source import InMemoryRecordSource, JsonFileRecordSource, RecordSource, RecordSourceError

__all__ = [
    "REQUIRED_CREDENTIALS",
    "missing_credentials",
    "validate_credentials",
    "InMemoryRecordSource",
    "JsonFileRecordSource",
    "RecordSource",
    "RecordSourceError",
]
