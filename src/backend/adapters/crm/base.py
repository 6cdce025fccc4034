from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from common.signals_engine.entities import BaseEntity, EntityKind
from common.signals_engine.errors import AdapterFetchError
from connectors.crm.credentials import REQUIRED_CREDENTIALS, missing_credentials
from connectors.crm.record_source import RecordSource, RecordSourceError

logger = logging.getLogger(__name__)


class CrmAdapterError(ValueError):
    pass


class UnsupportedProviderError(CrmAdapterError):
    pass


class ConnectResult(BaseModel):
    success: bool
    token: str = ""
    user: Optional[Dict[str, Any]] = None
    organization: Optional[Dict[str, Any]] = None
    scopes: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class EntityFilter(BaseModel):
    """Post-normalization filter applied to fetched entities.

    `since` keeps entities whose most recent timestamp is at or after the
    instant; entities without any timestamp are kept.
    """

    status: Optional[str] = None
    since: Optional[datetime] = None

    def accepts(self, entity: BaseEntity) -> bool:
        if self.status is not None:
            status = getattr(entity, "status", None)
            if (status or "").strip().lower() != self.status.strip().lower():
                return False
        if self.since is not None:
            stamp = _latest_timestamp(entity)
            if stamp is not None and _as_utc(stamp) < _as_utc(self.since):
                return False
        return True


class CrmAdapter(ABC):
    """Capability set every CRM variant implements.

    Subclasses declare `provider`, the vendor object name for each supported
    kind, and implement `normalize`. No network calls happen here: raw
    records come from the injected RecordSource.
    """

    provider: str
    object_names: Mapping[EntityKind, str]
    # Extra kinds fetched alongside leads/opportunities/contacts when building contexts.
    auxiliary_kinds: tuple[EntityKind, ...] = ()

    def __init__(self, source: RecordSource):
        if not getattr(self, "provider", None):
            raise ValueError("CrmAdapter must define provider")
        self._source = source

    @property
    def required_credentials(self) -> tuple[str, ...]:
        return REQUIRED_CREDENTIALS.get(self.provider, ())

    def supports(self, kind: EntityKind) -> bool:
        return kind in self.object_names

    def connect(self, credentials: Mapping[str, Any]) -> ConnectResult:
        missing = missing_credentials(self.provider, credentials)
        if missing:
            return ConnectResult(success=False, error=f"Invalid credentials: missing {', '.join(missing)}")
        try:
            identity = self._source.authenticate(credentials)
        except RecordSourceError as exc:
            logger.warning("%s authentication failed: %s", self.provider, exc)
            return ConnectResult(success=False, error=str(exc))

        token = str(identity.get("token") or "").strip()
        if not token:
            return ConnectResult(success=False, error=f"{self.provider} did not return an access token")
        return ConnectResult(
            success=True,
            token=token,
            user=identity.get("user"),
            organization=identity.get("organization"),
            scopes=list(identity.get("scopes") or []),
        )

    def fetch_entities(self, kind: EntityKind | str, entity_filter: EntityFilter | None = None) -> List[BaseEntity]:
        try:
            kind = EntityKind(kind)
        except ValueError as exc:
            raise AdapterFetchError(f"Unknown entity kind: {kind}", provider=self.provider) from exc
        vendor_object = self.object_names.get(kind)
        if vendor_object is None:
            raise AdapterFetchError(
                f"Unsupported entity type for {self.provider}: {kind.value}",
                provider=self.provider,
                kind=kind.value,
            )

        try:
            raw_records = self._source.fetch_raw(vendor_object)
        except RecordSourceError as exc:
            raise AdapterFetchError(
                f"{self.provider} fetch of {vendor_object} failed: {exc}",
                provider=self.provider,
                kind=kind.value,
            ) from exc

        entities: List[BaseEntity] = []
        for raw in raw_records:
            try:
                entity = self.normalize(kind, raw)
            except ValueError as exc:
                raise AdapterFetchError(
                    f"{self.provider} {vendor_object} record could not be normalized: {exc}",
                    provider=self.provider,
                    kind=kind.value,
                ) from exc
            if entity is None:
                logger.debug("%s %s record skipped (no id or unmapped type)", self.provider, vendor_object)
                continue
            if entity_filter is None or entity_filter.accepts(entity):
                entities.append(entity)
        return entities

    @abstractmethod
    def normalize(self, kind: EntityKind, raw: Mapping[str, Any]) -> BaseEntity | None:  # pragma: no cover
        """Convert one vendor record to its canonical entity; None for records that should be skipped."""
        raise NotImplementedError


def parse_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        # Epoch milliseconds (HubSpot style).
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.isdigit():
            return parse_datetime(int(text))
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        # Salesforce emits +0000 offsets without the colon.
        if len(text) > 5 and text[-5] in "+-" and text[-4:].isdigit() and ":" not in text[-5:]:
            text = f"{text[:-2]}:{text[-2:]}"
        try:
            return _as_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def parse_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def parse_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        # Avoid float binary artifacts: go through str.
        return Decimal(str(value))
    if isinstance(value, str):
        s = value.strip().replace(",", "")
        if not s:
            return None
        try:
            return Decimal(s)
        except InvalidOperation:
            return None
    return None


def clean_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def full_name(first: Any, last: Any) -> str | None:
    parts = [p for p in (clean_str(first), clean_str(last)) if p]
    return " ".join(parts) or None


def id_list(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(str(v) for v in value if v is not None and str(v).strip())
    return (str(value),) if str(value).strip() else ()


def _latest_timestamp(entity: BaseEntity) -> datetime | None:
    stamps = [
        getattr(entity, attr, None)
        for attr in ("occurred_at", "completed_at", "last_contacted_at", "last_activity_at", "updated_at", "created_at")
    ]
    present = [s for s in stamps if isinstance(s, datetime)]
    if not present:
        return None
    return max(present, key=_as_utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
