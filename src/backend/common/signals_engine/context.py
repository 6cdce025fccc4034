from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence

from .entities import (
    CONTACT_ENGAGEMENT_TYPES,
    PRIMARY_KINDS,
    BaseEntity,
    Contact,
    Engagement,
    EngagementType,
    EntityKind,
    Opportunity,
    Task,
)
from .errors import FieldResolutionError
from .models import CrmConnection

# Roots a condition field path may start with besides the entity kinds.
DERIVED_FIELD_ROOTS = frozenset({"days_since_last_contact", "document", "related"})
CONTEXT_FIELD_ROOTS = frozenset({"connection"}) | DERIVED_FIELD_ROOTS

_MISSING = object()


@dataclass(frozen=True)
class EntityContext:
    """One primary entity plus everything needed to evaluate rules against it.

    Derived fields are computed once in `build_context` and never change afterwards.
    """

    primary: BaseEntity
    connection: CrmConnection
    as_of: datetime
    related: tuple[BaseEntity, ...] = ()
    derived: Mapping[str, Any] = field(default_factory=dict)
    fields: Mapping[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> EntityKind:
        return EntityKind(self.primary.kind)

    def related_of(self, kind: EntityKind) -> list[BaseEntity]:
        return [e for e in self.related if e.kind == kind.value]


def build_context(
    primary: BaseEntity,
    *,
    connection: CrmConnection,
    as_of: datetime,
    related: Iterable[BaseEntity] = (),
) -> EntityContext:
    as_of = _as_utc(as_of)
    related_t = tuple(related)
    derived = derive_fields(primary, related_t, as_of=as_of)

    primary_fields = primary.field_mapping()
    merged: Dict[str, Any] = dict(primary_fields)
    merged[primary.kind] = dict(primary_fields)
    merged["connection"] = connection.describe()
    _deep_merge(merged, derived)

    return EntityContext(
        primary=primary,
        connection=connection,
        as_of=as_of,
        related=related_t,
        derived=MappingProxyType(derived),
        fields=MappingProxyType(merged),
    )


def derive_fields(primary: BaseEntity, related: Sequence[BaseEntity], *, as_of: datetime) -> Dict[str, Any]:
    derived: Dict[str, Any] = {}

    last_touch = _last_touch(primary, related)
    if last_touch is not None:
        derived["days_since_last_contact"] = _days_between(last_touch, as_of)

    if isinstance(primary, Opportunity):
        stage_anchor = primary.stage_changed_at or primary.updated_at
        if stage_anchor is not None:
            derived["opportunity"] = {"days_in_stage": _days_between(stage_anchor, as_of)}

    engagements = [e for e in related if isinstance(e, Engagement)]
    shares = [e.occurred_at for e in engagements if e.engagement_type == EngagementType.DOCUMENT_SHARE and e.occurred_at]
    if shares:
        views = [e for e in engagements if e.engagement_type == EngagementType.DOCUMENT_VIEW]
        derived["document"] = {
            "view_count": len(views),
            "days_since_shared": _days_between(min(shares, key=_as_utc), as_of),
        }

    tasks = [t for t in related if isinstance(t, Task)]
    derived["related"] = {
        "open_task_count": sum(1 for t in tasks if not t.is_completed),
        "engagement_count": len(engagements),
    }
    return derived


def assemble_contexts(
    connection: CrmConnection,
    entities: Mapping[EntityKind, Sequence[BaseEntity]],
    *,
    as_of: datetime,
) -> list[EntityContext]:
    """Build one context per primary entity, attaching the auxiliary entities that reference it."""
    auxiliary = [e for kind, items in entities.items() if kind not in PRIMARY_KINDS for e in items]
    contacts = list(entities.get(EntityKind.CONTACT, ()))

    contexts: list[EntityContext] = []
    for kind in PRIMARY_KINDS:
        for primary in entities.get(kind, ()):
            related = _related_for(primary, kind, auxiliary, contacts)
            contexts.append(build_context(primary, connection=connection, as_of=as_of, related=related))
    return contexts


def resolve_field(context: EntityContext, path: str) -> Any:
    """Resolve a dot-path against the merged field mapping.

    Raises FieldResolutionError when any segment is absent. A present `None`
    resolves to `None`; traversing *through* a `None` is absent.
    """
    if not path or not path.strip():
        raise FieldResolutionError("Empty field path.", field=path)
    current: Any = context.fields
    for segment in path.split("."):
        value = _MISSING
        if isinstance(current, Mapping):
            value = current.get(segment, _MISSING)
        if value is _MISSING:
            raise FieldResolutionError(
                f"Field '{path}' not present for {context.primary.kind} {context.primary.id}.",
                field=path,
            )
        current = value
    return current


def _related_for(
    primary: BaseEntity,
    kind: EntityKind,
    auxiliary: Sequence[BaseEntity],
    contacts: Sequence[BaseEntity],
) -> list[BaseEntity]:
    account_id = None
    if isinstance(primary, Opportunity):
        account_id = primary.account.id

    related: list[BaseEntity] = []
    for entity in auxiliary:
        assoc = getattr(entity, "associations", None)
        if assoc is None:
            continue
        if assoc.references(kind, primary.id) or (account_id and account_id in assoc.account_ids):
            related.append(entity)
    if account_id:
        related.extend(c for c in contacts if isinstance(c, Contact) and c.account.id == account_id)
    return related


def _last_touch(primary: BaseEntity, related: Sequence[BaseEntity]) -> Optional[datetime]:
    touches: list[datetime] = []
    for entity in related:
        if isinstance(entity, Task) and entity.is_completed:
            if entity.completed_at is not None:
                touches.append(entity.completed_at)
            elif entity.due_date is not None:
                touches.append(_date_to_datetime(entity.due_date))
        elif isinstance(entity, Engagement) and entity.engagement_type in CONTACT_ENGAGEMENT_TYPES:
            if entity.occurred_at is not None:
                touches.append(entity.occurred_at)
        elif isinstance(entity, Contact) and entity.last_contacted_at is not None:
            touches.append(entity.last_contacted_at)
    if isinstance(primary, Contact) and primary.last_contacted_at is not None:
        touches.append(primary.last_contacted_at)
    if touches:
        return max(touches, key=_as_utc)

    for attr in ("last_activity_at", "updated_at", "created_at"):
        fallback = getattr(primary, attr, None)
        if fallback is not None:
            return fallback
    return None


def _deep_merge(target: Dict[str, Any], overlay: Mapping[str, Any]) -> None:
    for key, value in overlay.items():
        if isinstance(value, Mapping) and isinstance(target.get(key), dict):
            _deep_merge(target[key], value)
        else:
            target[key] = dict(value) if isinstance(value, Mapping) else value


def _days_between(start: datetime, end: datetime) -> int:
    return (_as_utc(end) - _as_utc(start)).days


def _date_to_datetime(value: date) -> datetime:
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
