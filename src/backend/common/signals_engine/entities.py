"""Canonical entity model produced by CRM adapters.

The schema is closed: every entity kind the engine knows about is listed in
`EntityKind` and has exactly one model here. Adapters must normalize vendor
records into these shapes; the engine never sees vendor field names.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

SCHEMA_VERSION = "1"


class EntityKind(str, Enum):
    LEAD = "lead"
    OPPORTUNITY = "opportunity"
    CONTACT = "contact"
    TASK = "task"
    ENGAGEMENT = "engagement"


# Kinds that get their own entity context; auxiliary kinds only ever appear as related entities.
PRIMARY_KINDS = (EntityKind.LEAD, EntityKind.OPPORTUNITY, EntityKind.CONTACT)
AUXILIARY_KINDS = (EntityKind.TASK, EntityKind.ENGAGEMENT)


class EngagementType(str, Enum):
    EMAIL = "email"
    CALL = "call"
    MEETING = "meeting"
    NOTE = "note"
    DOCUMENT_SHARE = "document_share"
    DOCUMENT_VIEW = "document_view"


CONTACT_ENGAGEMENT_TYPES = frozenset({EngagementType.EMAIL, EngagementType.CALL, EngagementType.MEETING})


class CanonicalModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class EntitySource(CanonicalModel):
    type: str
    entity_type: EntityKind
    id: str


class NamedRef(CanonicalModel):
    id: Optional[str] = None
    name: Optional[str] = None


class Associations(CanonicalModel):
    lead_ids: tuple[str, ...] = ()
    opportunity_ids: tuple[str, ...] = ()
    contact_ids: tuple[str, ...] = ()
    account_ids: tuple[str, ...] = ()

    def references(self, kind: EntityKind, entity_id: str) -> bool:
        ids = {
            EntityKind.LEAD: self.lead_ids,
            EntityKind.OPPORTUNITY: self.opportunity_ids,
            EntityKind.CONTACT: self.contact_ids,
        }.get(kind, ())
        return entity_id in ids


class BaseEntity(CanonicalModel):
    id: str
    source: EntitySource
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def field_mapping(self) -> Dict[str, Any]:
        """Canonical (camelCase) field mapping used for condition evaluation.

        Fields the vendor left unset are omitted, so conditions on them fail
        field resolution instead of comparing against `None`.
        """
        return self.model_dump(by_alias=True, exclude_none=True)

    @property
    def display_name(self) -> str:
        return self.id


class Lead(BaseEntity):
    kind: Literal["lead"] = "lead"
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: Optional[str] = None
    company: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    status: Optional[str] = None
    last_activity_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        return self.full_name or self.company or self.id


class Opportunity(BaseEntity):
    kind: Literal["opportunity"] = "opportunity"
    name: Optional[str] = None
    stage: Optional[str] = None
    value: Optional[Decimal] = None
    probability: Optional[Decimal] = None
    close_date: Optional[date] = None
    account: NamedRef = Field(default_factory=NamedRef)
    owner: NamedRef = Field(default_factory=NamedRef)
    stage_changed_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        return self.name or self.id


class Contact(BaseEntity):
    kind: Literal["contact"] = "contact"
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    account: NamedRef = Field(default_factory=NamedRef)
    last_contacted_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        return self.full_name or self.email or self.id


class Task(BaseEntity):
    kind: Literal["task"] = "task"
    subject: Optional[str] = None
    status: Optional[str] = None
    task_type: Optional[str] = None
    due_date: Optional[date] = None
    completed_at: Optional[datetime] = None
    associations: Associations = Field(default_factory=Associations)

    @property
    def is_completed(self) -> bool:
        if self.completed_at is not None:
            return True
        return (self.status or "").strip().lower() in ("completed", "complete", "done")


class Engagement(BaseEntity):
    kind: Literal["engagement"] = "engagement"
    engagement_type: EngagementType
    occurred_at: Optional[datetime] = None
    document_id: Optional[str] = None
    subject: Optional[str] = None
    associations: Associations = Field(default_factory=Associations)


CanonicalEntity = Annotated[
    Union[Lead, Opportunity, Contact, Task, Engagement],
    Field(discriminator="kind"),
]

PrimaryEntity = Union[Lead, Opportunity, Contact]

_entity_adapter: TypeAdapter[CanonicalEntity] = TypeAdapter(CanonicalEntity)


def parse_entity(raw: Dict[str, Any]) -> BaseEntity:
    """Validate a canonical entity payload (camelCase or snake_case keys)."""
    return _entity_adapter.validate_python(raw)


def make_source(provider: str, kind: EntityKind, vendor_id: Any) -> EntitySource:
    return EntitySource(type=provider, entity_type=kind, id=str(vendor_id))
