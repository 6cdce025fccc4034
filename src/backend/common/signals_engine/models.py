from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .entities import EntityKind


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SignalModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Condition(SignalModel):
    field: str
    operator: str
    value: Any = None

    @property
    def root(self) -> str:
        return self.field.split(".", 1)[0]


class Action(SignalModel):
    type: str
    # Lower rank is preferred.
    priority: int = 1


class SignalRule(SignalModel):
    id: str
    name: str
    description: str = ""
    # A rule with no conditions would match every entity.
    conditions: tuple[Condition, ...] = Field(min_length=1)
    priority: Priority = Priority.MEDIUM
    base_score: Decimal = Decimal("0")
    score_modifier: Decimal = Decimal("0")
    actions: tuple[Action, ...] = ()
    enabled: bool = True
    # Empty means "infer from the condition field roots".
    entity_kinds: tuple[EntityKind, ...] = ()
    # Empty means the rule applies to every connection of the user.
    connection_ids: tuple[str, ...] = ()

    def applies_to_kind(self, kind: EntityKind) -> bool:
        if self.entity_kinds:
            return kind in self.entity_kinds
        referenced = {c.root for c in self.conditions} & {k.value for k in EntityKind}
        if not referenced:
            return True
        return kind.value in referenced

    def applies_to_connection(self, connection_id: str) -> bool:
        return not self.connection_ids or connection_id in self.connection_ids


class CrmConnection(SignalModel):
    id: str
    user_id: str = ""
    provider: str
    connection_token: str = Field(default="", repr=False)
    settings: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

    def describe(self) -> Dict[str, Any]:
        """Connection fields exposed to rule conditions under the `connection` root."""
        return {"id": self.id, "provider": self.provider, "settings": dict(self.settings)}


class EntityRef(SignalModel):
    kind: EntityKind
    id: str
    connection_id: str
    provider: str
    name: str = ""


class Signal(SignalModel):
    # Assigned by the signal store on persistence, never by the engine.
    id: Optional[str] = None
    type: str
    rule_id: str
    title: str = ""
    description: str = ""
    priority: Priority
    score: Decimal
    entity_ref: EntityRef
    actions: tuple[Action, ...] = ()
    generated_at: datetime


class ConnectionFailure(SignalModel):
    connection_id: str
    provider: str
    error_type: str
    message: str


class GenerationResult(SignalModel):
    generated_at: datetime
    signals: List[Signal] = Field(default_factory=list)
    errors: List[ConnectionFailure] = Field(default_factory=list)
    totals: Dict[Priority, int] = Field(default_factory=dict)
    has_connections: bool = True

    @property
    def count(self) -> int:
        return len(self.signals)
