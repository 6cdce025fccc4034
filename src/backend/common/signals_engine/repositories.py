from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Protocol, Sequence

from .config import default_rules
from .models import CrmConnection, Signal, SignalRule


class ConnectionRepository(Protocol):
    def list_connections(self, user_id: str) -> List[CrmConnection]:
        ...

    def save_connection(self, connection: CrmConnection) -> str:
        """Persist a connection and return its id."""
        ...


class RuleRepository(Protocol):
    def rules_for(self, user_id: str, connection: CrmConnection) -> List[SignalRule]:
        """Ordered rules that apply to one of the user's connections."""
        ...


class SignalStore(Protocol):
    def save_signals(self, user_id: str, signals: Sequence[Signal]) -> List[Signal]:
        """Persist signals and return them with storage ids assigned."""
        ...


def new_signal_id() -> str:
    return f"sig_{uuid.uuid4().hex[:16]}"


def new_connection_id(provider: str) -> str:
    return f"conn_{provider}_{uuid.uuid4().hex[:8]}"


# User ids end up as file names in the file-backed stores.
_USER_ID_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9_.@-]{0,127}")


def is_valid_user_id(user_id: str) -> bool:
    return bool(_USER_ID_RE.fullmatch(user_id or ""))


@dataclass
class InMemoryConnectionRepository:
    connections: List[CrmConnection] = field(default_factory=list)

    def list_connections(self, user_id: str) -> List[CrmConnection]:
        return [c for c in self.connections if c.user_id == user_id]

    def save_connection(self, connection: CrmConnection) -> str:
        if not connection.id:
            connection = connection.model_copy(update={"id": new_connection_id(connection.provider)})
        self.connections = [c for c in self.connections if c.id != connection.id]
        self.connections.append(connection)
        return connection.id


@dataclass
class InMemoryRuleRepository:
    rules_by_user: Dict[str, List[SignalRule]] = field(default_factory=dict)
    fall_back_to_defaults: bool = True

    def rules_for(self, user_id: str, connection: CrmConnection) -> List[SignalRule]:
        rules = self.rules_by_user.get(user_id)
        if not rules and self.fall_back_to_defaults:
            rules = default_rules()
        return [r for r in rules or [] if r.applies_to_connection(connection.id)]


@dataclass
class InMemorySignalStore:
    saved: Dict[str, List[Signal]] = field(default_factory=dict)

    def save_signals(self, user_id: str, signals: Sequence[Signal]) -> List[Signal]:
        stored = [s if s.id else s.model_copy(update={"id": new_signal_id()}) for s in signals]
        self.saved.setdefault(user_id, []).extend(stored)
        return stored
