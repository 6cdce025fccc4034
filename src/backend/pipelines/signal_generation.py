from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

from adapters.crm import ConnectResult, CrmAdapter, EntityFilter, UnsupportedProviderError, adapter_registry
from adapters.crm.registry import AdapterRegistry
from common.signals_engine.aggregator import SignalAggregator
from common.signals_engine.context import EntityContext, assemble_contexts
from common.signals_engine.entities import PRIMARY_KINDS, BaseEntity, EntityKind
from common.signals_engine.errors import AggregationError
from common.signals_engine.models import CrmConnection, GenerationResult
from common.signals_engine.repositories import (
    ConnectionRepository,
    RuleRepository,
    SignalStore,
    new_connection_id,
)

from .config import SignalsConfig
from .data_source import FileRecordSourceFactory, RecordSourceFactory
from .stores import JsonConnectionRepository, JsonRuleRepository, JsonSignalStore

logger = logging.getLogger(__name__)


def build_connection_contexts(
    connection: CrmConnection,
    adapter: CrmAdapter,
    *,
    as_of: datetime,
    activity_lookback_days: int = 180,
) -> List[EntityContext]:
    """Fetch primary + auxiliary entities for one connection and assemble contexts.

    Adapter failures surface as AdapterFetchError; the aggregator isolates them per connection.
    """
    entities: Dict[EntityKind, List[BaseEntity]] = {}
    for kind in PRIMARY_KINDS:
        if adapter.supports(kind):
            entities[kind] = adapter.fetch_entities(kind)

    since = as_of - timedelta(days=activity_lookback_days)
    for kind in adapter.auxiliary_kinds:
        entities[kind] = adapter.fetch_entities(kind, EntityFilter(since=since))

    return assemble_contexts(connection, entities, as_of=as_of)


@dataclass(frozen=True)
class ConnectOutcome:
    result: ConnectResult
    connection: Optional[CrmConnection] = None


class SignalGenerationService:
    def __init__(
        self,
        *,
        connections: ConnectionRepository,
        rules: RuleRepository,
        signal_store: SignalStore,
        record_sources: RecordSourceFactory,
        adapters: AdapterRegistry = adapter_registry,
        aggregator: Optional[SignalAggregator] = None,
        activity_lookback_days: int = 180,
    ):
        self._connections = connections
        self._rules = rules
        self._signal_store = signal_store
        self._record_sources = record_sources
        self._adapters = adapters
        self._aggregator = aggregator or SignalAggregator()
        self._lookback_days = activity_lookback_days

    def generate_for_user(
        self,
        user_id: str,
        *,
        signal_type: Optional[str] = None,
        priority: Optional[str] = None,
        as_of: Optional[datetime] = None,
    ) -> GenerationResult:
        as_of = as_of or datetime.now(timezone.utc)
        connections = self._connections.list_connections(user_id)
        if not connections:
            return GenerationResult(generated_at=as_of, has_connections=False)

        adapters: Dict[str, CrmAdapter] = {}
        for connection in connections:
            try:
                adapters[connection.id] = self._adapters.create(
                    connection.provider, self._record_sources.source_for(connection)
                )
            except UnsupportedProviderError as exc:
                raise AggregationError(f"Connection {connection.id}: {exc}") from exc

        rules_by_connection = {c.id: self._rules.rules_for(user_id, c) for c in connections}

        def fetch_contexts(connection: CrmConnection) -> List[EntityContext]:
            return build_connection_contexts(
                connection,
                adapters[connection.id],
                as_of=as_of,
                activity_lookback_days=self._lookback_days,
            )

        result = self._aggregator.generate(
            connections,
            rules_by_connection,
            fetch_contexts,
            signal_type=signal_type,
            priority=priority,
            generated_at=as_of,
        )
        stored = self._signal_store.save_signals(user_id, result.signals)
        logger.info(
            "Generated %d signals for user %s across %d connections (%d failed)",
            len(stored),
            user_id,
            len(connections),
            len(result.errors),
        )
        return result.model_copy(update={"signals": stored})

    def connect(
        self,
        user_id: str,
        platform: str,
        credentials: Mapping[str, Any],
        settings: Optional[Mapping[str, Any]] = None,
    ) -> ConnectOutcome:
        """Authenticate against a CRM and persist the connection on success.

        Raises UnsupportedProviderError for unknown platforms.
        """
        adapter_cls = self._adapters.get(platform)
        provider = adapter_cls.provider
        pending = CrmConnection(
            id=new_connection_id(provider),
            user_id=user_id,
            provider=provider,
            settings=dict(settings or {}),
            created_at=datetime.now(timezone.utc),
        )
        adapter = adapter_cls(self._record_sources.source_for(pending))
        result = adapter.connect(credentials)
        if not result.success:
            logger.warning("Connection to %s for user %s failed: %s", provider, user_id, result.error)
            return ConnectOutcome(result=result)

        connection = pending.model_copy(update={"connection_token": result.token})
        connection_id = self._connections.save_connection(connection)
        return ConnectOutcome(result=result, connection=connection.model_copy(update={"id": connection_id}))


def build_file_backed_service(config: SignalsConfig) -> SignalGenerationService:
    data_dir = config.data_dir
    return SignalGenerationService(
        connections=JsonConnectionRepository(data_dir / "connections.json"),
        rules=JsonRuleRepository(data_dir / "rules.json"),
        signal_store=JsonSignalStore(data_dir / "signals"),
        record_sources=FileRecordSourceFactory(root_dir=data_dir / "records"),
        aggregator=SignalAggregator(max_workers=config.max_workers),
        activity_lookback_days=config.activity_lookback_days,
    )
