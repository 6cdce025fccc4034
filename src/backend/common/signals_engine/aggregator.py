from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Mapping, Optional, Sequence

from .context import EntityContext
from .errors import AdapterFetchError, AggregationError
from .matcher import matches
from .models import ConnectionFailure, CrmConnection, GenerationResult, Priority, Signal, SignalRule
from .scoring import ScoringEngine, default_scoring_engine

logger = logging.getLogger(__name__)

FetchContexts = Callable[[CrmConnection], Sequence[EntityContext]]


class SignalAggregator:
    """Runs every applicable rule over every context of every connection.

    Connections are independent units of work and may run on a bounded thread
    pool; the merged output depends only on input order, never on completion order.
    """

    def __init__(self, *, scoring_engine: Optional[ScoringEngine] = None, max_workers: int = 4):
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self._scoring = scoring_engine or default_scoring_engine
        self._max_workers = max_workers

    def generate(
        self,
        connections: Sequence[CrmConnection],
        rules_by_connection: Mapping[str, Sequence[SignalRule]],
        fetch_contexts: FetchContexts,
        *,
        signal_type: Optional[str] = None,
        priority: Optional[str] = None,
        generated_at: Optional[datetime] = None,
    ) -> GenerationResult:
        _validate_connections(connections)

        per_connection: List[List[Signal]] = []
        errors: List[ConnectionFailure] = []
        for connection, outcome in zip(connections, self._run_all(connections, rules_by_connection, fetch_contexts)):
            if isinstance(outcome, AdapterFetchError):
                logger.warning(
                    "Connection %s (%s) skipped: %s",
                    connection.id,
                    connection.provider,
                    outcome,
                )
                errors.append(
                    ConnectionFailure(
                        connection_id=connection.id,
                        provider=connection.provider,
                        error_type=type(outcome).__name__,
                        message=str(outcome),
                    )
                )
                per_connection.append([])
            else:
                per_connection.append(outcome)

        merged = [signal for signals in per_connection for signal in signals]
        ranked = rank_signals(filter_signals(merged, signal_type=signal_type, priority=priority))

        totals: dict[Priority, int] = {}
        for signal in ranked:
            totals[signal.priority] = totals.get(signal.priority, 0) + 1

        return GenerationResult(
            generated_at=generated_at or datetime.now(timezone.utc),
            signals=ranked,
            errors=errors,
            totals=totals,
        )

    def evaluate_connection(
        self,
        connection: CrmConnection,
        rules: Sequence[SignalRule],
        fetch_contexts: FetchContexts,
    ) -> List[Signal]:
        applicable = [rule for rule in rules if rule.applies_to_connection(connection.id)]
        contexts = fetch_contexts(connection)

        signals: List[Signal] = []
        for context in contexts:
            for rule in applicable:
                if matches(rule, context):
                    signals.append(self._scoring.score(rule, context))
        logger.debug(
            "Connection %s: %d contexts, %d rules, %d signals",
            connection.id,
            len(contexts),
            len(applicable),
            len(signals),
        )
        return signals

    def _run_all(
        self,
        connections: Sequence[CrmConnection],
        rules_by_connection: Mapping[str, Sequence[SignalRule]],
        fetch_contexts: FetchContexts,
    ) -> List[List[Signal] | AdapterFetchError]:
        def _one(connection: CrmConnection) -> List[Signal] | AdapterFetchError:
            try:
                return self.evaluate_connection(
                    connection,
                    rules_by_connection.get(connection.id, ()),
                    fetch_contexts,
                )
            except AdapterFetchError as exc:
                return exc

        workers = min(self._max_workers, len(connections))
        if workers <= 1:
            return [_one(c) for c in connections]
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="signals") as pool:
            # map() yields in submission order.
            return list(pool.map(_one, connections))


def filter_signals(
    signals: Iterable[Signal],
    *,
    signal_type: Optional[str] = None,
    priority: Optional[str] = None,
) -> List[Signal]:
    """Exact, case-sensitive post-filters; relative order is preserved."""
    out = []
    for signal in signals:
        if signal_type is not None and signal.type != signal_type:
            continue
        if priority is not None and signal.priority.value != priority:
            continue
        out.append(signal)
    return out


def rank_signals(signals: Iterable[Signal]) -> List[Signal]:
    # sorted() is stable: equal scores keep first-matched order.
    return sorted(signals, key=lambda s: s.score, reverse=True)


def _validate_connections(connections: Sequence[CrmConnection]) -> None:
    seen: set[str] = set()
    for connection in connections:
        if not isinstance(connection, CrmConnection):
            raise AggregationError(f"Malformed connection descriptor: {connection!r}")
        if not connection.id.strip() or not connection.provider.strip():
            raise AggregationError(f"Connection descriptor missing id or provider: {connection!r}")
        if connection.id in seen:
            raise AggregationError(f"Duplicate connection id: {connection.id}")
        seen.add(connection.id)
