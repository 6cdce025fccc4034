"""Signal generation over canonical CRM entities.

Rules, entity contexts, matching, scoring and aggregation live here. Vendor
transports, persistence and HTTP handling belong to `connectors`, `pipelines`
and `api`.
"""

from .aggregator import SignalAggregator, filter_signals, rank_signals
from .conditions import evaluate, register_operator
from .config import default_rules, load_rule, load_rules
from .context import EntityContext, assemble_contexts, build_context, resolve_field
from .entities import EntityKind
from .errors import (
    AdapterFetchError,
    AggregationError,
    ConfigurationError,
    FieldResolutionError,
    SignalEngineError,
    TypeMismatchError,
)
from .matcher import matches
from .models import (
    Action,
    Condition,
    ConnectionFailure,
    CrmConnection,
    GenerationResult,
    Priority,
    Signal,
    SignalRule,
)
from .scoring import ScoringEngine, score
