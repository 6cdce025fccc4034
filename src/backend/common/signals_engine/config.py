"""Rule definition loading and validation.

Anything wrong with a rule is reported here as a ConfigurationError, so a
malformed rule never reaches evaluation.
"""

from __future__ import annotations

import math
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping

from pydantic import ValidationError

from .conditions import operators
from .context import CONTEXT_FIELD_ROOTS
from .entities import EntityKind
from .errors import ConfigurationError
from .models import SignalRule

KNOWN_FIELD_ROOTS = frozenset(k.value for k in EntityKind) | CONTEXT_FIELD_ROOTS


DEFAULT_RULES: List[Dict[str, Any]] = [
    {
        "id": "rule_1",
        "name": "Follow-up needed",
        "description": "No contact in the last 30 days for open opportunities",
        "conditions": [
            {"field": "opportunity.stage", "operator": "not_equals", "value": "Closed Won"},
            {"field": "opportunity.stage", "operator": "not_equals", "value": "Closed Lost"},
            {"field": "days_since_last_contact", "operator": "greater_than", "value": 30},
        ],
        "priority": "high",
        "scoreModifier": 10,
        "baseScore": 80,
        "actions": [{"type": "call", "priority": 1}, {"type": "email", "priority": 2}],
    },
    {
        "id": "rule_2",
        "name": "Document viewed",
        "description": "Prospect has viewed shared document multiple times",
        "conditions": [
            {"field": "document.view_count", "operator": "greater_than", "value": 2},
            {"field": "document.days_since_shared", "operator": "less_than", "value": 7},
        ],
        "priority": "medium",
        "scoreModifier": 5,
        "baseScore": 60,
        "actions": [{"type": "email", "priority": 1}, {"type": "call", "priority": 2}],
    },
    {
        "id": "rule_3",
        "name": "High-value opportunity aging",
        "description": "High-value opportunity stuck in same stage for too long",
        "conditions": [
            {"field": "opportunity.value", "operator": "greater_than", "value": 50000},
            {"field": "opportunity.days_in_stage", "operator": "greater_than", "value": 14},
            {"field": "opportunity.probability", "operator": "greater_than", "value": 50},
        ],
        "priority": "high",
        "scoreModifier": 15,
        "baseScore": 85,
        "actions": [{"type": "call", "priority": 1}, {"type": "meeting", "priority": 2}],
    },
]


def load_rule(raw: Mapping[str, Any]) -> SignalRule:
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"Rule definition must be an object, got {type(raw).__name__}.")
    rule_id = raw.get("id")
    if not raw.get("conditions"):
        raise ConfigurationError("Rule has no conditions; empty rules would always fire.", rule_id=rule_id)
    try:
        rule = SignalRule.model_validate(dict(raw))
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid rule definition: {exc}", rule_id=rule_id) from exc

    if not rule.id.strip():
        raise ConfigurationError("Rule id must be non-empty.")
    for condition in rule.conditions:
        if not _is_finite_value(condition.value):
            raise ConfigurationError(
                f"Condition on '{condition.field}' has a non-finite value {condition.value!r}.",
                rule_id=rule.id,
            )
        if condition.operator not in operators:
            raise ConfigurationError(
                f"Unknown operator '{condition.operator}' (known: {', '.join(sorted(operators.names()))}).",
                rule_id=rule.id,
            )
        if condition.root not in KNOWN_FIELD_ROOTS:
            raise ConfigurationError(f"Unknown field '{condition.field}'.", rule_id=rule.id)

    # Actions are ranked once here; the scoring engine copies them as-is.
    ordered = tuple(sorted(rule.actions, key=lambda a: a.priority))
    return rule.model_copy(update={"actions": ordered})


def load_rules(raws: Iterable[Mapping[str, Any]]) -> List[SignalRule]:
    rules: List[SignalRule] = []
    seen: set[str] = set()
    for raw in raws:
        rule = load_rule(raw)
        if rule.id in seen:
            raise ConfigurationError("Duplicate rule id.", rule_id=rule.id)
        seen.add(rule.id)
        rules.append(rule)
    return rules


def default_rules() -> List[SignalRule]:
    return load_rules(DEFAULT_RULES)


def _is_finite_value(value: Any) -> bool:
    if isinstance(value, float):
        return math.isfinite(value)
    if isinstance(value, Decimal):
        return value.is_finite()
    if isinstance(value, (list, tuple)):
        return all(_is_finite_value(v) for v in value)
    return True
