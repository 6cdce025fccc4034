from __future__ import annotations

from decimal import Decimal

from .context import EntityContext
from .entities import EntityKind
from .models import EntityRef, Signal, SignalRule


def signal_type_for(rule_id: str, kind: EntityKind | str) -> str:
    kind_value = kind.value if isinstance(kind, EntityKind) else str(kind)
    return f"{kind_value}:{rule_id}"


class ScoringEngine:
    """Turns a matched (rule, context) pair into a Signal.

    `compute_score` is the extension point for context-sensitive scoring
    (e.g. scaling by opportunity value); the default is the rule's constant sum.
    """

    def compute_score(self, rule: SignalRule, context: EntityContext) -> Decimal:
        return rule.base_score + rule.score_modifier

    def score(self, rule: SignalRule, context: EntityContext) -> Signal:
        primary = context.primary
        return Signal(
            type=signal_type_for(rule.id, context.kind),
            rule_id=rule.id,
            title=f"{rule.name}: {primary.display_name}",
            description=rule.description,
            priority=rule.priority,
            score=self.compute_score(rule, context),
            entity_ref=EntityRef(
                kind=context.kind,
                id=primary.id,
                connection_id=context.connection.id,
                provider=context.connection.provider,
                name=primary.display_name,
            ),
            actions=rule.actions,
            generated_at=context.as_of,
        )


default_scoring_engine = ScoringEngine()


def score(rule: SignalRule, context: EntityContext) -> Signal:
    return default_scoring_engine.score(rule, context)
