from __future__ import annotations

import logging

from .conditions import evaluate
from .context import EntityContext
from .errors import FieldResolutionError, TypeMismatchError
from .models import SignalRule

logger = logging.getLogger(__name__)


def matches(rule: SignalRule, context: EntityContext) -> bool:
    """AND over the rule's conditions, in declaration order.

    Evaluation errors make the pair a non-match; they are logged, never raised,
    so one malformed rule cannot abort generation for a connection.
    """
    if not rule.enabled or not rule.conditions or not rule.applies_to_kind(context.kind):
        return False

    for condition in rule.conditions:
        try:
            if not evaluate(condition, context):
                return False
        except FieldResolutionError as exc:
            logger.info(
                "Rule %s skipped for %s %s: field %s unresolved (%s)",
                rule.id,
                context.primary.kind,
                context.primary.id,
                exc.field,
                exc,
            )
            return False
        except TypeMismatchError as exc:
            logger.warning(
                "Rule %s skipped for %s %s: type mismatch on %s (%s)",
                rule.id,
                context.primary.kind,
                context.primary.id,
                exc.field,
                exc,
            )
            return False
    return True
