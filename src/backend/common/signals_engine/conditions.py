"""Condition evaluation: one field/operator/value test against an entity context."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable

from .context import EntityContext, resolve_field
from .errors import TypeMismatchError
from .models import Condition

OperatorFn = Callable[[Any, Any, str], bool]


class OperatorRegistry:
    def __init__(self):
        self._operators: Dict[str, OperatorFn] = {}

    def register(self, name: str, fn: OperatorFn) -> None:
        if not name:
            raise ValueError("Operator name must be non-empty")
        if name in self._operators:
            raise ValueError(f"Duplicate operator registered: {name}")
        self._operators[name] = fn

    def get(self, name: str) -> OperatorFn:
        return self._operators[name]

    def __contains__(self, name: object) -> bool:
        return name in self._operators

    def names(self) -> Iterable[str]:
        return self._operators.keys()


operators = OperatorRegistry()


def register_operator(name: str) -> Callable[[OperatorFn], OperatorFn]:
    def _decorator(fn: OperatorFn) -> OperatorFn:
        operators.register(name, fn)
        return fn

    return _decorator


def evaluate(condition: Condition, context: EntityContext) -> bool:
    """Return whether `condition` holds for `context`.

    Raises FieldResolutionError when the field is absent and TypeMismatchError
    when an ordering operator gets operands that are not both numbers or both dates.
    """
    actual = resolve_field(context, condition.field)
    fn = operators.get(condition.operator)
    return fn(actual, condition.value, condition.field)


@register_operator("equals")
def _equals(actual: Any, expected: Any, field: str) -> bool:
    if isinstance(actual, date) or isinstance(expected, date):
        left, right = _as_datetime(actual), _as_datetime(expected)
        if left is not None and right is not None:
            return left == right
    return _normalize_for_equality(actual) == _normalize_for_equality(expected)


@register_operator("not_equals")
def _not_equals(actual: Any, expected: Any, field: str) -> bool:
    return not _equals(actual, expected, field)


@register_operator("greater_than")
def _greater_than(actual: Any, expected: Any, field: str) -> bool:
    left, right = _ordered_pair(actual, expected, field)
    return left > right


@register_operator("less_than")
def _less_than(actual: Any, expected: Any, field: str) -> bool:
    left, right = _ordered_pair(actual, expected, field)
    return left < right


@register_operator("greater_than_or_equal")
def _greater_than_or_equal(actual: Any, expected: Any, field: str) -> bool:
    left, right = _ordered_pair(actual, expected, field)
    return left >= right


@register_operator("less_than_or_equal")
def _less_than_or_equal(actual: Any, expected: Any, field: str) -> bool:
    left, right = _ordered_pair(actual, expected, field)
    return left <= right


@register_operator("contains")
def _contains(actual: Any, expected: Any, field: str) -> bool:
    if isinstance(actual, str):
        if not isinstance(expected, str):
            raise TypeMismatchError(
                f"'contains' on text field '{field}' needs a text value, got {type(expected).__name__}.",
                field=field,
            )
        return expected in actual
    if isinstance(actual, (list, tuple, set, frozenset)):
        target = _normalize_for_equality(expected)
        return any(_normalize_for_equality(item) == target for item in actual)
    raise TypeMismatchError(
        f"'contains' needs a text or list field; '{field}' is {type(actual).__name__}.",
        field=field,
    )


@register_operator("in")
def _in(actual: Any, expected: Any, field: str) -> bool:
    if not isinstance(expected, (list, tuple, set, frozenset)):
        raise TypeMismatchError(f"'in' needs a list value for '{field}'.", field=field)
    target = _normalize_for_equality(actual)
    return any(_normalize_for_equality(item) == target for item in expected)


def _ordered_pair(actual: Any, expected: Any, field: str) -> tuple[Any, Any]:
    left_num, right_num = _as_number(actual), _as_number(expected)
    if left_num is not None and right_num is not None:
        return left_num, right_num

    left_dt, right_dt = _as_datetime(actual), _as_datetime(expected)
    if left_dt is not None and right_dt is not None:
        return left_dt, right_dt

    raise TypeMismatchError(
        f"Cannot order '{field}': {type(actual).__name__} vs {type(expected).__name__} "
        "(both sides must be numbers or both dates).",
        field=field,
    )


def _as_number(value: Any) -> Decimal | None:
    # bool is an int subclass but never an ordered operand.
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, Decimal)):
        number = Decimal(value)
    elif isinstance(value, float):
        try:
            number = Decimal(str(value))
        except InvalidOperation:
            return None
    else:
        return None
    # NaN and infinities have no ordering.
    return number if number.is_finite() else None


def _as_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return _as_datetime(parsed)
    return None


def _normalize_for_equality(value: Any) -> Any:
    number = _as_number(value)
    if number is not None:
        return number
    if isinstance(value, (datetime, date)):
        return _as_datetime(value)
    if isinstance(value, (list, tuple)):
        return tuple(_normalize_for_equality(v) for v in value)
    if isinstance(value, dict):
        return {k: _normalize_for_equality(v) for k, v in value.items()}
    return value
