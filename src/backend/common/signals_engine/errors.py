from __future__ import annotations


class SignalEngineError(Exception):
    pass


class ConfigurationError(SignalEngineError, ValueError):
    """Malformed rule definition; raised at rule-load time."""

    def __init__(self, message: str, *, rule_id: str | None = None):
        prefix = f"Rule {rule_id}: " if rule_id else ""
        super().__init__(f"{prefix}{message}")
        self.rule_id = rule_id


class ConditionEvaluationError(SignalEngineError):
    def __init__(self, message: str, *, field: str):
        super().__init__(message)
        self.field = field


class FieldResolutionError(ConditionEvaluationError):
    pass


class TypeMismatchError(ConditionEvaluationError):
    pass


class AdapterFetchError(SignalEngineError):
    def __init__(self, message: str, *, provider: str = "", kind: str | None = None):
        super().__init__(message)
        self.provider = provider
        self.kind = kind


class AggregationError(SignalEngineError):
    pass
