from __future__ import annotations

import argparse
import json
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from .conditions import operators
from .config import KNOWN_FIELD_ROOTS, default_rules
from .entities import SCHEMA_VERSION
from .models import SignalRule


class RuleCatalogEntry(BaseModel):
    rule_id: str
    name: str
    description: str = ""
    priority: str
    score: str
    entity_kinds: List[str] = Field(default_factory=list)
    conditions: List[Dict[str, Any]] = Field(default_factory=list)
    actions: List[str] = Field(default_factory=list)


class SignalCatalog(BaseModel):
    schema_version: str
    operators: List[str]
    field_roots: List[str]
    rule_schema: Dict[str, Any]
    default_rules: List[RuleCatalogEntry]


def build_catalog() -> SignalCatalog:
    entries: List[RuleCatalogEntry] = []
    for rule in default_rules():
        entries.append(
            RuleCatalogEntry(
                rule_id=rule.id,
                name=rule.name,
                description=rule.description,
                priority=rule.priority.value,
                score=str(rule.base_score + rule.score_modifier),
                entity_kinds=[k.value for k in rule.entity_kinds],
                conditions=[c.model_dump(mode="json") for c in rule.conditions],
                actions=[a.type for a in rule.actions],
            )
        )
    entries.sort(key=lambda e: e.rule_id)

    return SignalCatalog(
        schema_version=SCHEMA_VERSION,
        operators=sorted(operators.names()),
        field_roots=sorted(KNOWN_FIELD_ROOTS),
        rule_schema=SignalRule.model_json_schema(by_alias=True),
        default_rules=entries,
    )


def _dump_json(catalog: dict[str, Any]) -> str:
    return json.dumps(catalog, indent=2, sort_keys=True)


def _dump_yaml(catalog: dict[str, Any]) -> str:
    import yaml

    return yaml.safe_dump(catalog, sort_keys=True)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Print the signal rule vocabulary and built-in rules.")
    parser.add_argument(
        "--format",
        choices=("yaml", "json"),
        default="yaml",
        help="Output format (default: yaml).",
    )
    parser.add_argument(
        "--no-schema",
        action="store_true",
        help="Omit the JSON schema of rule definitions.",
    )
    args = parser.parse_args(argv)

    catalog = build_catalog().model_dump(mode="json")
    if args.no_schema:
        catalog.pop("rule_schema", None)
    if args.format == "json":
        print(_dump_json(catalog))
    else:
        print(_dump_yaml(catalog))


if __name__ == "__main__":
    main()
