from __future__ import annotations

from typing import Any, Mapping

from common.signals_engine.entities import (
    Associations,
    BaseEntity,
    Contact,
    EntityKind,
    Lead,
    NamedRef,
    Opportunity,
    Task,
    make_source,
)

from .base import CrmAdapter, clean_str, full_name, parse_date, parse_datetime, parse_decimal
from .registry import register_adapter

# Salesforce record id key prefixes, used when a polymorphic Who/What reference has no Type.
_ID_PREFIX_KINDS = {
    "00Q": "lead",
    "003": "contact",
    "006": "opportunity",
    "001": "account",
}


def _relationship_name(raw: Mapping[str, Any], flat_key: str, relationship: str) -> str | None:
    if flat_key in raw:
        return clean_str(raw.get(flat_key))
    nested = raw.get(relationship)
    if isinstance(nested, dict):
        return clean_str(nested.get("Name"))
    return None


def _reference_kind(raw: Mapping[str, Any], id_key: str, relationship: str) -> str | None:
    nested = raw.get(relationship)
    if isinstance(nested, dict) and nested.get("Type"):
        return str(nested["Type"]).strip().lower()
    flat = raw.get(f"{relationship}Type")
    if flat:
        return str(flat).strip().lower()
    ref = clean_str(raw.get(id_key))
    if ref:
        return _ID_PREFIX_KINDS.get(ref[:3])
    return None


@register_adapter
class SalesforceAdapter(CrmAdapter):
    provider = "salesforce"
    object_names = {
        EntityKind.LEAD: "Lead",
        EntityKind.OPPORTUNITY: "Opportunity",
        EntityKind.CONTACT: "Contact",
        EntityKind.TASK: "Task",
    }
    auxiliary_kinds = (EntityKind.TASK,)

    def normalize(self, kind: EntityKind, raw: Mapping[str, Any]) -> BaseEntity | None:
        record_id = clean_str(raw.get("Id"))
        if record_id is None:
            return None
        source = make_source(self.provider, kind, record_id)
        created_at = parse_datetime(raw.get("CreatedDate"))
        updated_at = parse_datetime(raw.get("LastModifiedDate"))

        if kind == EntityKind.LEAD:
            return Lead(
                id=record_id,
                source=source,
                first_name=clean_str(raw.get("FirstName")),
                last_name=clean_str(raw.get("LastName")),
                full_name=full_name(raw.get("FirstName"), raw.get("LastName")),
                company=clean_str(raw.get("Company")),
                email=clean_str(raw.get("Email")),
                phone=clean_str(raw.get("Phone")),
                status=clean_str(raw.get("Status")),
                created_at=created_at,
                updated_at=updated_at,
                last_activity_at=parse_datetime(raw.get("LastActivityDate")),
            )

        if kind == EntityKind.OPPORTUNITY:
            return Opportunity(
                id=record_id,
                source=source,
                name=clean_str(raw.get("Name")),
                stage=clean_str(raw.get("StageName")),
                value=parse_decimal(raw.get("Amount")),
                probability=parse_decimal(raw.get("Probability")),
                close_date=parse_date(raw.get("CloseDate")),
                account=NamedRef(
                    id=clean_str(raw.get("AccountId")),
                    name=_relationship_name(raw, "AccountName", "Account"),
                ),
                owner=NamedRef(
                    id=clean_str(raw.get("OwnerId")),
                    name=_relationship_name(raw, "OwnerName", "Owner"),
                ),
                created_at=created_at,
                updated_at=updated_at,
                stage_changed_at=parse_datetime(raw.get("LastStageChangeDate")),
                last_activity_at=parse_datetime(raw.get("LastActivityDate")),
            )

        if kind == EntityKind.CONTACT:
            return Contact(
                id=record_id,
                source=source,
                first_name=clean_str(raw.get("FirstName")),
                last_name=clean_str(raw.get("LastName")),
                full_name=full_name(raw.get("FirstName"), raw.get("LastName")),
                email=clean_str(raw.get("Email")),
                phone=clean_str(raw.get("Phone")),
                account=NamedRef(
                    id=clean_str(raw.get("AccountId")),
                    name=_relationship_name(raw, "AccountName", "Account"),
                ),
                created_at=created_at,
                updated_at=updated_at,
                last_contacted_at=parse_datetime(raw.get("LastActivityDate")),
            )

        if kind == EntityKind.TASK:
            return Task(
                id=record_id,
                source=source,
                subject=clean_str(raw.get("Subject")),
                status=clean_str(raw.get("Status")),
                task_type=clean_str(raw.get("TaskSubtype")),
                due_date=parse_date(raw.get("ActivityDate")),
                completed_at=parse_datetime(raw.get("CompletedDateTime")),
                created_at=created_at,
                updated_at=updated_at,
                associations=self._task_associations(raw),
            )

        return None

    def _task_associations(self, raw: Mapping[str, Any]) -> Associations:
        refs: dict[str, list[str]] = {"lead": [], "contact": [], "opportunity": [], "account": []}
        for id_key, relationship in (("WhoId", "Who"), ("WhatId", "What")):
            ref = clean_str(raw.get(id_key))
            kind = _reference_kind(raw, id_key, relationship)
            if ref and kind in refs:
                refs[kind].append(ref)
        account_id = clean_str(raw.get("AccountId"))
        if account_id and account_id not in refs["account"]:
            refs["account"].append(account_id)
        return Associations(
            lead_ids=tuple(refs["lead"]),
            contact_ids=tuple(refs["contact"]),
            opportunity_ids=tuple(refs["opportunity"]),
            account_ids=tuple(refs["account"]),
        )
