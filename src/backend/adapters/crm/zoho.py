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

# `$se_module` on a Task names the module its What_Id points into.
_MODULE_KINDS = {
    "Leads": "lead",
    "Deals": "opportunity",
    "Accounts": "account",
    "Contacts": "contact",
}


def _lookup(raw: Mapping[str, Any], key: str) -> NamedRef:
    """Zoho lookup fields are {"id": ..., "name": ...} objects."""
    value = raw.get(key)
    if isinstance(value, dict):
        return NamedRef(id=clean_str(value.get("id")), name=clean_str(value.get("name")))
    return NamedRef()


@register_adapter
class ZohoAdapter(CrmAdapter):
    provider = "zoho"
    object_names = {
        EntityKind.LEAD: "Leads",
        EntityKind.OPPORTUNITY: "Deals",
        EntityKind.CONTACT: "Contacts",
        EntityKind.TASK: "Tasks",
    }
    auxiliary_kinds = (EntityKind.TASK,)

    def normalize(self, kind: EntityKind, raw: Mapping[str, Any]) -> BaseEntity | None:
        record_id = clean_str(raw.get("id"))
        if record_id is None:
            return None
        source = make_source(self.provider, kind, record_id)
        created_at = parse_datetime(raw.get("Created_Time"))
        updated_at = parse_datetime(raw.get("Modified_Time"))

        if kind == EntityKind.LEAD:
            return Lead(
                id=record_id,
                source=source,
                first_name=clean_str(raw.get("First_Name")),
                last_name=clean_str(raw.get("Last_Name")),
                full_name=clean_str(raw.get("Full_Name")) or full_name(raw.get("First_Name"), raw.get("Last_Name")),
                company=clean_str(raw.get("Company")),
                email=clean_str(raw.get("Email")),
                phone=clean_str(raw.get("Phone")),
                status=clean_str(raw.get("Lead_Status")),
                created_at=created_at,
                updated_at=updated_at,
                last_activity_at=parse_datetime(raw.get("Last_Activity_Time")),
            )

        if kind == EntityKind.OPPORTUNITY:
            return Opportunity(
                id=record_id,
                source=source,
                name=clean_str(raw.get("Deal_Name")),
                stage=clean_str(raw.get("Stage")),
                value=parse_decimal(raw.get("Amount")),
                probability=parse_decimal(raw.get("Probability")),
                close_date=parse_date(raw.get("Closing_Date")),
                account=_lookup(raw, "Account_Name"),
                owner=_lookup(raw, "Owner"),
                created_at=created_at,
                updated_at=updated_at,
                stage_changed_at=parse_datetime(raw.get("Stage_Modified_Time")),
                last_activity_at=parse_datetime(raw.get("Last_Activity_Time")),
            )

        if kind == EntityKind.CONTACT:
            return Contact(
                id=record_id,
                source=source,
                first_name=clean_str(raw.get("First_Name")),
                last_name=clean_str(raw.get("Last_Name")),
                full_name=clean_str(raw.get("Full_Name")) or full_name(raw.get("First_Name"), raw.get("Last_Name")),
                email=clean_str(raw.get("Email")),
                phone=clean_str(raw.get("Phone")),
                account=_lookup(raw, "Account_Name"),
                created_at=created_at,
                updated_at=updated_at,
                last_contacted_at=parse_datetime(raw.get("Last_Activity_Time")),
            )

        if kind == EntityKind.TASK:
            return Task(
                id=record_id,
                source=source,
                subject=clean_str(raw.get("Subject")),
                status=clean_str(raw.get("Status")),
                task_type=clean_str(raw.get("Task_Type")),
                due_date=parse_date(raw.get("Due_Date")),
                completed_at=parse_datetime(raw.get("Closed_Time")),
                created_at=created_at,
                updated_at=updated_at,
                associations=self._task_associations(raw),
            )

        return None

    def _task_associations(self, raw: Mapping[str, Any]) -> Associations:
        refs: dict[str, list[str]] = {"lead": [], "contact": [], "opportunity": [], "account": []}
        what = _lookup(raw, "What_Id")
        module_kind = _MODULE_KINDS.get(str(raw.get("$se_module") or ""))
        if what.id and module_kind:
            refs[module_kind].append(what.id)
        who = _lookup(raw, "Who_Id")
        if who.id:
            refs["contact"].append(who.id)
        return Associations(
            lead_ids=tuple(refs["lead"]),
            contact_ids=tuple(refs["contact"]),
            opportunity_ids=tuple(refs["opportunity"]),
            account_ids=tuple(refs["account"]),
        )
