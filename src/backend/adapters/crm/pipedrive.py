from __future__ import annotations

from typing import Any, Mapping

from common.signals_engine.entities import (
    Associations,
    BaseEntity,
    Contact,
    Engagement,
    EngagementType,
    EntityKind,
    Lead,
    NamedRef,
    Opportunity,
    make_source,
)

from .base import CrmAdapter, clean_str, full_name, id_list, parse_date, parse_datetime, parse_decimal
from .registry import register_adapter

_DEAL_STATUS_STAGES = {
    "won": "Closed Won",
    "lost": "Closed Lost",
}

_ACTIVITY_TYPES = {
    "call": EngagementType.CALL,
    "email": EngagementType.EMAIL,
    "meeting": EngagementType.MEETING,
}


def _ref(value: Any, *, id_key: str = "value") -> NamedRef:
    """Pipedrive relations come either as a bare id or as an expanded object."""
    if isinstance(value, dict):
        return NamedRef(
            id=clean_str(value.get(id_key) if value.get(id_key) is not None else value.get("id")),
            name=clean_str(value.get("name")),
        )
    return NamedRef(id=clean_str(value))


def _primary_value(value: Any) -> str | None:
    """Email/phone fields are lists of {"value", "primary"} entries."""
    if isinstance(value, list):
        entries = [v for v in value if isinstance(v, dict) and clean_str(v.get("value"))]
        primary = next((v for v in entries if v.get("primary")), entries[0] if entries else None)
        return clean_str(primary.get("value")) if primary else None
    return clean_str(value)


def _deal_stage(raw: Mapping[str, Any]) -> str | None:
    status = str(raw.get("status") or "").strip().lower()
    if status in _DEAL_STATUS_STAGES:
        return _DEAL_STATUS_STAGES[status]
    name = clean_str(raw.get("stage_name"))
    if name:
        return name
    stage_id = clean_str(raw.get("stage_id"))
    return f"Stage {stage_id}" if stage_id else None


@register_adapter
class PipedriveAdapter(CrmAdapter):
    provider = "pipedrive"
    object_names = {
        EntityKind.LEAD: "leads",
        EntityKind.OPPORTUNITY: "deals",
        EntityKind.CONTACT: "persons",
        EntityKind.ENGAGEMENT: "activities",
    }
    auxiliary_kinds = (EntityKind.ENGAGEMENT,)

    def normalize(self, kind: EntityKind, raw: Mapping[str, Any]) -> BaseEntity | None:
        record_id = clean_str(raw.get("id"))
        if record_id is None:
            return None
        source = make_source(self.provider, kind, record_id)
        created_at = parse_datetime(raw.get("add_time"))
        updated_at = parse_datetime(raw.get("update_time"))

        if kind == EntityKind.LEAD:
            org = _ref(raw.get("organization_id"))
            return Lead(
                id=record_id,
                source=source,
                full_name=clean_str(raw.get("title")),
                company=org.name,
                status="Archived" if raw.get("is_archived") else "Open",
                created_at=created_at,
                updated_at=updated_at,
            )

        if kind == EntityKind.OPPORTUNITY:
            return Opportunity(
                id=record_id,
                source=source,
                name=clean_str(raw.get("title")),
                stage=_deal_stage(raw),
                value=parse_decimal(raw.get("value")),
                probability=parse_decimal(raw.get("probability")),
                close_date=parse_date(raw.get("expected_close_date")),
                account=_ref(raw.get("org_id")),
                owner=_ref(raw.get("user_id"), id_key="id"),
                created_at=created_at,
                updated_at=updated_at,
                stage_changed_at=parse_datetime(raw.get("stage_change_time")),
                last_activity_at=parse_datetime(raw.get("last_activity_date")),
            )

        if kind == EntityKind.CONTACT:
            return Contact(
                id=record_id,
                source=source,
                first_name=clean_str(raw.get("first_name")),
                last_name=clean_str(raw.get("last_name")),
                full_name=clean_str(raw.get("name")) or full_name(raw.get("first_name"), raw.get("last_name")),
                email=_primary_value(raw.get("email")),
                phone=_primary_value(raw.get("phone")),
                account=_ref(raw.get("org_id")),
                created_at=created_at,
                updated_at=updated_at,
                last_contacted_at=parse_datetime(raw.get("last_activity_date")),
            )

        if kind == EntityKind.ENGAGEMENT:
            engagement_type = _ACTIVITY_TYPES.get(str(raw.get("type") or "").strip().lower())
            if engagement_type is None:
                return None
            occurred_at = None
            if raw.get("done"):
                occurred_at = parse_datetime(raw.get("marked_as_done_time")) or parse_datetime(raw.get("due_date"))
            return Engagement(
                id=record_id,
                source=source,
                engagement_type=engagement_type,
                occurred_at=occurred_at,
                subject=clean_str(raw.get("subject")),
                created_at=created_at,
                updated_at=updated_at,
                associations=Associations(
                    lead_ids=id_list(raw.get("lead_id")),
                    opportunity_ids=id_list(raw.get("deal_id")),
                    contact_ids=id_list(raw.get("person_id")),
                    account_ids=id_list(raw.get("org_id")),
                ),
            )

        return None
