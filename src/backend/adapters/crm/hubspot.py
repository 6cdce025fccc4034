from __future__ import annotations

from decimal import Decimal
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

# Default sales pipeline stage ids; portals with custom pipelines send `dealstage_label`.
_DEAL_STAGE_LABELS = {
    "appointmentscheduled": "Appointment Scheduled",
    "qualifiedtobuy": "Qualified To Buy",
    "presentationscheduled": "Presentation Scheduled",
    "decisionmakerboughtin": "Decision Maker Bought-In",
    "contractsent": "Contract Sent",
    "closedwon": "Closed Won",
    "closedlost": "Closed Lost",
}

_ENGAGEMENT_TYPES = {
    "EMAIL": EngagementType.EMAIL,
    "INCOMING_EMAIL": EngagementType.EMAIL,
    "CALL": EngagementType.CALL,
    "MEETING": EngagementType.MEETING,
    "NOTE": EngagementType.NOTE,
    "DOCUMENT_SHARE": EngagementType.DOCUMENT_SHARE,
    "DOCUMENT_VIEW": EngagementType.DOCUMENT_VIEW,
}


def _props(raw: Mapping[str, Any]) -> Mapping[str, Any]:
    props = raw.get("properties")
    return props if isinstance(props, dict) else {}


def _associated_ids(raw: Mapping[str, Any], object_type: str) -> tuple[str, ...]:
    """Ids from the v3 `associations.<type>.results[].id` shape."""
    assoc = raw.get("associations")
    if not isinstance(assoc, dict):
        return ()
    bucket = assoc.get(object_type)
    if not isinstance(bucket, dict):
        return ()
    results = bucket.get("results")
    if not isinstance(results, list):
        return ()
    return id_list([r.get("id") for r in results if isinstance(r, dict)])


def _deal_stage(props: Mapping[str, Any]) -> str | None:
    label = clean_str(props.get("dealstage_label"))
    if label:
        return label
    stage = clean_str(props.get("dealstage"))
    if stage is None:
        return None
    return _DEAL_STAGE_LABELS.get(stage.lower(), stage)


def _probability_pct(value: Any) -> Decimal | None:
    prob = parse_decimal(value)
    if prob is None:
        return None
    # hs_deal_stage_probability is a 0..1 fraction.
    return prob * 100 if prob <= 1 else prob


@register_adapter
class HubspotAdapter(CrmAdapter):
    provider = "hubspot"
    object_names = {
        EntityKind.LEAD: "leads",
        EntityKind.OPPORTUNITY: "deals",
        EntityKind.CONTACT: "contacts",
        EntityKind.ENGAGEMENT: "engagements",
    }
    auxiliary_kinds = (EntityKind.ENGAGEMENT,)

    def normalize(self, kind: EntityKind, raw: Mapping[str, Any]) -> BaseEntity | None:
        if kind == EntityKind.ENGAGEMENT:
            return self._engagement(raw)

        record_id = clean_str(raw.get("id"))
        if record_id is None:
            return None
        props = _props(raw)
        source = make_source(self.provider, kind, record_id)
        created_at = parse_datetime(raw.get("createdAt") or props.get("createdate"))
        updated_at = parse_datetime(raw.get("updatedAt") or props.get("hs_lastmodifieddate"))

        if kind == EntityKind.LEAD:
            return Lead(
                id=record_id,
                source=source,
                first_name=clean_str(props.get("firstname")),
                last_name=clean_str(props.get("lastname")),
                full_name=full_name(props.get("firstname"), props.get("lastname")),
                company=clean_str(props.get("company")),
                email=clean_str(props.get("email")),
                phone=clean_str(props.get("phone")),
                status=clean_str(props.get("hs_lead_status")),
                created_at=created_at,
                updated_at=updated_at,
                last_activity_at=parse_datetime(props.get("notes_last_contacted")),
            )

        if kind == EntityKind.OPPORTUNITY:
            companies = _associated_ids(raw, "companies")
            return Opportunity(
                id=record_id,
                source=source,
                name=clean_str(props.get("dealname")),
                stage=_deal_stage(props),
                value=parse_decimal(props.get("amount")),
                probability=_probability_pct(props.get("hs_deal_stage_probability")),
                close_date=parse_date(props.get("closedate")),
                account=NamedRef(
                    id=companies[0] if companies else None,
                    name=clean_str(props.get("associatedcompanyname")),
                ),
                owner=NamedRef(id=clean_str(props.get("hubspot_owner_id"))),
                created_at=created_at,
                updated_at=updated_at,
                stage_changed_at=parse_datetime(props.get("hs_date_entered_current_stage")),
                last_activity_at=parse_datetime(props.get("notes_last_updated")),
            )

        if kind == EntityKind.CONTACT:
            company_id = clean_str(props.get("associatedcompanyid"))
            if company_id is None:
                companies = _associated_ids(raw, "companies")
                company_id = companies[0] if companies else None
            return Contact(
                id=record_id,
                source=source,
                first_name=clean_str(props.get("firstname")),
                last_name=clean_str(props.get("lastname")),
                full_name=full_name(props.get("firstname"), props.get("lastname")),
                email=clean_str(props.get("email")),
                phone=clean_str(props.get("phone")),
                account=NamedRef(id=company_id, name=clean_str(props.get("company"))),
                created_at=created_at,
                updated_at=updated_at,
                last_contacted_at=parse_datetime(props.get("notes_last_contacted")),
            )

        return None

    def _engagement(self, raw: Mapping[str, Any]) -> Engagement | None:
        # Engagements API (v1) shape: {"engagement": {...}, "associations": {...}, "metadata": {...}}
        engagement = raw.get("engagement")
        if not isinstance(engagement, dict):
            return None
        record_id = clean_str(engagement.get("id"))
        if record_id is None:
            return None
        raw_type = str(engagement.get("type") or "").strip().upper()
        engagement_type = _ENGAGEMENT_TYPES.get(raw_type)
        if engagement_type is None:
            # TASK and other engagement types carry no contact or document signal.
            return None

        assoc = raw.get("associations") if isinstance(raw.get("associations"), dict) else {}
        metadata = raw.get("metadata") if isinstance(raw.get("metadata"), dict) else {}
        return Engagement(
            id=record_id,
            source=make_source(self.provider, EntityKind.ENGAGEMENT, record_id),
            engagement_type=engagement_type,
            occurred_at=parse_datetime(engagement.get("timestamp")),
            created_at=parse_datetime(engagement.get("createdAt")),
            updated_at=parse_datetime(engagement.get("lastUpdated")),
            document_id=clean_str(metadata.get("documentId")),
            subject=clean_str(metadata.get("subject") or metadata.get("title")),
            associations=Associations(
                contact_ids=id_list(assoc.get("contactIds")),
                opportunity_ids=id_list(assoc.get("dealIds")),
                account_ids=id_list(assoc.get("companyIds")),
                lead_ids=id_list(assoc.get("leadIds")),
            ),
        )
