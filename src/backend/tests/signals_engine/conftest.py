import os
import sys


# Ensure `src/backend` is on sys.path so imports like `import common...` work.
BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from common.signals_engine.config import load_rule
from common.signals_engine.context import EntityContext, build_context
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
    Task,
    make_source,
)
from common.signals_engine.models import CrmConnection, SignalRule


@pytest.fixture
def as_of() -> datetime:
    return datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_connection():
    def _make(*, id: str = "conn_sf_123", provider: str = "salesforce", user_id: str = "user_1", settings=None):
        return CrmConnection(id=id, user_id=user_id, provider=provider, settings=settings or {})

    return _make


@pytest.fixture
def make_opportunity(as_of):
    def _make(
        *,
        id: str = "OPP-1",
        name: str = "Acme - New Software",
        stage: str | None = "Proposal",
        value="95000",
        probability="70",
        account_id: str | None = "ACC-1",
        stage_changed_days_ago: int | None = None,
        updated_days_ago: int | None = None,
        close_date=None,
        provider: str = "salesforce",
    ) -> Opportunity:
        return Opportunity(
            id=id,
            source=make_source(provider, EntityKind.OPPORTUNITY, id),
            name=name,
            stage=stage,
            value=Decimal(value) if value is not None else None,
            probability=Decimal(probability) if probability is not None else None,
            close_date=close_date,
            account=NamedRef(id=account_id, name="Acme Corp" if account_id else None),
            stage_changed_at=as_of - timedelta(days=stage_changed_days_ago)
            if stage_changed_days_ago is not None
            else None,
            updated_at=as_of - timedelta(days=updated_days_ago) if updated_days_ago is not None else None,
        )

    return _make


@pytest.fixture
def make_lead(as_of):
    def _make(*, id: str = "LEAD-1", status: str = "Open", updated_days_ago: int | None = None) -> Lead:
        return Lead(
            id=id,
            source=make_source("salesforce", EntityKind.LEAD, id),
            first_name="Jane",
            last_name="Smith",
            full_name="Jane Smith",
            company="Acme Corp",
            status=status,
            updated_at=as_of - timedelta(days=updated_days_ago) if updated_days_ago is not None else None,
        )

    return _make


@pytest.fixture
def make_contact(as_of):
    def _make(*, id: str = "CON-1", account_id: str | None = "ACC-1", contacted_days_ago: int | None = None) -> Contact:
        return Contact(
            id=id,
            source=make_source("salesforce", EntityKind.CONTACT, id),
            full_name="Jane Smith",
            email="jane@acme.example",
            account=NamedRef(id=account_id),
            last_contacted_at=as_of - timedelta(days=contacted_days_ago) if contacted_days_ago is not None else None,
        )

    return _make


@pytest.fixture
def make_engagement(as_of):
    def _make(
        *,
        id: str = "ENG-1",
        engagement_type: EngagementType = EngagementType.CALL,
        days_ago: int | None = 1,
        opportunity_ids=(),
        contact_ids=(),
        lead_ids=(),
        account_ids=(),
    ) -> Engagement:
        return Engagement(
            id=id,
            source=make_source("hubspot", EntityKind.ENGAGEMENT, id),
            engagement_type=engagement_type,
            occurred_at=as_of - timedelta(days=days_ago) if days_ago is not None else None,
            associations=Associations(
                opportunity_ids=tuple(opportunity_ids),
                contact_ids=tuple(contact_ids),
                lead_ids=tuple(lead_ids),
                account_ids=tuple(account_ids),
            ),
        )

    return _make


@pytest.fixture
def make_task(as_of):
    def _make(
        *,
        id: str = "TASK-1",
        status: str = "Completed",
        completed_days_ago: int | None = None,
        due_days_ago: int | None = None,
        opportunity_ids=(),
        lead_ids=(),
    ) -> Task:
        return Task(
            id=id,
            source=make_source("salesforce", EntityKind.TASK, id),
            subject="Follow up",
            status=status,
            completed_at=as_of - timedelta(days=completed_days_ago) if completed_days_ago is not None else None,
            due_date=(as_of - timedelta(days=due_days_ago)).date() if due_days_ago is not None else None,
            associations=Associations(opportunity_ids=tuple(opportunity_ids), lead_ids=tuple(lead_ids)),
        )

    return _make


@pytest.fixture
def make_ctx(as_of, make_connection):
    def _make(primary: BaseEntity, *, related=(), connection: CrmConnection | None = None) -> EntityContext:
        return build_context(
            primary,
            connection=connection or make_connection(),
            as_of=as_of,
            related=related,
        )

    return _make


@pytest.fixture
def make_rule():
    def _make(
        *,
        id: str = "rule_test",
        name: str = "Test rule",
        conditions,
        priority: str = "high",
        base_score=80,
        score_modifier=10,
        actions=None,
        **extra,
    ) -> SignalRule:
        raw = {
            "id": id,
            "name": name,
            "conditions": conditions,
            "priority": priority,
            "baseScore": base_score,
            "scoreModifier": score_modifier,
            "actions": actions if actions is not None else [{"type": "call", "priority": 1}],
        }
        raw.update(extra)
        return load_rule(raw)

    return _make
