import asyncio
from typing import Dict, List

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from bson import ObjectId

from app.core.exceptions import ConflictError
from app.models.project import BudgetConfig, Project
from app.models.request import ActorRef, Committee, PaymentRequest, RequestItem, RequestStatus
from app.models.settlement import Settlement
from app.models.user import AppUser, UserRole

PROJECT_ID = "65f000000000000000000001"


class InMemoryRequestRepository:
    """
    Dict-backed stand-in for RequestRepository with the same
    compare-and-swap contract on (status, version).
    """

    def __init__(self):
        self.docs: Dict[str, PaymentRequest] = {}

    async def get(self, id, session=None):
        # Yield so concurrent callers interleave between read and write
        await asyncio.sleep(0)
        doc = self.docs.get(id)
        return doc.model_copy(deep=True) if doc else None

    async def create(self, model, session=None):
        model.id = model.id or str(ObjectId())
        self.docs[model.id] = model.model_copy(deep=True)
        return model

    async def compare_and_set(self, request_id, expected_status, expected_version, update_data, session=None):
        current = self.docs.get(request_id)
        if current is None or current.status != expected_status or current.version != expected_version:
            raise ConflictError(
                request_id,
                RequestStatus(expected_status).value,
                current.status.value if current else None,
            )
        updated = current.model_copy(update={**update_data, "version": current.version + 1}, deep=True)
        self.docs[request_id] = updated
        return updated.model_copy(deep=True)

    async def get_many(self, request_ids, session=None):
        return [self.docs[i].model_copy(deep=True) for i in request_ids if i in self.docs]

    async def list_by_project(self, project_id, statuses=None, requester_uid=None, skip=0, limit=0):
        rows = [d for d in self.docs.values() if d.project_id == project_id]
        if statuses is not None:
            wanted = {RequestStatus(s) for s in statuses}
            rows = [d for d in rows if d.status in wanted]
        if requester_uid:
            rows = [d for d in rows if d.requested_by.uid == requester_uid]
        rows.sort(key=lambda d: d.created_at, reverse=True)
        rows = rows[skip:]
        return rows[:limit] if limit else rows


class InMemorySettlementRepository:
    def __init__(self):
        self.docs: Dict[str, Settlement] = {}

    async def create(self, model, session=None):
        model.id = model.id or str(ObjectId())
        self.docs[model.id] = model.model_copy(deep=True)
        return model

    async def get(self, id, session=None):
        return self.docs.get(id)

    async def list_by_project(self, project_id, skip=0, limit=0):
        rows = [d for d in self.docs.values() if d.project_id == project_id]
        rows = rows[skip:]
        return rows[:limit] if limit else rows


class FakeTransaction:
    """Restores the stores on any exception, like an aborted MongoDB transaction."""

    def __init__(self, stores):
        self.stores = stores
        self.snapshots: List[dict] = []

    async def __aenter__(self):
        self.snapshots = [dict(store.docs) for store in self.stores]
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is not None:
            for store, snapshot in zip(self.stores, self.snapshots):
                store.docs = snapshot
        return False


class FakeSession:
    def __init__(self, stores):
        self.stores = stores

    def start_transaction(self):
        return FakeTransaction(self.stores)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


def make_user(role: UserRole, uid: str = None, **kwargs) -> AppUser:
    uid = uid or f"u-{role.value}"
    return AppUser(
        uid=uid,
        name=kwargs.pop("name", role.value),
        email=kwargs.pop("email", f"{uid}@example.com"),
        role=role,
        project_ids=[PROJECT_ID],
        **kwargs,
    )


def make_request(
    uid: str = "u-user",
    status: RequestStatus = RequestStatus.APPROVED,
    committee: Committee = Committee.OPERATIONS,
    amounts=(100000.0,),
    bank_account: str = "111-222",
    session: str = "S1",
    signature: str = "data:image/png;base64,SIG",
    **kwargs,
) -> PaymentRequest:
    items = [RequestItem(description=f"item {i}", budget_code="1101", amount=a) for i, a in enumerate(amounts)]
    approved = status in (RequestStatus.APPROVED, RequestStatus.SETTLED)
    return PaymentRequest(
        id=kwargs.pop("id", str(ObjectId())),
        project_id=kwargs.pop("project_id", PROJECT_ID),
        status=status,
        committee=committee,
        payee=kwargs.pop("payee", uid),
        bank_name=kwargs.pop("bank_name", "Example Bank"),
        bank_account=bank_account,
        session=session,
        items=items,
        total_amount=sum(amounts),
        requested_by=ActorRef(uid=uid, name=uid, email=f"{uid}@example.com"),
        approved_by=ActorRef(uid="u-executive", name="Exec") if approved else None,
        approval_signature=signature if approved else None,
        **kwargs,
    )


@pytest.fixture
def project():
    return Project(
        id=PROJECT_ID,
        name="Test Project",
        budget_config=BudgetConfig(total_budget=1000000, by_code={"1101": 500000}),
        director_approval_threshold=600000,
        budget_warning_threshold=85,
    )


@pytest.fixture
def users():
    by_uid = {make_user(role).uid: make_user(role) for role in UserRole}
    by_uid["u-user2"] = make_user(UserRole.USER, uid="u-user2")
    return by_uid


@pytest.fixture
def mock_db(project, users):
    fake = MagicMock()
    fake.requests = InMemoryRequestRepository()
    fake.settlements = InMemorySettlementRepository()
    fake.projects = AsyncMock()
    fake.projects.get = AsyncMock(side_effect=lambda id: project if id == project.id else None)
    fake.users = AsyncMock()
    fake.users.get_by_uid = AsyncMock(side_effect=lambda uid: users.get(uid))
    fake.audit = AsyncMock()
    fake.start_session = AsyncMock(side_effect=lambda: FakeSession([fake.requests, fake.settlements]))
    with patch("app.services.requests.db", fake), \
         patch("app.services.settlement.db", fake), \
         patch("app.services.budget.db", fake), \
         patch("app.guardrails.audit_logger.db", fake):
        yield fake
