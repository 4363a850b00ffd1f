import sys
import os
sys.path.append(os.getcwd())
import pytest
from app.core.exceptions import AuthorizationError, ConflictError, ConsolidationError, NotFoundError
from app.models.audit import ActionType
from app.models.request import Committee, Receipt, RequestStatus
from app.models.user import UserRole
from app.services.settlement import SettlementService, build_settlement, group_requests, plan_settlements
from tests.conftest import FakeSession, PROJECT_ID, make_request, make_user

@pytest.fixture
def service():
    return SettlementService()

def store(mock_db, *requests):
    for request in requests:
        mock_db.requests.docs[request.id] = request
    return [r.id for r in requests]

def test_grouping_by_payee_bank_committee_session():
    a1 = make_request(uid="u-a", amounts=(100.0,))
    a2 = make_request(uid="u-a", amounts=(200.0,))
    a_other_account = make_request(uid="u-a", bank_account="999-000")
    a_prep = make_request(uid="u-a", committee=Committee.PREPARATION)
    a_session2 = make_request(uid="u-a", session="S2")
    b1 = make_request(uid="u-b")

    groups = group_requests([a1, b1, a2, a_other_account, a_prep, a_session2])
    assert [[r.id for r in g] for g in groups] == [
        [a1.id, a2.id],
        [b1.id],
        [a_other_account.id],
        [a_prep.id],
        [a_session2.id],
    ]

def test_build_settlement_concatenates_in_order():
    first = make_request(uid="u-a", amounts=(100.0, 50.0), receipts=[Receipt(file_name="a.jpg")])
    second = make_request(uid="u-a", amounts=(25.0,), receipts=[Receipt(file_name="b.jpg")])

    settlement = build_settlement([first, second], PROJECT_ID)
    assert settlement.request_ids == [first.id, second.id]
    assert [i.amount for i in settlement.items] == [100.0, 50.0, 25.0]
    assert [r.file_name for r in settlement.receipts] == ["a.jpg", "b.jpg"]
    assert settlement.total_amount == 175.0
    assert settlement.approved_by.uid == first.approved_by.uid
    assert settlement.approval_signature == first.approval_signature

def test_build_settlement_missing_approval_names_payee():
    ok = make_request(uid="u-a", payee="Alex")
    unsigned = make_request(uid="u-a", payee="Alex", signature=None)
    with pytest.raises(ConsolidationError, match="Alex"):
        build_settlement([ok, unsigned], PROJECT_ID)

def test_build_settlement_total_mismatch():
    drifted = make_request(uid="u-a", amounts=(100.0,))
    drifted.total_amount = 90.0
    with pytest.raises(ConsolidationError, match="does not match"):
        build_settlement([drifted], PROJECT_ID)

def test_build_settlement_mixed_group():
    with pytest.raises(ConsolidationError):
        build_settlement([make_request(uid="u-a"), make_request(uid="u-b")], PROJECT_ID)

def test_plan_rejects_unapproved():
    with pytest.raises(ConflictError):
        plan_settlements([make_request(status=RequestStatus.REVIEWED)], PROJECT_ID)

def test_plan_write_limit():
    requests = [make_request(uid=f"u-{i}") for i in range(3)]
    # 3 groups + 3 request flips
    with pytest.raises(ConsolidationError, match="Too many"):
        plan_settlements(requests, PROJECT_ID, max_writes=5)
    assert len(plan_settlements(requests, PROJECT_ID, max_writes=6)) == 3

@pytest.mark.asyncio
async def test_consolidate_happy_path(mock_db, users, service):
    a1 = make_request(uid="u-a", amounts=(100.0,))
    a2 = make_request(uid="u-a", amounts=(200.0,))
    b1 = make_request(uid="u-b", amounts=(50.0,))
    ids = store(mock_db, a1, a2, b1)

    settlements = await service.consolidate(users["u-finance_ops"], PROJECT_ID, ids)

    assert len(settlements) == 2
    assert [s.total_amount for s in settlements] == [300.0, 50.0]
    assert set(mock_db.settlements.docs) == {s.id for s in settlements}
    assert settlements[0].created_by.uid == "u-finance_ops"

    for settlement in settlements:
        for request_id in settlement.request_ids:
            request = mock_db.requests.docs[request_id]
            assert request.status == RequestStatus.SETTLED
            assert request.settlement_id == settlement.id

    actions = [call.args[0].action_type for call in mock_db.audit.create.call_args_list]
    assert actions == [ActionType.SETTLE] * 3

@pytest.mark.asyncio
async def test_consolidate_is_all_or_nothing(mock_db, users, service):
    good = make_request(uid="u-a")
    unsigned = make_request(uid="u-b", payee="Blake", signature=None)
    ids = store(mock_db, good, unsigned)

    with pytest.raises(ConsolidationError, match="Blake"):
        await service.consolidate(users["u-finance_ops"], PROJECT_ID, ids)

    assert mock_db.settlements.docs == {}
    assert all(mock_db.requests.docs[i].status == RequestStatus.APPROVED for i in ids)
    mock_db.audit.create.assert_not_called()

@pytest.mark.asyncio
async def test_consolidate_rolls_back_on_concurrent_change(mock_db, users, service):
    first = make_request(uid="u-a")
    second = make_request(uid="u-b")
    ids = store(mock_db, first, second)

    # Someone retracts the second approval after it was read
    original_get_many = mock_db.requests.get_many

    async def get_then_retract(request_ids, session=None):
        rows = await original_get_many(request_ids, session)
        mock_db.requests.docs[second.id] = second.model_copy(
            update={"status": RequestStatus.FORCE_REJECTED, "version": 1}
        )
        return rows

    mock_db.requests.get_many = get_then_retract

    with pytest.raises(ConflictError):
        await service.consolidate(users["u-finance_ops"], PROJECT_ID, ids)

    assert mock_db.settlements.docs == {}
    assert mock_db.requests.docs[first.id].status == RequestStatus.APPROVED
    assert mock_db.requests.docs[first.id].settlement_id is None

@pytest.mark.asyncio
async def test_consolidate_rejects_bad_selection(mock_db, users, service):
    approved = make_request(uid="u-a")
    pending = make_request(uid="u-a", status=RequestStatus.PENDING)
    ids = store(mock_db, approved, pending)

    with pytest.raises(AuthorizationError):
        await service.consolidate(users["u-user"], PROJECT_ID, ids)
    with pytest.raises(ConsolidationError):
        await service.consolidate(users["u-finance_ops"], PROJECT_ID, [])
    with pytest.raises(ConsolidationError, match="more than once"):
        await service.consolidate(users["u-finance_ops"], PROJECT_ID, [approved.id, approved.id])
    with pytest.raises(NotFoundError):
        await service.consolidate(users["u-finance_ops"], PROJECT_ID, [approved.id, "65f0000000000000000000aa"])
    with pytest.raises(ConflictError):
        await service.consolidate(users["u-finance_ops"], PROJECT_ID, ids)

    assert mock_db.settlements.docs == {}

@pytest.mark.asyncio
async def test_consolidate_foreign_project(mock_db, users, service):
    foreign = make_request(uid="u-a", project_id="65f0000000000000000000bb")
    ids = store(mock_db, foreign)
    with pytest.raises(ConsolidationError, match="another project"):
        await service.consolidate(users["u-finance_ops"], PROJECT_ID, ids)

@pytest.mark.asyncio
async def test_selection_is_read_inside_the_transaction(mock_db, users, service):
    ids = store(mock_db, make_request(uid="u-a"), make_request(uid="u-a"))
    sessions = []
    original_get_many = mock_db.requests.get_many

    async def recording_get_many(request_ids, session=None):
        sessions.append(session)
        return await original_get_many(request_ids, session)

    mock_db.requests.get_many = recording_get_many

    await service.consolidate(users["u-finance_ops"], PROJECT_ID, ids)

    assert len(sessions) == 1
    assert isinstance(sessions[0], FakeSession)

@pytest.mark.asyncio
async def test_non_member_cannot_settle_or_read(mock_db, users, service):
    ids = store(mock_db, make_request(uid="u-a"))
    await service.consolidate(users["u-finance_ops"], PROJECT_ID, ids)
    settlement_id = next(iter(mock_db.settlements.docs))

    outsider = make_user(UserRole.FINANCE_OPS, uid="u-other-project")
    outsider.project_ids = []
    with pytest.raises(AuthorizationError, match="not a member"):
        await service.consolidate(outsider, PROJECT_ID, ids)
    with pytest.raises(AuthorizationError):
        await service.list_settlements(outsider, PROJECT_ID)
    with pytest.raises(AuthorizationError):
        await service.get_settlement(outsider, settlement_id)

    assert len(await service.list_settlements(users["u-finance_ops"], PROJECT_ID)) == 1
