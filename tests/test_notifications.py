import sys
import os
sys.path.append(os.getcwd())
import pytest
from unittest.mock import AsyncMock, patch
from app.guardrails.audit_logger import AuditLogger
from app.models.audit import ActionType
from app.models.request import ActorRef, Committee, RequestStatus
from app.models.user import UserRole
from app.tools.notification_tool import NotificationTool
from app.workflow.state_machine import TransitionEvent
from tests.conftest import make_request

ACTOR = ActorRef(uid="u-finance_prep", name="Finance")

def event(to_status, from_status=None, committee=Committee.OPERATIONS):
    request = make_request(status=to_status, committee=committee)
    return TransitionEvent(request=request, from_status=from_status, to_status=to_status,
                           actor=ACTOR, action=ActionType.REVIEW)

def test_new_request_goes_to_reviewers():
    recipients = NotificationTool().recipients_for(event(RequestStatus.PENDING, committee=Committee.PREPARATION))
    assert recipients == ["role:finance_prep", "role:admin"]

def test_reviewed_goes_to_approver_pool():
    recipients = NotificationTool().recipients_for(
        event(RequestStatus.REVIEWED, RequestStatus.PENDING),
        [UserRole.SESSION_DIRECTOR, UserRole.EXECUTIVE],
    )
    assert recipients == ["role:session_director", "role:executive"]

def test_resolution_goes_to_requester():
    tool = NotificationTool()
    for status in (RequestStatus.APPROVED, RequestStatus.REJECTED, RequestStatus.SETTLED):
        assert tool.recipients_for(event(status, RequestStatus.REVIEWED)) == ["u-user@example.com"]
    assert tool.recipients_for(event(RequestStatus.CANCELLED, RequestStatus.PENDING)) == []

@pytest.mark.asyncio
async def test_notify_transition_sends_email():
    tool = NotificationTool()
    with patch.object(tool, "_send_email", AsyncMock()) as send:
        await tool.notify_transition(event(RequestStatus.APPROVED, RequestStatus.REVIEWED))
    send.assert_called_once()
    user, subject, _ = send.call_args.args
    assert user == "u-user@example.com"
    assert "approved" in subject

@pytest.mark.asyncio
async def test_audit_event_records_transition():
    with patch("app.guardrails.audit_logger.db") as mock_db:
        mock_db.audit.create = AsyncMock()
        audit_event = await AuditLogger().log_transition(event(RequestStatus.REVIEWED, RequestStatus.PENDING))

    mock_db.audit.create.assert_called_once_with(audit_event)
    assert audit_event.event_id.startswith("EVT-")
    assert audit_event.from_status == "pending"
    assert audit_event.to_status == "reviewed"
    assert audit_event.actor.uid == "u-finance_prep"
