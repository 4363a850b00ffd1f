from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any
from pydantic import ConfigDict, Field
from app.models.base import MongoModel
from app.models.request import ActorRef

class ActionType(str, Enum):
    CREATE = "CREATE"
    REVIEW = "REVIEW"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    FORCE_REJECT = "FORCE_REJECT"
    CANCEL = "CANCEL"
    RESUBMIT = "RESUBMIT"
    SETTLE = "SETTLE"

class AuditEvent(MongoModel):
    """
    One committed status transition of a request.
    """
    event_id: str = Field(..., description="Unique event ID")
    request_id: str
    project_id: str

    action_type: ActionType
    actor: ActorRef
    from_status: Optional[str] = None
    to_status: str
    details: str = ""

    timestamp: datetime = Field(default_factory=datetime.utcnow)
    metadata: Dict[str, Any] = {}

    model_config = ConfigDict(json_schema_extra={
            "example": {
                "eventId": "EVT-1f2e",
                "requestId": "65f0c0ffee",
                "projectId": "65f0beef",
                "actionType": "APPROVE",
                "actor": {"uid": "u-dir", "name": "Director"},
                "fromStatus": "reviewed",
                "toStatus": "approved"
            }
        })
