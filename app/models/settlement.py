from datetime import datetime
from typing import List, Optional
from pydantic import Field
from app.models.base import MongoModel
from app.models.request import ActorRef, Committee, Receipt, RequestItem

class Settlement(MongoModel):
    """
    Payee-grouped consolidation of approved requests.
    Representative fields are copied from the first request of the group.
    """
    project_id: str
    request_ids: List[str] = Field(..., min_length=1)

    payee: str = ""
    phone: str = ""
    bank_name: str = ""
    bank_account: str = ""
    session: str = ""
    committee: Committee

    items: List[RequestItem] = []
    total_amount: float = 0.0
    receipts: List[Receipt] = []

    approved_by: Optional[ActorRef] = None
    approval_signature: Optional[str] = None
    requested_by_signature: Optional[str] = None

    created_by: Optional[ActorRef] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
