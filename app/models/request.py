from datetime import datetime
from enum import Enum
from typing import Annotated, List, Optional
from pydantic import BeforeValidator, Field
from app.models.base import CamelModel, MongoModel

class RequestStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    APPROVED = "approved"
    REJECTED = "rejected"
    SETTLED = "settled"
    CANCELLED = "cancelled"
    FORCE_REJECTED = "force_rejected"

class Committee(str, Enum):
    OPERATIONS = "operations"
    PREPARATION = "preparation"

# Statuses from which the requester may resubmit a new request
RESUBMITTABLE_STATUSES = {
    RequestStatus.REJECTED,
    RequestStatus.CANCELLED,
    RequestStatus.FORCE_REJECTED,
}

class ActorRef(CamelModel):
    """Snapshot of who acted, stored on the request."""
    uid: str
    name: str = ""
    email: str = ""

# Budget codes arrive as numbers or strings; stored as strings
BudgetCode = Annotated[Optional[str], BeforeValidator(lambda v: None if v is None else str(v))]

class RequestItem(CamelModel):
    """A single expense line."""
    description: str = ""
    budget_code: BudgetCode = Field(None, description="Budget code the expense is booked against")
    amount: float

class Receipt(CamelModel):
    """Opaque descriptor returned by the file storage service."""
    file_name: str
    storage_path: Optional[str] = None
    url: Optional[str] = None

class RequestDraft(CamelModel):
    """
    What a requester submits. Totals are never taken from the client.
    """
    committee: Committee
    items: List[RequestItem] = []
    receipts: List[Receipt] = []
    payee: str = ""
    phone: str = ""
    bank_name: str = ""
    bank_account: str = ""
    date: str = ""
    session: str = ""
    comments: str = ""
    requested_by_signature: Optional[str] = None

class PaymentRequest(MongoModel):
    """
    Reimbursement request moving through the approval pipeline.
    """
    project_id: str
    status: RequestStatus = Field(default=RequestStatus.PENDING)
    committee: Committee

    # Payee
    payee: str = ""
    phone: str = ""
    bank_name: str = ""
    bank_account: str = ""
    date: str = ""
    session: str = ""

    # Financials
    items: List[RequestItem] = []
    total_amount: float = 0.0
    receipts: List[Receipt] = []
    comments: str = ""

    # Actors
    requested_by: ActorRef
    requested_by_signature: Optional[str] = None
    reviewed_by: Optional[ActorRef] = None
    reviewed_at: Optional[datetime] = None
    approved_by: Optional[ActorRef] = None
    approval_signature: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    # Links
    settlement_id: Optional[str] = None
    original_request_id: Optional[str] = None

    # Metadata
    created_at: datetime = Field(default_factory=datetime.utcnow)
    version: int = 0

    def calculate_total(self) -> float:
        """Recalculate total from line items."""
        return sum(item.amount for item in self.items)
