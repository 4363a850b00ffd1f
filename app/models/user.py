from enum import Enum
from typing import List, Optional
from app.models.base import MongoModel
from app.models.request import ActorRef

class UserRole(str, Enum):
    USER = "user"
    FINANCE_OPS = "finance_ops"             # Reviews operations
    FINANCE_PREP = "finance_prep"           # Reviews both committees
    APPROVER_OPS = "approver_ops"
    APPROVER_PREP = "approver_prep"
    SESSION_DIRECTOR = "session_director"   # Director, operations
    LOGISTIC_DIRECTOR = "logistic_director" # Director, preparation
    EXECUTIVE = "executive"
    ADMIN = "admin"

class AppUser(MongoModel):
    """
    Actor of every workflow call. Passed explicitly, never read from ambient state.
    """
    uid: str
    name: str = ""
    display_name: str = ""
    email: str = ""
    phone: str = ""
    role: UserRole = UserRole.USER

    bank_name: str = ""
    bank_account: str = ""
    signature: Optional[str] = None

    project_ids: List[str] = []

    def to_ref(self) -> ActorRef:
        return ActorRef(uid=self.uid, name=self.display_name or self.name, email=self.email)
