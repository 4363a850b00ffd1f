from app.models.base import MongoModel, CamelModel
from app.models.request import PaymentRequest, RequestDraft, RequestItem, Receipt, ActorRef, RequestStatus, Committee, RESUBMITTABLE_STATUSES
from app.models.settlement import Settlement
from app.models.project import Project, BudgetConfig, ProjectSettingsUpdate
from app.models.user import AppUser, UserRole
from app.models.audit import AuditEvent, ActionType
