from datetime import datetime
from typing import Dict, List, Optional
from pydantic import Field, field_validator
from app.config import settings
from app.models.base import CamelModel, MongoModel

class BudgetConfig(CamelModel):
    total_budget: float = 0.0
    # Allocation per budget code, e.g. {"1101": 200000}
    by_code: Dict[str, float] = {}

class Project(MongoModel):
    """
    Tenant scope: every request and settlement belongs to one project.
    """
    name: str
    description: str = ""
    document_no: str = ""

    budget_config: BudgetConfig = Field(default_factory=BudgetConfig)
    director_approval_threshold: float = Field(
        default_factory=lambda: settings.DEFAULT_DIRECTOR_APPROVAL_THRESHOLD,
        description="Amount above which only directors/executive/admin may approve"
    )
    budget_warning_threshold: float = Field(
        default_factory=lambda: settings.DEFAULT_BUDGET_WARNING_THRESHOLD,
        ge=0, le=100,
        description="Budget usage percent at which warnings start"
    )

    member_uids: List[str] = []
    created_at: datetime = Field(default_factory=datetime.utcnow)

class ProjectSettingsUpdate(CamelModel):
    """Partial update of the project's workflow settings."""
    name: Optional[str] = None
    description: Optional[str] = None
    director_approval_threshold: Optional[float] = None
    budget_warning_threshold: Optional[float] = None
    budget_config: Optional[BudgetConfig] = None

    @field_validator('budget_warning_threshold')
    @classmethod
    def validate_warning(cls, v):
        if v is not None and not 0 <= v <= 100:
            raise ValueError('budgetWarningThreshold must be between 0 and 100')
        return v

    @field_validator('director_approval_threshold')
    @classmethod
    def validate_threshold(cls, v):
        if v is not None and v < 0:
            raise ValueError('directorApprovalThreshold must not be negative')
        return v
