import logging
import math
from typing import Dict, Iterable, List, Optional

from pydantic import Field

from app.config import settings
from app.database import db
from app.models.base import CamelModel
from app.models.project import Project
from app.models.request import PaymentRequest, RequestStatus

logger = logging.getLogger(__name__)

# Past initial triage and expected to be paid
CONSUMING_STATUSES = frozenset({
    RequestStatus.REVIEWED,
    RequestStatus.APPROVED,
    RequestStatus.SETTLED,
})

class BudgetUsage(CamelModel):
    used_amount: float
    total_budget: float
    percent: int
    warning_threshold: float
    exceeded: bool
    warning: bool

class CodeUsage(CamelModel):
    budget_code: str
    allocated: float = 0.0
    used: float = 0.0
    percent: Optional[int] = None

class ProjectBudget(CamelModel):
    project_id: str
    usage: Optional[BudgetUsage] = None
    by_code: List[CodeUsage] = Field(default_factory=list)

def round_percent(value: float) -> int:
    """Half-up rounding, so 84.5 reads as 85."""
    return int(math.floor(value + 0.5))

def consumed_requests(requests: Iterable[PaymentRequest]) -> List[PaymentRequest]:
    return [r for r in requests if r.status in CONSUMING_STATUSES]

def calculate_budget_usage(
    total_budget: float,
    requests: Iterable[PaymentRequest],
    warning_threshold: Optional[float] = None,
) -> Optional[BudgetUsage]:
    """
    Returns None when no budget is configured (total_budget <= 0).
    """
    if total_budget is None or total_budget <= 0:
        return None
    if warning_threshold is None:
        warning_threshold = settings.DEFAULT_BUDGET_WARNING_THRESHOLD
    used = sum(r.total_amount for r in consumed_requests(requests))
    percent = round_percent(used / total_budget * 100)
    return BudgetUsage(
        used_amount=used,
        total_budget=total_budget,
        percent=percent,
        warning_threshold=warning_threshold,
        exceeded=percent >= 100,
        warning=percent >= warning_threshold,
    )

def usage_by_code(by_code: Dict[str, float], requests: Iterable[PaymentRequest]) -> List[CodeUsage]:
    """
    Per budget code usage. Codes without an allocation are still listed.
    """
    used: Dict[str, float] = {}
    for request in consumed_requests(requests):
        for item in request.items:
            code = str(item.budget_code)
            used[code] = used.get(code, 0.0) + item.amount

    rows = []
    for code in sorted(set(by_code) | set(used)):
        allocated = by_code.get(code, 0.0)
        spent = used.get(code, 0.0)
        rows.append(CodeUsage(
            budget_code=code,
            allocated=allocated,
            used=spent,
            percent=round_percent(spent / allocated * 100) if allocated > 0 else None,
        ))
    return rows

class BudgetService:
    def __init__(self):
        pass

    async def usage_for_project(self, project: Project) -> Optional[BudgetUsage]:
        requests = await db.requests.list_by_project(project.id, statuses=CONSUMING_STATUSES)
        return calculate_budget_usage(
            project.budget_config.total_budget,
            requests,
            project.budget_warning_threshold,
        )

    async def project_budget(self, project: Project) -> ProjectBudget:
        requests = await db.requests.list_by_project(project.id, statuses=CONSUMING_STATUSES)
        usage = calculate_budget_usage(
            project.budget_config.total_budget,
            requests,
            project.budget_warning_threshold,
        )
        if usage and usage.warning:
            logger.info(f"Project {project.id} budget at {usage.percent}%")
        return ProjectBudget(
            project_id=project.id,
            usage=usage,
            by_code=usage_by_code(project.budget_config.by_code, requests),
        )

budget_service = BudgetService()
