"""
Domain exception hierarchy for the request workflow.

Services raise these synchronously; the API layer maps each kind to its own
HTTP status so callers can tell "you can't do this" (authorization) apart
from "someone already handled this" (conflict).
"""
from typing import Any, Dict, Optional


class WorkflowError(Exception):
    """Base class for every error raised by the workflow core."""

    kind: str = "workflow_error"
    status_code: int = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.kind, "detail": self.message}
        if self.details:
            body["details"] = self.details
        return body


class AuthorizationError(WorkflowError):
    """Actor lacks permission for the transition.

    Covers wrong role, wrong committee, amount over the director threshold,
    self-action and the director-request collapse.
    """

    kind = "authorization_error"
    status_code = 403


class ValidationError(WorkflowError):
    """A field required by the transition is missing or invalid."""

    kind = "validation_error"
    status_code = 422


class ConflictError(WorkflowError):
    """The persisted status no longer matches the expected pre-state.

    Args:
        request_id: The request whose write lost the race.
        expected: Status the caller expected to find.
        actual: Status actually persisted, when known.
    """

    kind = "conflict_error"
    status_code = 409

    def __init__(self, request_id: str, expected: str, actual: Optional[str] = None) -> None:
        self.request_id = request_id
        self.expected = expected
        self.actual = actual
        msg = f"Request {request_id} was already processed (expected status {expected}"
        if actual is not None:
            msg += f", found {actual}"
        msg += ")"
        super().__init__(msg, details={"requestId": request_id, "expected": expected, "actual": actual})


class ConsolidationError(WorkflowError):
    """A settlement batch failed a precondition; nothing was written."""

    kind = "consolidation_error"
    status_code = 422


class NotFoundError(WorkflowError):
    kind = "not_found"
    status_code = 404

    def __init__(self, resource: str, resource_id: Optional[str] = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)
