"""
Typed workflow errors. Each carries the HTTP status the API layer maps it to;
the services themselves know nothing about HTTP beyond that number.
"""
from __future__ import annotations


class WorkflowError(Exception):
    status_code = 400
    code = "workflow_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RequestNotFound(WorkflowError):
    status_code = 404
    code = "not_found"

    def __init__(self, noun: str, request_id: int):
        super().__init__(f"{noun.capitalize()} {request_id} not found")
        self.request_id = request_id


class InvalidStateTransition(WorkflowError):
    status_code = 409
    code = "invalid_state_transition"

    def __init__(self, status: str, action: str):
        super().__init__(f"Cannot {action} a request in status {status}")
        self.status = status
        self.action = action


class NotAuthorized(WorkflowError):
    status_code = 403
    code = "not_authorized"


class NotCurrentApprover(WorkflowError):
    status_code = 403
    code = "not_current_approver"


class ChainAlreadyResolved(WorkflowError):
    status_code = 409
    code = "chain_already_resolved"


class DuplicateApprover(WorkflowError):
    status_code = 422
    code = "duplicate_approver"


class EmptyChain(WorkflowError):
    status_code = 422
    code = "empty_chain"


class ValidationError(WorkflowError):
    status_code = 422
    code = "validation_error"


class ConcurrencyConflict(WorkflowError):
    status_code = 409
    code = "concurrency_conflict"

    def __init__(self, request_id: int, message: str | None = None):
        super().__init__(
            message or f"Request {request_id} was modified concurrently; reload and retry"
        )
        self.request_id = request_id
