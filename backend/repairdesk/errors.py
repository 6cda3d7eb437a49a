# Overview: Exception taxonomy shared by services and the route action boundary.

"""
Workflow errors.

Services raise these; routes convert them into structured ``{"error": ...}``
results through ``decorators.action_boundary``. Anything that is not a
``WorkflowError`` is treated as unexpected: logged server-side in full and
surfaced to the caller as a generic message.
"""


class WorkflowError(Exception):
    """Base class for expected, caller-visible failures."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(WorkflowError):
    """400-level input problem."""

    status_code = 400


class AuthorizationError(WorkflowError):
    """No session, no tenant, or insufficient role. Message stays generic."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized", details: dict | None = None):
        super().__init__(message, details)


class NotFoundError(WorkflowError):
    """Referenced row is missing (or belongs to another tenant)."""

    status_code = 404


class ConflictError(WorkflowError):
    """409-level business rule conflict (duplicate name, referenced row)."""

    status_code = 409


class InvalidTransitionError(ConflictError):
    """Status change not allowed by the transition table."""


class InsufficientStockError(ConflictError):
    """Outbound movement would make stock negative."""


class PermissionDeniedError(AuthorizationError):
    """Authenticated, but the role may not perform the action."""

    status_code = 403
