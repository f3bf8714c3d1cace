"""
workboard/errors.py

Error kinds raised by the authorization engine, invitation ledger and
membership mutators.

Core modules raise these and never import FastAPI. The HTTP layer maps them
to status codes in one place (see main.py). Forbidden and CrossTenant share a
status code and a public message; the distinct kind is kept for logging only.
"""

from __future__ import annotations


class WorkboardError(Exception):
    """Base class for all domain errors."""
    kind = "error"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.kind


class NotFoundError(WorkboardError):
    """A resource or one of its hierarchy parents does not exist."""
    kind = "not_found"
    status_code = 404


class ForbiddenError(WorkboardError):
    """Membership or role check failed."""
    kind = "forbidden"
    status_code = 403


class CrossTenantError(ForbiddenError):
    """Resource belongs to a different organization than the actor."""
    kind = "cross_tenant"


class ConflictError(WorkboardError):
    """Duplicate membership, duplicate live invitation, or a protected row."""
    kind = "conflict"
    status_code = 409


class InvalidInvitationError(WorkboardError):
    kind = "invalid_or_expired_invitation"
    status_code = 400

    def __init__(self, message: str = "Invalid or expired invitation"):
        super().__init__(message)


class ValidationError(WorkboardError):
    """Malformed input, e.g. an unknown role."""
    kind = "validation_error"
    status_code = 400


PUBLIC_FORBIDDEN_DETAIL = "Access denied"


def public_detail(error: WorkboardError) -> str:
    """Message safe to show the caller."""
    if isinstance(error, ForbiddenError):
        return PUBLIC_FORBIDDEN_DETAIL
    return error.message


def public_kind(error: WorkboardError) -> str:
    # Cross-tenant denials look exactly like any other denial from outside
    if isinstance(error, ForbiddenError):
        return ForbiddenError.kind
    return error.kind
