"""
core.domain.exceptions — Domain-specific exception hierarchy.

These exceptions represent business-rule violations inside service layers.
They are deliberately **not** DRF exceptions so that the domain layer stays
framework-agnostic.  ``core.domain.exception_handler`` maps them to the
appropriate HTTP response.

Mapping cheatsheet
------------------
┌─────────────────────┬──────────────────────────────┬──────┐
│ Domain Exception    │ Meaning for the caller       │ Code │
├─────────────────────┼──────────────────────────────┼──────┤
│ DomainError         │ generic business-rule error  │ 400  │
│ ValidationError     │ missing / malformed input    │ 400  │
│ PermissionDenied    │ actor has no usable role     │ 403  │
│ NotFound            │ unknown or foreign reference │ 404  │
│ Conflict            │ state changed concurrently   │ 409  │
│ InvalidTransition   │ illegal intent for status    │ 409  │
│ Busy                │ case lock not acquired       │ 409  │
│ PersistenceFailure  │ transaction did not commit   │ 500  │
└─────────────────────┴──────────────────────────────┴──────┘

``ValidationError`` and ``InvalidTransition`` are user-actionable and must
never be retried automatically.  ``Conflict`` and ``Busy`` are safe to
retry.  ``PersistenceFailure`` is fatal for the request.

Recommended usage inside a service::

    from core.domain.exceptions import InvalidTransition

    if target is None:
        raise InvalidTransition(
            current=case.status,
            target=intent,
            reason="Case must be approved before scheduling.",
        )
"""

from __future__ import annotations


class DomainError(Exception):
    """
    Base class for all domain / business-rule errors.

    Catch this at the view boundary and convert to a 400 Bad Request.
    """

    code = "domain_error"
    retryable = False

    def __init__(self, message: str = "A business rule was violated.") -> None:
        self.message = message
        super().__init__(self.message)


class ValidationError(DomainError):
    """
    A required field is missing or malformed (e.g. an empty dispute
    detail or rejection reason).

    Maps to HTTP 400.
    """

    code = "validation_error"

    def __init__(
        self,
        message: str = "The submitted data is invalid.",
        *,
        field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.field = field


class PermissionDenied(DomainError):
    """
    The caller could not be resolved to an actor role allowed to use
    this entry point.

    Maps to HTTP 403.
    """

    code = "permission_denied"

    def __init__(self, message: str = "You do not have permission to perform this action.") -> None:
        super().__init__(message)


class NotFound(DomainError):
    """
    The requested resource does not exist, or does not belong to the
    acting psychologist.

    Maps to HTTP 404.
    """

    code = "not_found"

    def __init__(self, message: str = "The requested resource was not found.") -> None:
        super().__init__(message)


class Conflict(DomainError):
    """
    The operation conflicts with the current state of the resource.

    Typical usage: the case status changed between the caller's read and
    the locked re-read.  Safe to retry.  Maps to HTTP 409.
    """

    code = "conflict"
    retryable = True

    def __init__(self, message: str = "The operation conflicts with the current state.") -> None:
        super().__init__(message)


class InvalidTransition(Conflict):
    """
    A state-machine transition that is not allowed from the current status
    or for the acting role.

    Inherits from ``Conflict`` because an invalid transition IS a conflict
    with the resource's current state, but unlike a plain conflict it is
    not worth retrying.  Maps to HTTP 409.

    Example::

        raise InvalidTransition(
            current="rejected",
            target="schedule",
            reason="Allowed source states: approved, scheduled",
        )
    """

    code = "invalid_transition"
    retryable = False

    def __init__(
        self,
        message: str | None = None,
        *,
        current: str | None = None,
        target: str | None = None,
        reason: str | None = None,
    ) -> None:
        if message is None:
            parts = ["Invalid state transition"]
            if current and target:
                parts.append(f"'{target}' from '{current}'")
            if reason:
                parts.append(f"({reason})")
            message = " ".join(parts) + "."
        super().__init__(message)
        self.current = current
        self.target = target
        self.reason = reason


class Busy(Conflict):
    """
    The per-case lock could not be acquired within the configured timeout.

    Maps to HTTP 409; clients may retry.
    """

    code = "busy"

    def __init__(self, message: str = "The case is being modified by another request. Try again.") -> None:
        super().__init__(message)


class PersistenceFailure(DomainError):
    """
    The transaction could not be committed.  Nothing was written.

    Maps to HTTP 500.
    """

    code = "persistence_failure"

    def __init__(self, message: str = "The change could not be saved.") -> None:
        super().__init__(message)
