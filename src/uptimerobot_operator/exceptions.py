"""Exceptions raised by the reconciliation engine and handlers."""

from __future__ import annotations


class OperatorError(Exception):
    """Base class for operator errors."""


class ValidationFailure(OperatorError):
    """Terminal failure that needs a change to the record before it can succeed.

    Adoption targets that do not exist, type mismatches, ambiguous duplicate
    resolution and malformed stored identities end up here. The engine never
    retries these on its own.
    """


class PublishTargetNotManagedError(ValidationFailure):
    """Raised when a publish target exists but is controlled by someone else."""


class TransientAPIFailure(OperatorError):
    """Network, 5xx or unexpected-shape failure, retried on the next reconcile."""

    def __init__(self, message: str, delay: float | None = None):
        super().__init__(message)
        self.delay = delay


class AccountResolutionError(OperatorError):
    """Raised when the Account or its API key cannot be resolved."""

    def __init__(self, message: str, reason: str):
        super().__init__(message)
        self.reason = reason
