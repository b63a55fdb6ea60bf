"""Errors raised by the convergence engine.

Every error that reaches a caller names the operation and the resource
it was running against, and keeps the raw API error as ``__cause__``.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from policysync.client.api import APIError


class ConvergenceError(Exception):
    """Base exception for convergence failures."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        resource_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.resource_id = resource_id


class DeadlineExceededError(ConvergenceError):
    """A retried call kept failing until its deadline elapsed."""

    def __init__(
        self,
        last_error: Exception,
        attempts: int,
        timeout: float,
        operation: str | None = None,
        resource_id: str | None = None,
    ) -> None:
        self.last_error = last_error
        self.attempts = attempts
        self.timeout = timeout
        if operation and resource_id:
            message = (
                f"{operation} ({resource_id}): timeout after {timeout:.0f}s "
                f"and {attempts} attempts: {last_error}"
            )
        else:
            message = f"timeout after {timeout:.0f}s and {attempts} attempts: {last_error}"
        super().__init__(message, operation, resource_id)

    def with_context(self, operation: str, resource_id: str) -> DeadlineExceededError:
        """Return a copy naming the operation and resource."""
        return DeadlineExceededError(
            self.last_error,
            self.attempts,
            self.timeout,
            operation=operation,
            resource_id=resource_id,
        )


class ResourceAbsentError(ConvergenceError):
    """The resource no longer exists remotely and should be dropped from state."""

    def __init__(self, kind: str, resource_id: str) -> None:
        super().__init__(
            f"{kind} ({resource_id}) not found", operation="reading", resource_id=resource_id
        )
        self.kind = kind


class OperationFailedError(ConvergenceError):
    """A remote call failed with a non-retryable error."""

    def __init__(self, operation: str, resource_id: str, cause: Exception | str) -> None:
        super().__init__(f"{operation} ({resource_id}): {cause}", operation, resource_id)
        self.cause = cause


class ManagedPolicyImportError(ConvergenceError):
    """AWS-managed policies are referenced by ID, never imported."""

    def __init__(self, policy_id: str) -> None:
        super().__init__(
            f"AWS-managed Organizations policy ({policy_id}) cannot be imported. "
            "Use the policy ID directly in your configuration.",
            operation="importing",
            resource_id=policy_id,
        )


@contextmanager
def surface_errors(operation: str, resource_id: str) -> Iterator[None]:
    """Translate API and retry errors raised in the block for callers.

    APIError becomes OperationFailedError and an anonymous
    DeadlineExceededError gets the operation and resource attached.
    Errors that already carry context pass through unchanged.
    """
    try:
        yield
    except DeadlineExceededError as e:
        if e.resource_id is not None:
            raise
        raise e.with_context(operation, resource_id) from e.last_error
    except APIError as e:
        raise OperationFailedError(operation, resource_id, e) from e
