"""Domain exceptions for the reconciliation harness.

Every failure aborts the current token scenario. The driver translates the
exception kind into a process exit status (see main.py), so a CI runner can
tell a broken accounting identity apart from a slow or misconfigured network.
"""

from __future__ import annotations

from dataclasses import dataclass


class HarnessError(Exception):
    """Base exception for all harness errors."""

    def __init__(self, message: str, code: str = "HARNESS_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


class ConfigurationError(HarnessError):
    """Raised when the driver cannot assemble clients or wallets."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="CONFIGURATION_ERROR")


# --- Submission Errors ---


class SubmissionError(HarnessError):
    """Raised when the ledger or transport refuses an operation before a receipt exists."""

    def __init__(self, message: str, operation: str | None = None, reason: str | None = None) -> None:
        super().__init__(message=message, code="SUBMISSION_ERROR")
        self.operation = operation
        self.reason = reason


class PreconditionError(HarnessError):
    """Raised when a required prior state (approval, key registration) does not hold.

    Example: a pre-approved deposit against a token with no standing approval.
    """

    def __init__(self, message: str, precondition: str) -> None:
        super().__init__(message=message, code="PRECONDITION_FAILED")
        self.precondition = precondition


# --- Confirmation Errors ---


class ConfirmationTimeoutError(HarnessError):
    """Raised when a receipt does not reach the awaited stage in time.

    This is an environment failure (slow batches, stuck prover), distinct
    from an accounting failure.
    """

    def __init__(self, reference: str, stage: str, timeout: float, last_status: str) -> None:
        super().__init__(
            message=(
                f"Operation {reference} not {stage.lower()} within {timeout:g}s "
                f"(last status: {last_status})"
            ),
            code="CONFIRMATION_TIMEOUT",
        )
        self.reference = reference
        self.stage = stage
        self.timeout = timeout
        self.last_status = last_status


class RejectedOperationError(HarnessError):
    """Raised when the ledger rejects an operation after accepting it."""

    def __init__(self, reference: str, reason: str) -> None:
        super().__init__(
            message=f"Operation {reference} rejected: {reason}",
            code="OPERATION_REJECTED",
        )
        self.reference = reference
        self.reason = reason


# --- Invariant Errors ---


@dataclass(frozen=True)
class IdentityFailure:
    """One accounting identity that did not hold.

    Attributes:
        identity: Name of the sub-identity, e.g. "sender_debit".
        expected: Expected value (integer delta, or bool for flag checks).
        actual: Observed value.
    """

    identity: str
    expected: int | bool
    actual: int | bool

    def __str__(self) -> str:
        return f"{self.identity}: expected {self.expected}, got {self.actual}"


class InvariantViolation(HarnessError):
    """Raised when a post-condition does not hold after an operation.

    Carries every failed sub-identity, never only the first one.
    """

    def __init__(
        self,
        operation: str,
        failures: list[IdentityFailure],
        reference: str | None = None,
    ) -> None:
        summary = "; ".join(str(f) for f in failures)
        where = f" ({reference})" if reference else ""
        super().__init__(
            message=f"{operation} checks failed{where}: {summary}",
            code="INVARIANT_VIOLATION",
        )
        self.operation = operation
        self.failures = list(failures)
        self.reference = reference

    @property
    def failed_identities(self) -> list[str]:
        return [f.identity for f in self.failures]
