"""Domain layer — accounting model with zero transport dependencies."""

from rollup_harness.domain.enums import (
    ConfirmationStage,
    DepositMode,
    KeyRegistrationMode,
    OperationType,
    ReceiptStatus,
    Role,
    SigningKeyState,
)
from rollup_harness.domain.exceptions import (
    ConfigurationError,
    ConfirmationTimeoutError,
    HarnessError,
    IdentityFailure,
    InvariantViolation,
    PreconditionError,
    RejectedOperationError,
    SubmissionError,
)
from rollup_harness.domain.invariants import InvariantChecker
from rollup_harness.domain.models import (
    BalanceSnapshot,
    Deposit,
    KeyRegistration,
    Operation,
    SnapshotPair,
    Token,
    Transfer,
    Withdrawal,
)
from rollup_harness.domain.protocols import ChainClient, LedgerClient, Wallet
from rollup_harness.domain.state_machine import ReceiptStateMachine

__all__ = [
    "ConfirmationStage",
    "DepositMode",
    "KeyRegistrationMode",
    "OperationType",
    "ReceiptStatus",
    "Role",
    "SigningKeyState",
    "ConfigurationError",
    "ConfirmationTimeoutError",
    "HarnessError",
    "IdentityFailure",
    "InvariantViolation",
    "PreconditionError",
    "RejectedOperationError",
    "SubmissionError",
    "InvariantChecker",
    "BalanceSnapshot",
    "Deposit",
    "KeyRegistration",
    "Operation",
    "SnapshotPair",
    "Token",
    "Transfer",
    "Withdrawal",
    "ChainClient",
    "LedgerClient",
    "Wallet",
    "ReceiptStateMachine",
]
