"""Application services — ledger queries, submission, confirmation."""

from rollup_harness.services.balance_oracle import BalanceOracle
from rollup_harness.services.context import AccountRegistry, HarnessContext
from rollup_harness.services.executor import OperationExecutor
from rollup_harness.services.receipt import ConfirmationPolicy, ReceiptHandle

__all__ = [
    "AccountRegistry",
    "BalanceOracle",
    "ConfirmationPolicy",
    "HarnessContext",
    "OperationExecutor",
    "ReceiptHandle",
]
