"""Value types of the harness: tokens, operations, snapshots.

All amounts are integers in the smallest token unit. Decimal is only used
at the edge, to turn human-readable amounts like "0.018" into base units.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from rollup_harness.domain.enums import (
    ConfirmationStage,
    DepositMode,
    KeyRegistrationMode,
    OperationType,
)

NATIVE_TOKEN_ADDRESS = "0x" + "0" * 40
NATIVE_TOKEN_SYMBOL = "ETH"

# ERC20 approval thresholds used by the rollup contract's deposit flow.
MAX_ERC20_APPROVE_AMOUNT = 2**256 - 1
ERC20_APPROVE_THRESHOLD = 2**255


def parse_units(value: str | Decimal, decimals: int = 18) -> int:
    """Convert a decimal amount string into integer base units.

    Raises:
        ValueError: If the value is not a finite non-negative number or has
            more fractional digits than the token supports.
    """
    try:
        amount = Decimal(value)
    except InvalidOperation as exc:
        raise ValueError(f"Not a decimal amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Not a finite amount: {value!r}")
    if amount < 0:
        raise ValueError(f"Negative amount: {value!r}")
    scaled = amount.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"{value} has more than {decimals} fractional digits")
    return int(scaled)


def format_units(amount: int, decimals: int = 18) -> str:
    """Inverse of parse_units, for log output."""
    return format(Decimal(amount).scaleb(-decimals).normalize(), "f")


@dataclass(frozen=True)
class Token:
    """A fungible asset as resolved by the rollup's token registry."""

    id: int
    symbol: str
    address: str = NATIVE_TOKEN_ADDRESS
    decimals: int = 18

    @property
    def is_native(self) -> bool:
        return self.address.lower() == NATIVE_TOKEN_ADDRESS

    def __str__(self) -> str:
        return self.symbol


def is_native_token_like(token_like: str) -> bool:
    """True for the native asset given either by symbol or by zero address."""
    return token_like.upper() == NATIVE_TOKEN_SYMBOL or token_like.lower() == NATIVE_TOKEN_ADDRESS


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


def _require_non_negative(**values: int) -> None:
    for name, value in values.items():
        if value < 0:
            raise ValueError(f"{name} must be non-negative, got {value}")


@dataclass(frozen=True)
class Deposit:
    """Chain -> rollup deposit. The rollup charges no fee on deposits."""

    depositor: str
    target: str
    token: Token
    amount: int
    mode: DepositMode = DepositMode.PRE_APPROVED

    operation_type = OperationType.DEPOSIT

    def __post_init__(self) -> None:
        _require_non_negative(amount=self.amount)


@dataclass(frozen=True)
class Transfer:
    """Rollup -> rollup transfer; the fee goes to the operator."""

    sender: str
    receiver: str
    token: Token
    amount: int
    fee: int

    operation_type = OperationType.TRANSFER

    def __post_init__(self) -> None:
        _require_non_negative(amount=self.amount, fee=self.fee)

    @property
    def total_debit(self) -> int:
        return self.amount + self.fee


@dataclass(frozen=True)
class Withdrawal:
    """Rollup -> chain withdrawal to ``destination``.

    ``destination`` is a chain address and may differ from the rollup
    account that pays.
    """

    sender: str
    destination: str
    token: Token
    amount: int
    fee: int

    operation_type = OperationType.WITHDRAWAL

    def __post_init__(self) -> None:
        _require_non_negative(amount=self.amount, fee=self.fee)

    @property
    def total_debit(self) -> int:
        return self.amount + self.fee


@dataclass(frozen=True)
class KeyRegistration:
    """Registers the account's rollup signing key. Carries no amount."""

    account: str
    mode: KeyRegistrationMode = KeyRegistrationMode.OFFCHAIN

    operation_type = OperationType.KEY_REGISTRATION


Operation = Deposit | Transfer | Withdrawal | KeyRegistration


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BalanceSnapshot:
    """Balance of one account for one token at one stage.

    ``pending_withdrawal`` is only populated for CHAIN snapshots: funds the
    rollup contract holds for the account that have not yet been pushed to
    its settled balance.
    """

    address: str
    token: Token
    stage: ConfirmationStage
    amount: int
    pending_withdrawal: int = 0

    @property
    def effective(self) -> int:
        return self.amount + self.pending_withdrawal


@dataclass(frozen=True)
class SnapshotPair:
    """Before/after snapshots of the same account, token and stage."""

    before: BalanceSnapshot
    after: BalanceSnapshot

    def __post_init__(self) -> None:
        b, a = self.before, self.after
        if (b.address.lower(), b.token.id, b.stage) != (a.address.lower(), a.token.id, a.stage):
            raise ValueError(
                "Snapshot pair mismatch: "
                f"({b.address}, {b.token}, {b.stage}) vs ({a.address}, {a.token}, {a.stage})"
            )

    @property
    def stage(self) -> ConfirmationStage:
        return self.before.stage

    @property
    def delta(self) -> int:
        return self.after.effective - self.before.effective


# ---------------------------------------------------------------------------
# Ledger views
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StageState:
    """Rollup account state at one confirmation stage."""

    balances: dict[str, int] = field(default_factory=dict)
    nonce: int = 0
    pub_key_hash: str = ""


@dataclass(frozen=True)
class AccountState:
    """Rollup account as reported by the ledger client."""

    address: str
    account_id: int | None = None
    committed: StageState = field(default_factory=StageState)
    verified: StageState = field(default_factory=StageState)

    def at(self, stage: ConfirmationStage) -> StageState:
        if stage is ConfirmationStage.COMMITTED:
            return self.committed
        if stage is ConfirmationStage.VERIFIED:
            return self.verified
        raise ValueError(f"Rollup account state has no '{stage}' stage")


@dataclass(frozen=True)
class ReceiptReport:
    """One observation of an operation's progress on the rollup.

    Attributes:
        executed: The operation was included in a block.
        success: Execution outcome; None while not executed.
        fail_reason: Ledger-reported reason when success is False.
        committed: The including block is committed.
        verified: The including block is verified.
    """

    executed: bool = False
    success: bool | None = None
    fail_reason: str | None = None
    committed: bool = False
    verified: bool = False
