"""Domain enumerations for the reconciliation harness.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no httpx, no web3 imports).
"""

import enum


class ConfirmationStage(enum.StrEnum):
    """Where a balance is read from.

    COMMITTED and VERIFIED are rollup stages; CHAIN is the settled balance
    on the chain itself.
    """

    COMMITTED = "committed"
    VERIFIED = "verified"
    CHAIN = "chain"


class ReceiptStatus(enum.StrEnum):
    """Lifecycle states of a submitted operation.

    State transitions are enforced by the ReceiptStateMachine guard.
    See domain/state_machine.py for the transition table.
    """

    SUBMITTED = "SUBMITTED"
    COMMITTED = "COMMITTED"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class OperationType(enum.StrEnum):
    DEPOSIT = "deposit"
    TRANSFER = "transfer"
    WITHDRAWAL = "withdrawal"
    KEY_REGISTRATION = "key_registration"


class DepositMode(enum.StrEnum):
    """How a deposit obtains its ERC20 allowance.

    AUTO_APPROVED approves exactly the deposited amount as part of the
    submission. PRE_APPROVED requires a standing approval and never
    approves on the caller's behalf.
    """

    AUTO_APPROVED = "auto_approved"
    PRE_APPROVED = "pre_approved"


class KeyRegistrationMode(enum.StrEnum):
    ONCHAIN = "onchain"
    OFFCHAIN = "offchain"


class SigningKeyState(enum.StrEnum):
    """Rollup signing-key state of an account.

    Both SET states authorize transfers equally; they only record which
    registration path was taken.
    """

    UNSET = "unset"
    SET_ONCHAIN = "set_onchain"
    SET_OFFCHAIN = "set_offchain"

    @property
    def is_set(self) -> bool:
        return self is not SigningKeyState.UNSET


class Role(enum.StrEnum):
    """Party whose balance takes part in an accounting identity."""

    DEPOSIT_TARGET = "deposit_target"
    SENDER = "sender"
    RECEIVER = "receiver"
    OPERATOR = "operator"
    DESTINATION = "destination"
