"""Invariant Checker — the accounting identities of the two-layer network.

Stateless and pure: given an operation and matched before/after snapshots it
evaluates closed-form identities over exact integers and raises a single
InvariantViolation listing every sub-identity that failed.

Identities:
    Deposit     d(target, committed)   == +amount
    Transfer    d(sender)              == -(amount + fee)
                d(receiver)            == +amount
                d(operator)            == +fee
    Withdrawal  d(sender)              == -(amount + fee)
                d(operator)            == +fee
                d(chain + pending)     == +amount
    KeyRegistration  signing key reported set afterwards

Snapshot pairs that belong to the wrong account, token or stage are a bug in
the caller and raise ValueError rather than a violation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rollup_harness.domain.enums import ConfirmationStage, Role
from rollup_harness.domain.exceptions import IdentityFailure, InvariantViolation
from rollup_harness.domain.models import (
    Deposit,
    KeyRegistration,
    Operation,
    SnapshotPair,
    Token,
    Transfer,
    Withdrawal,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

_ROLLUP_STAGES = (ConfirmationStage.COMMITTED, ConfirmationStage.VERIFIED)


def _expect_pair(
    pair: SnapshotPair,
    role: Role,
    token: Token,
    stages: tuple[ConfirmationStage, ...],
    address: str | None = None,
) -> None:
    if pair.before.token.id != token.id:
        raise ValueError(f"{role} snapshot is for token {pair.before.token}, operation uses {token}")
    if pair.stage not in stages:
        allowed = ", ".join(str(s) for s in stages)
        raise ValueError(f"{role} snapshot taken at '{pair.stage}', expected one of: {allowed}")
    if address is not None and pair.before.address.lower() != address.lower():
        raise ValueError(f"{role} snapshot is for {pair.before.address}, operation names {address}")


def _collect(identity: str, expected: int, actual: int, failures: list[IdentityFailure]) -> None:
    if actual != expected:
        failures.append(IdentityFailure(identity=identity, expected=expected, actual=actual))


class InvariantChecker:
    """Evaluates post-conditions of operations against balance snapshots.

    Usage:
        checker = InvariantChecker()
        checker.check(transfer, {Role.SENDER: ..., Role.RECEIVER: ..., Role.OPERATOR: ...})
    """

    def check(
        self,
        operation: Operation,
        pairs: Mapping[Role, SnapshotPair] | None = None,
        *,
        key_set_after: bool | None = None,
        reference: str | None = None,
    ) -> None:
        """Dispatch to the identity set of the operation's type.

        Raises:
            InvariantViolation: If any sub-identity fails.
            ValueError: If a required snapshot pair or flag is missing or mismatched.
        """
        if isinstance(operation, KeyRegistration):
            if key_set_after is None:
                raise ValueError("key_set_after is required for KeyRegistration")
            self.check_key_registration(operation, key_set_after, reference=reference)
            return

        pairs = pairs or {}
        try:
            if isinstance(operation, Deposit):
                self.check_deposit(operation, pairs[Role.DEPOSIT_TARGET], reference=reference)
            elif isinstance(operation, Transfer):
                self.check_transfer(
                    operation,
                    sender=pairs[Role.SENDER],
                    receiver=pairs[Role.RECEIVER],
                    operator=pairs[Role.OPERATOR],
                    reference=reference,
                )
            elif isinstance(operation, Withdrawal):
                self.check_withdrawal(
                    operation,
                    sender=pairs[Role.SENDER],
                    operator=pairs[Role.OPERATOR],
                    destination=pairs[Role.DESTINATION],
                    reference=reference,
                )
            else:
                raise TypeError(f"Unsupported operation: {type(operation).__name__}")
        except KeyError as exc:
            raise ValueError(f"Missing snapshot pair for role {exc.args[0]}") from exc

    def check_deposit(
        self,
        deposit: Deposit,
        target: SnapshotPair,
        reference: str | None = None,
    ) -> None:
        _expect_pair(
            target, Role.DEPOSIT_TARGET, deposit.token, (ConfirmationStage.COMMITTED,), deposit.target
        )
        failures: list[IdentityFailure] = []
        _collect("deposit_credit", deposit.amount, target.delta, failures)
        if failures:
            raise InvariantViolation("Deposit", failures, reference)

    def check_transfer(
        self,
        transfer: Transfer,
        sender: SnapshotPair,
        receiver: SnapshotPair,
        operator: SnapshotPair,
        reference: str | None = None,
    ) -> None:
        _expect_pair(sender, Role.SENDER, transfer.token, _ROLLUP_STAGES, transfer.sender)
        _expect_pair(receiver, Role.RECEIVER, transfer.token, _ROLLUP_STAGES, transfer.receiver)
        _expect_pair(operator, Role.OPERATOR, transfer.token, _ROLLUP_STAGES)
        if len({sender.stage, receiver.stage, operator.stage}) != 1:
            raise ValueError("Transfer snapshots must all be taken at the same stage")

        failures: list[IdentityFailure] = []
        _collect("sender_debit", -transfer.total_debit, sender.delta, failures)
        _collect("receiver_credit", transfer.amount, receiver.delta, failures)
        _collect("operator_fee", transfer.fee, operator.delta, failures)
        if failures:
            raise InvariantViolation("Transfer", failures, reference)

    def check_withdrawal(
        self,
        withdrawal: Withdrawal,
        sender: SnapshotPair,
        operator: SnapshotPair,
        destination: SnapshotPair,
        reference: str | None = None,
    ) -> None:
        _expect_pair(sender, Role.SENDER, withdrawal.token, _ROLLUP_STAGES, withdrawal.sender)
        _expect_pair(operator, Role.OPERATOR, withdrawal.token, _ROLLUP_STAGES)
        _expect_pair(
            destination,
            Role.DESTINATION,
            withdrawal.token,
            (ConfirmationStage.CHAIN,),
            withdrawal.destination,
        )

        failures: list[IdentityFailure] = []
        _collect("sender_debit", -withdrawal.total_debit, sender.delta, failures)
        _collect("operator_fee", withdrawal.fee, operator.delta, failures)
        _collect("chain_effective_credit", withdrawal.amount, destination.delta, failures)
        if failures:
            raise InvariantViolation("Withdrawal", failures, reference)

    def check_key_registration(
        self,
        registration: KeyRegistration,
        key_set_after: bool,
        reference: str | None = None,
    ) -> None:
        if not key_set_after:
            raise InvariantViolation(
                f"KeyRegistration ({registration.mode})",
                [IdentityFailure("signing_key_set", expected=True, actual=False)],
                reference,
            )

    def check_approval(self, token: Token, expected: bool, actual: bool, when: str) -> None:
        """Assert the ERC20 approval state observed ``when`` matches ``expected``."""
        if expected != actual:
            raise InvariantViolation(
                f"Approval of {token}",
                [IdentityFailure(f"approved_{when}", expected=expected, actual=actual)],
            )
