"""Scenario Orchestrator — the fixed money-movement script per token.

For each token under test, strictly in order:

    1. auto-approved deposit        depositor -> sender      (committed)
    2. approval-gated deposit       depositor -> sender      (committed)
    3. on-chain key registration    sender                   (committed)
    4. transfer to a new account    sender -> receiver       (committed)
    5. transfer to that account     sender -> receiver       (committed)
    6. off-chain key registration   receiver                 (committed)
    7. withdrawal                   receiver -> own address  (verified)

Every step samples its "before" snapshots, submits through the executor,
waits for the stage its identity needs, samples "after" and runs the
checker. Any failure aborts the run and propagates; there is no retry and
no compensating transaction. Tokens run one after the other.

Usage:
    orchestrator = ScenarioOrchestrator(context)
    reports = await orchestrator.run([("0xToken...", parties), ("ETH", other)], "0.018")
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from rollup_harness.domain.enums import ConfirmationStage, DepositMode, KeyRegistrationMode, Role
from rollup_harness.domain.exceptions import ConfigurationError, PreconditionError
from rollup_harness.domain.invariants import InvariantChecker
from rollup_harness.domain.models import (
    MAX_ERC20_APPROVE_AMOUNT,
    Deposit,
    KeyRegistration,
    SnapshotPair,
    Transfer,
    Withdrawal,
    format_units,
    parse_units,
)
from rollup_harness.logging_config import get_logger
from rollup_harness.services.balance_oracle import BalanceOracle
from rollup_harness.services.executor import OperationExecutor

if TYPE_CHECKING:
    from collections.abc import Sequence

    from rollup_harness.domain.models import Token
    from rollup_harness.domain.protocols import Wallet
    from rollup_harness.services.context import HarnessContext

logger = get_logger(__name__)


@dataclass(frozen=True)
class ScenarioAmounts:
    """Amounts of one token's script, derived from the deposited total.

    Two transfers are made so that both the transfer-to-new-account and the
    ordinary transfer paths run; the receiver then withdraws one transfer's
    worth minus the withdrawal fee.
    """

    deposit: int
    transfer_amount: int
    transfer_fee: int
    withdraw_amount: int
    withdraw_fee: int

    @classmethod
    def from_total(cls, total: int) -> ScenarioAmounts:
        transfer_fee = total // 25
        transfer_amount = total // 2 - transfer_fee
        withdraw_fee = transfer_amount // 20
        amounts = cls(
            deposit=total // 2,
            transfer_amount=transfer_amount,
            transfer_fee=transfer_fee,
            withdraw_amount=transfer_amount - withdraw_fee,
            withdraw_fee=withdraw_fee,
        )
        if amounts.withdraw_amount <= 0:
            raise ValueError(f"Deposit total {total} is too small for the scenario")
        return amounts

    @classmethod
    def for_token(cls, deposit_amount: str, token: Token) -> ScenarioAmounts:
        """Derive amounts from a whole-unit total such as "0.018".

        Raises:
            ConfigurationError: If the total is not a usable amount of ``token``.
        """
        try:
            return cls.from_total(parse_units(deposit_amount, token.decimals))
        except ValueError as exc:
            raise ConfigurationError(
                f"Invalid deposit amount {deposit_amount!r} for {token.symbol}: {exc}"
            ) from exc


@dataclass(frozen=True)
class ScenarioParties:
    """Wallets acting in one token's script."""

    depositor: Wallet
    sender: Wallet
    receiver: Wallet


@dataclass
class StepResult:
    name: str
    skipped: bool = False
    reference: str | None = None
    elapsed_ms: int = 0


@dataclass
class ScenarioReport:
    """Steps of a token script that completed with every invariant holding."""

    token: Token
    amounts: ScenarioAmounts
    steps: list[StepResult] = field(default_factory=list)

    @property
    def skipped_steps(self) -> list[str]:
        return [s.name for s in self.steps if s.skipped]


class _Stopwatch:
    def __init__(self) -> None:
        self._start = time.monotonic()

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self._start) * 1000)


class ScenarioOrchestrator:
    """Runs the reconciliation script once per token."""

    def __init__(
        self,
        context: HarnessContext,
        executor: OperationExecutor | None = None,
        oracle: BalanceOracle | None = None,
        checker: InvariantChecker | None = None,
    ) -> None:
        self._ctx = context
        self._oracle = oracle or BalanceOracle(context.ledger, context.chain)
        self._executor = executor or OperationExecutor(context, self._oracle)
        self._checker = checker or InvariantChecker()

    async def run(
        self,
        runs: Sequence[tuple[str, ScenarioParties]],
        deposit_amount: str,
    ) -> list[ScenarioReport]:
        """Run each (token, parties) script sequentially; the first failure aborts."""
        reports = []
        for token_like, parties in runs:
            reports.append(await self.run_token_scenario(token_like, parties, deposit_amount))
        return reports

    async def run_token_scenario(
        self,
        token_like: str,
        parties: ScenarioParties,
        deposit_amount: str,
    ) -> ScenarioReport:
        """Run the seven-step script for one token.

        Args:
            token_like: Token symbol or contract address.
            parties: Depositor, sender and receiver wallets.
            deposit_amount: Total deposited, in whole token units (e.g. "0.018").
        """
        token = await self._ctx.ledger.resolve_token(token_like)
        amounts = ScenarioAmounts.for_token(deposit_amount, token)
        report = ScenarioReport(token=token, amounts=amounts)

        with structlog.contextvars.bound_contextvars(token=token.symbol):
            logger.info(
                "scenario.started",
                deposit_total=deposit_amount,
                transfer_amount=format_units(amounts.transfer_amount, token.decimals),
                withdraw_amount=format_units(amounts.withdraw_amount, token.decimals),
            )
            sender, receiver = parties.sender, parties.receiver

            report.steps.append(
                await self.deposit_auto_approved(parties.depositor, sender, token, amounts.deposit)
            )
            report.steps.append(
                await self.deposit_pre_approved(parties.depositor, sender, token, amounts.deposit)
            )
            report.steps.append(await self.register_key_onchain(sender))
            report.steps.append(
                await self.transfer(
                    sender, receiver, token, amounts.transfer_amount, amounts.transfer_fee,
                    name="transfer_to_new",
                )
            )
            report.steps.append(
                await self.transfer(
                    sender, receiver, token, amounts.transfer_amount, amounts.transfer_fee,
                )
            )
            report.steps.append(await self.register_key_offchain(receiver))
            report.steps.append(
                await self.withdraw(
                    receiver, receiver.address, token, amounts.withdraw_amount, amounts.withdraw_fee,
                )
            )
            logger.info("scenario.completed", skipped=report.skipped_steps)

        return report

    # ------------------------------------------------------------------
    # Deposits
    # ------------------------------------------------------------------

    async def deposit_auto_approved(
        self, depositor: Wallet, target: Wallet, token: Token, amount: int
    ) -> StepResult:
        deposit = Deposit(
            depositor=depositor.address,
            target=target.address,
            token=token,
            amount=amount,
            mode=DepositMode.AUTO_APPROVED,
        )
        return await self._deposit("deposit_auto_approved", deposit)

    async def deposit_pre_approved(
        self, depositor: Wallet, target: Wallet, token: Token, amount: int
    ) -> StepResult:
        """Approve standing deposits, then deposit relying on that approval.

        The approval must be absent before and present after the explicit
        approval, and still present once the deposit committed.
        """
        clock = _Stopwatch()
        if not token.is_native:
            if await self._oracle.is_deposit_approved(depositor, token):
                raise PreconditionError(
                    f"{token} deposits from {depositor.address} should not be approved yet",
                    precondition="erc20_deposit_not_approved",
                )
            await self._ctx.chain.approve_deposits(depositor, token, MAX_ERC20_APPROVE_AMOUNT)
            logger.info("scenario.deposit.approved", elapsed_ms=clock.elapsed_ms)
            self._checker.check_approval(
                token, True, await self._oracle.is_deposit_approved(depositor, token), "after_approve"
            )

        deposit = Deposit(
            depositor=depositor.address,
            target=target.address,
            token=token,
            amount=amount,
            mode=DepositMode.PRE_APPROVED,
        )
        result = await self._deposit("deposit_pre_approved", deposit, clock)

        if not token.is_native:
            self._checker.check_approval(
                token, True, await self._oracle.is_deposit_approved(depositor, token), "after_deposit"
            )
        return result

    async def _deposit(
        self, name: str, deposit: Deposit, clock: _Stopwatch | None = None
    ) -> StepResult:
        clock = clock or _Stopwatch()
        before = await self._oracle.snapshot(deposit.target, deposit.token, ConfirmationStage.COMMITTED)

        handle = await self._executor.submit(deposit)
        logger.info("scenario.deposit.posted", step=name, elapsed_ms=clock.elapsed_ms)
        await handle.await_committed()
        logger.info("scenario.deposit.committed", step=name, elapsed_ms=clock.elapsed_ms)

        after = await self._oracle.snapshot(deposit.target, deposit.token, ConfirmationStage.COMMITTED)
        self._checker.check(
            deposit,
            {Role.DEPOSIT_TARGET: SnapshotPair(before, after)},
            reference=handle.reference,
        )
        logger.info("scenario.step.ok", step=name)
        return StepResult(name=name, reference=handle.reference, elapsed_ms=clock.elapsed_ms)

    # ------------------------------------------------------------------
    # Signing keys
    # ------------------------------------------------------------------

    async def register_key_onchain(self, wallet: Wallet) -> StepResult:
        return await self._register_key("register_key_onchain", wallet, KeyRegistrationMode.ONCHAIN)

    async def register_key_offchain(self, wallet: Wallet) -> StepResult:
        return await self._register_key("register_key_offchain", wallet, KeyRegistrationMode.OFFCHAIN)

    async def _register_key(
        self, name: str, wallet: Wallet, mode: KeyRegistrationMode
    ) -> StepResult:
        if await self._oracle.is_signing_key_set(wallet):
            logger.info("scenario.step.skipped", step=name, account=wallet.address)
            return StepResult(name=name, skipped=True)

        clock = _Stopwatch()
        registration = KeyRegistration(account=wallet.address, mode=mode)
        handle = await self._executor.submit(registration)
        logger.info("scenario.change_pubkey.posted", mode=mode.value, elapsed_ms=clock.elapsed_ms)
        await handle.await_committed()
        logger.info("scenario.change_pubkey.committed", mode=mode.value, elapsed_ms=clock.elapsed_ms)

        self._checker.check(
            registration,
            key_set_after=await self._oracle.is_signing_key_set(wallet),
            reference=handle.reference,
        )
        logger.info("scenario.step.ok", step=name)
        return StepResult(name=name, reference=handle.reference, elapsed_ms=clock.elapsed_ms)

    # ------------------------------------------------------------------
    # Rollup money movement
    # ------------------------------------------------------------------

    async def transfer(
        self,
        sender: Wallet,
        receiver: Wallet,
        token: Token,
        amount: int,
        fee: int,
        name: str = "transfer",
    ) -> StepResult:
        transfer = Transfer(
            sender=sender.address,
            receiver=receiver.address,
            token=token,
            amount=amount,
            fee=fee,
        )
        parties = {
            Role.SENDER: sender.address,
            Role.RECEIVER: receiver.address,
            Role.OPERATOR: self._ctx.operator_address,
        }
        before = await self._snapshots(parties, token)

        clock = _Stopwatch()
        handle = await self._executor.submit(transfer)
        logger.info("scenario.transfer.posted", step=name, elapsed_ms=clock.elapsed_ms)
        await handle.await_committed()
        logger.info("scenario.transfer.committed", step=name, elapsed_ms=clock.elapsed_ms)

        after = await self._snapshots(parties, token)
        self._checker.check(
            transfer,
            {role: SnapshotPair(before[role], after[role]) for role in parties},
            reference=handle.reference,
        )
        logger.info("scenario.step.ok", step=name)
        return StepResult(name=name, reference=handle.reference, elapsed_ms=clock.elapsed_ms)

    async def withdraw(
        self,
        wallet: Wallet,
        destination: str,
        token: Token,
        amount: int,
        fee: int,
        name: str = "withdraw",
    ) -> StepResult:
        """Withdraw to ``destination`` and check it once the batch is verified.

        The destination's credit may sit in the contract's pending pool rather
        than its settled balance, so the chain side is compared on the sum.
        """
        withdrawal = Withdrawal(
            sender=wallet.address,
            destination=destination,
            token=token,
            amount=amount,
            fee=fee,
        )
        parties = {
            Role.SENDER: wallet.address,
            Role.OPERATOR: self._ctx.operator_address,
        }
        before = await self._snapshots(parties, token)
        before_chain = await self._oracle.snapshot(destination, token, ConfirmationStage.CHAIN)

        clock = _Stopwatch()
        handle = await self._executor.submit(withdrawal)
        logger.info("scenario.withdraw.posted", step=name, elapsed_ms=clock.elapsed_ms)
        await handle.await_verified()
        logger.info("scenario.withdraw.verified", step=name, elapsed_ms=clock.elapsed_ms)

        after = await self._snapshots(parties, token)
        after_chain = await self._oracle.snapshot(destination, token, ConfirmationStage.CHAIN)

        pairs = {role: SnapshotPair(before[role], after[role]) for role in parties}
        pairs[Role.DESTINATION] = SnapshotPair(before_chain, after_chain)
        self._checker.check(withdrawal, pairs, reference=handle.reference)
        logger.info(
            "scenario.step.ok",
            step=name,
            pending_withdrawal=after_chain.pending_withdrawal,
        )
        return StepResult(name=name, reference=handle.reference, elapsed_ms=clock.elapsed_ms)

    async def _snapshots(self, parties: dict[Role, str], token: Token) -> dict:
        return {
            role: await self._oracle.snapshot(address, token, ConfirmationStage.COMMITTED)
            for role, address in parties.items()
        }
