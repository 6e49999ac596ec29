"""Operation Executor — submits typed operations to the right ledger.

Dispatch:
    Deposit          chain transaction (plus one-shot ERC20 approval when
                     AUTO_APPROVED); receipt tracks the priority operation
    Transfer         signed rollup transaction
    Withdrawal       signed rollup transaction
    KeyRegistration  ONCHAIN: chain authorization mined first, then the
                     rollup transaction; OFFCHAIN: rollup transaction only

The executor never re-checks what the ledger validates (balances, key
registration); it only enforces the pre-approval precondition, which the
ledger cannot see.
"""

from __future__ import annotations

from functools import partial
from typing import TYPE_CHECKING, Any

from rollup_harness.domain.enums import DepositMode, KeyRegistrationMode
from rollup_harness.domain.exceptions import PreconditionError
from rollup_harness.domain.models import Deposit, KeyRegistration, Transfer, Withdrawal
from rollup_harness.logging_config import get_logger
from rollup_harness.services.balance_oracle import BalanceOracle
from rollup_harness.services.receipt import ReceiptHandle

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from rollup_harness.domain.models import Operation
    from rollup_harness.services.context import HarnessContext

logger = get_logger(__name__)


class OperationExecutor:
    """Submits one operation and returns its ReceiptHandle."""

    def __init__(self, context: HarnessContext, oracle: BalanceOracle | None = None) -> None:
        self._ctx = context
        self._oracle = oracle or BalanceOracle(context.ledger, context.chain)
        self._registry: dict[type, Callable[[Any], Awaitable[ReceiptHandle]]] = {
            Deposit: self._submit_deposit,
            Transfer: self._submit_transfer,
            Withdrawal: self._submit_withdrawal,
            KeyRegistration: self._submit_key_registration,
        }

    async def submit(self, operation: Operation) -> ReceiptHandle:
        """Enqueue exactly one operation on its target ledger.

        Raises:
            SubmissionError: If the transport or ledger refuses the operation.
            PreconditionError: If a pre-approved deposit has no standing approval,
                or no wallet of this run signs for the acting account.
            TypeError: For an unknown operation type.
        """
        handler = self._registry.get(type(operation))
        if handler is None:
            raise TypeError(f"Unsupported operation: {type(operation).__name__}")
        handle = await handler(operation)
        logger.info(
            "executor.submitted",
            operation=operation.operation_type.value,
            reference=handle.reference,
        )
        return handle

    # ------------------------------------------------------------------
    # Chain-originated
    # ------------------------------------------------------------------

    async def _submit_deposit(self, deposit: Deposit) -> ReceiptHandle:
        wallet = self._ctx.accounts.by_address(deposit.depositor)
        token = deposit.token

        if not token.is_native:
            if deposit.mode is DepositMode.AUTO_APPROVED:
                await self._ctx.chain.approve_deposits(wallet, token, deposit.amount)
            elif not await self._oracle.is_deposit_approved(wallet, token):
                raise PreconditionError(
                    f"{token} deposits from {wallet.address} are not approved",
                    precondition="erc20_deposit_approved",
                )

        serial_id = await self._ctx.chain.deposit(wallet, deposit.target, token, deposit.amount)
        return ReceiptHandle(
            reference=f"priority-op:{serial_id}",
            poll=partial(self._ctx.ledger.get_priority_operation_status, serial_id),
            policy=self._ctx.policy,
        )

    # ------------------------------------------------------------------
    # Rollup-originated
    # ------------------------------------------------------------------

    async def _submit_transfer(self, transfer: Transfer) -> ReceiptHandle:
        wallet = self._ctx.accounts.by_address(transfer.sender)
        state = await self._ctx.ledger.get_account_state(transfer.sender)
        tx = await wallet.sign_transfer(
            account_id=state.account_id,
            to=transfer.receiver,
            token=transfer.token,
            amount=transfer.amount,
            fee=transfer.fee,
            nonce=state.committed.nonce,
        )
        return await self._submit_signed(tx)

    async def _submit_withdrawal(self, withdrawal: Withdrawal) -> ReceiptHandle:
        wallet = self._ctx.accounts.by_address(withdrawal.sender)
        state = await self._ctx.ledger.get_account_state(withdrawal.sender)
        tx = await wallet.sign_withdraw(
            account_id=state.account_id,
            to=withdrawal.destination,
            token=withdrawal.token,
            amount=withdrawal.amount,
            fee=withdrawal.fee,
            nonce=state.committed.nonce,
        )
        return await self._submit_signed(tx)

    async def _submit_key_registration(self, registration: KeyRegistration) -> ReceiptHandle:
        wallet = self._ctx.accounts.by_address(registration.account)
        state = await self._ctx.ledger.get_account_state(registration.account)
        nonce = state.committed.nonce
        onchain = registration.mode is KeyRegistrationMode.ONCHAIN

        if onchain:
            auth_tx = await self._ctx.chain.authorize_signing_key(wallet, nonce)
            logger.info("executor.signing_key_authorized", account=wallet.address, tx_hash=auth_tx)

        tx = await wallet.sign_change_pub_key(
            account_id=state.account_id,
            nonce=nonce,
            onchain_auth=onchain,
        )
        return await self._submit_signed(tx)

    async def _submit_signed(self, tx: dict[str, Any]) -> ReceiptHandle:
        tx_hash = await self._ctx.ledger.submit_transaction(tx)
        return ReceiptHandle(
            reference=tx_hash,
            poll=partial(self._ctx.ledger.get_transaction_status, tx_hash),
            policy=self._ctx.policy,
        )
