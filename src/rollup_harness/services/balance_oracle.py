"""Balance Oracle — read-only view over both ledgers.

Every value is sampled fresh from the clients; nothing is cached between
calls, so a before/after pair always reflects the ledgers at sampling time.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rollup_harness.domain.enums import ConfirmationStage
from rollup_harness.domain.models import ERC20_APPROVE_THRESHOLD, BalanceSnapshot

if TYPE_CHECKING:
    from rollup_harness.domain.models import Token
    from rollup_harness.domain.protocols import ChainClient, LedgerClient, Wallet


class BalanceOracle:
    """Answers balance, pending-withdrawal, approval and signing-key queries."""

    def __init__(self, ledger: LedgerClient, chain: ChainClient) -> None:
        self._ledger = ledger
        self._chain = chain

    async def balance_of(
        self,
        address: str,
        token: Token,
        stage: ConfirmationStage = ConfirmationStage.COMMITTED,
    ) -> int:
        """Balance at ``stage``; an account that never held ``token`` has zero."""
        if stage is ConfirmationStage.CHAIN:
            return await self._chain.get_balance(address, token)
        state = await self._ledger.get_account_state(address)
        return state.at(stage).balances.get(token.symbol, 0)

    async def pending_withdrawal(self, address: str, token: Token) -> int:
        return await self._chain.get_pending_withdrawal(address, token)

    async def effective_chain_balance(self, address: str, token: Token) -> int:
        """Settled chain balance plus the contract-held pending withdrawal pool."""
        snapshot = await self.snapshot(address, token, ConfirmationStage.CHAIN)
        return snapshot.effective

    async def snapshot(
        self,
        address: str,
        token: Token,
        stage: ConfirmationStage = ConfirmationStage.COMMITTED,
    ) -> BalanceSnapshot:
        """Take an immutable snapshot. CHAIN snapshots include the pending pool."""
        amount = await self.balance_of(address, token, stage)
        pending = 0
        if stage is ConfirmationStage.CHAIN:
            pending = await self.pending_withdrawal(address, token)
        return BalanceSnapshot(
            address=address,
            token=token,
            stage=stage,
            amount=amount,
            pending_withdrawal=pending,
        )

    async def is_deposit_approved(self, wallet: Wallet, token: Token) -> bool:
        """True if ``wallet`` has a standing ERC20 approval for rollup deposits."""
        if token.is_native:
            return True
        allowance = await self._chain.get_allowance(wallet.address, token)
        return allowance >= ERC20_APPROVE_THRESHOLD

    async def is_signing_key_set(self, wallet: Wallet) -> bool:
        """True if the committed rollup state holds this wallet's signing key."""
        state = await self._ledger.get_account_state(wallet.address)
        return bool(wallet.pub_key_hash) and state.committed.pub_key_hash == wallet.pub_key_hash
