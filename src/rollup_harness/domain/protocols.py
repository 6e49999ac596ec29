"""Collaborator Protocols.

Defines the interfaces of the ledgers and wallets the harness drives. These
are Protocols (structural subtyping), so the live clients in infrastructure/
and the in-memory SimulatedNetwork satisfy them without a shared base class.

The domain layer has ZERO imports from httpx, web3 or eth-account.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from rollup_harness.domain.models import AccountState, ReceiptReport, Token


@runtime_checkable
class Wallet(Protocol):
    """Signing material for one party on both ledgers.

    Implementations:
        - infrastructure/wallets.py  (eth-account key + pluggable rollup signer)
        - infrastructure/simulated.py (SimulatedWallet)
    """

    @property
    def address(self) -> str: ...

    @property
    def pub_key_hash(self) -> str:
        """Hash of the rollup signing key this wallet would register."""
        ...

    def sign_chain_transaction(self, transaction: dict[str, Any]) -> bytes:
        """Sign a chain transaction dict and return the raw encoded bytes."""
        ...

    async def sign_transfer(
        self,
        *,
        account_id: int | None,
        to: str,
        token: Token,
        amount: int,
        fee: int,
        nonce: int,
    ) -> dict[str, Any]: ...

    async def sign_withdraw(
        self,
        *,
        account_id: int | None,
        to: str,
        token: Token,
        amount: int,
        fee: int,
        nonce: int,
    ) -> dict[str, Any]: ...

    async def sign_change_pub_key(
        self,
        *,
        account_id: int | None,
        nonce: int,
        onchain_auth: bool,
    ) -> dict[str, Any]: ...


@runtime_checkable
class LedgerClient(Protocol):
    """The rollup: account state per stage, submission, receipts, tokens."""

    async def get_account_state(self, address: str) -> AccountState: ...

    async def submit_transaction(self, transaction: dict[str, Any]) -> str:
        """Submit a signed rollup transaction and return its hash.

        Raises:
            SubmissionError: If the ledger refuses the transaction outright.
        """
        ...

    async def get_transaction_status(self, tx_hash: str) -> ReceiptReport: ...

    async def get_priority_operation_status(self, serial_id: int) -> ReceiptReport: ...

    async def resolve_token(self, token_like: str) -> Token:
        """Resolve a symbol or contract address through the token registry."""
        ...

    async def close(self) -> None: ...


@runtime_checkable
class ChainClient(Protocol):
    """The chain: settled balances, rollup contract calls, token approvals.

    Every transaction method waits until the transaction is mined and raises
    SubmissionError if it reverted.
    """

    async def get_balance(self, address: str, token: Token) -> int: ...

    async def get_pending_withdrawal(self, address: str, token: Token) -> int:
        """Funds the rollup contract holds for ``address`` pending payout."""
        ...

    async def get_allowance(self, owner: str, token: Token) -> int:
        """ERC20 allowance granted by ``owner`` to the rollup contract."""
        ...

    async def approve_deposits(self, wallet: Wallet, token: Token, amount: int) -> str: ...

    async def deposit(self, wallet: Wallet, target: str, token: Token, amount: int) -> int:
        """Deposit into the rollup and return the priority operation serial id."""
        ...

    async def authorize_signing_key(self, wallet: Wallet, nonce: int) -> str: ...

    async def transfer(self, wallet: Wallet, to: str, token: Token, amount: int) -> str: ...

    async def close(self) -> None: ...
