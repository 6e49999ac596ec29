"""Harness context — the clients and wallets of one harness run.

Built once by the driver and passed explicitly to the orchestrator and the
services; nothing reaches the ledgers through module-level state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from rollup_harness.domain.exceptions import PreconditionError
from rollup_harness.services.receipt import ConfirmationPolicy

if TYPE_CHECKING:
    from rollup_harness.domain.protocols import ChainClient, LedgerClient, Wallet


class AccountRegistry:
    """Wallets of the run, addressable by label or by address."""

    def __init__(self) -> None:
        self._by_label: dict[str, Wallet] = {}
        self._by_address: dict[str, Wallet] = {}

    def register(self, label: str, wallet: Wallet) -> Wallet:
        if label in self._by_label:
            raise ValueError(f"Wallet label already registered: {label}")
        self._by_label[label] = wallet
        self._by_address[wallet.address.lower()] = wallet
        return wallet

    def get(self, label: str) -> Wallet:
        return self._by_label[label]

    def by_address(self, address: str) -> Wallet:
        """Return the wallet that signs for ``address``.

        Raises:
            PreconditionError: If no wallet of this run controls the address.
        """
        wallet = self._by_address.get(address.lower())
        if wallet is None:
            raise PreconditionError(
                f"No wallet registered for {address}",
                precondition="wallet_registered",
            )
        return wallet


@dataclass
class HarnessContext:
    """Everything a scenario needs to talk to the network."""

    ledger: LedgerClient
    chain: ChainClient
    operator_address: str
    accounts: AccountRegistry = field(default_factory=AccountRegistry)
    policy: ConfirmationPolicy = field(default_factory=ConfirmationPolicy)

    async def close(self) -> None:
        """Close both clients, ledger first."""
        try:
            await self.ledger.close()
        finally:
            await self.chain.close()
