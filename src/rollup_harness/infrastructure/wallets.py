"""Live wallets: an eth-account key for the chain plus a rollup signer.

Rollup transactions need signatures over the rollup's own curve, which this
package does not implement. A RollupSigner is plugged in by configuration
(``ROLLUP_SIGNER_FACTORY="package.module:callable"``); the callable receives
the wallet's chain account and returns the signer derived from it.
"""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from eth_account import Account
from eth_account.messages import encode_defunct

from rollup_harness.domain.exceptions import ConfigurationError, PreconditionError

if TYPE_CHECKING:
    from collections.abc import Callable

    from eth_account.signers.local import LocalAccount

    from rollup_harness.domain.models import Token

DEFAULT_DERIVATION_PATH = "m/44'/60'/0'/0/0"


@runtime_checkable
class RollupSigner(Protocol):
    """Signs rollup transactions with the account's rollup key."""

    @property
    def pub_key_hash(self) -> str: ...

    def sign_transaction(self, transaction: dict[str, Any]) -> dict[str, Any]:
        """Return the signature object ({"pubKey": ..., "signature": ...})."""
        ...


def load_signer_factory(path: str) -> Callable[[LocalAccount], RollupSigner]:
    """Import a signer factory from a "module:callable" path.

    Raises:
        ConfigurationError: If the path is empty, malformed or not importable.
    """
    if not path or ":" not in path:
        raise ConfigurationError(
            "ROLLUP_SIGNER_FACTORY must be set to 'module:callable' for live runs"
        )
    module_name, _, attr = path.partition(":")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigurationError(f"Cannot import signer module '{module_name}': {exc}") from exc
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise ConfigurationError(f"'{path}' is not a callable signer factory")
    return factory


def change_pub_key_message(pub_key_hash: str, nonce: int, account_id: int) -> str:
    """Text the chain key signs to authorize an off-chain key registration."""
    return (
        "Register zkSync pubkey:\n\n"
        f"{pub_key_hash.removeprefix('sync:').lower()}\n"
        f"nonce: 0x{nonce:08x}\n"
        f"account id: 0x{account_id:08x}\n\n"
        "Only sign this message for a trusted client!"
    )


class LiveWallet:
    """Wallet satisfying the domain Wallet protocol for real networks."""

    def __init__(self, account: LocalAccount, signer: RollupSigner) -> None:
        self._account = account
        self._signer = signer

    @classmethod
    def from_mnemonic(
        cls,
        mnemonic: str,
        signer_factory: Callable[[LocalAccount], RollupSigner],
        account_path: str = DEFAULT_DERIVATION_PATH,
    ) -> LiveWallet:
        Account.enable_unaudited_hdwallet_features()
        account = Account.from_mnemonic(mnemonic, account_path=account_path)
        return cls(account, signer_factory(account))

    @classmethod
    def create(cls, signer_factory: Callable[[LocalAccount], RollupSigner]) -> LiveWallet:
        account = Account.create()
        return cls(account, signer_factory(account))

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def pub_key_hash(self) -> str:
        return self._signer.pub_key_hash

    def sign_chain_transaction(self, transaction: dict[str, Any]) -> bytes:
        return bytes(self._account.sign_transaction(transaction).raw_transaction)

    async def sign_transfer(
        self,
        *,
        account_id: int | None,
        to: str,
        token: Token,
        amount: int,
        fee: int,
        nonce: int,
    ) -> dict[str, Any]:
        tx = self._rollup_tx("Transfer", account_id, to, token, amount, fee, nonce)
        tx["signature"] = self._signer.sign_transaction(tx)
        return tx

    async def sign_withdraw(
        self,
        *,
        account_id: int | None,
        to: str,
        token: Token,
        amount: int,
        fee: int,
        nonce: int,
    ) -> dict[str, Any]:
        tx = self._rollup_tx("Withdraw", account_id, to, token, amount, fee, nonce)
        tx["signature"] = self._signer.sign_transaction(tx)
        return tx

    async def sign_change_pub_key(
        self,
        *,
        account_id: int | None,
        nonce: int,
        onchain_auth: bool,
    ) -> dict[str, Any]:
        eth_signature = None
        if not onchain_auth:
            if account_id is None:
                raise PreconditionError(
                    f"{self.address} has no rollup account id; deposit or receive funds first",
                    precondition="rollup_account_exists",
                )
            message = change_pub_key_message(self.pub_key_hash, nonce, account_id)
            signed = self._account.sign_message(encode_defunct(text=message))
            eth_signature = "0x" + bytes(signed.signature).hex()
        return {
            "type": "ChangePubKey",
            "accountId": account_id,
            "account": self.address,
            "newPkHash": self.pub_key_hash,
            "nonce": nonce,
            "ethSignature": eth_signature,
        }

    def _rollup_tx(
        self,
        tx_type: str,
        account_id: int | None,
        to: str,
        token: Token,
        amount: int,
        fee: int,
        nonce: int,
    ) -> dict[str, Any]:
        return {
            "type": tx_type,
            "accountId": account_id,
            "from": self.address,
            "to": to,
            "token": token.id,
            "amount": str(amount),
            "fee": str(fee),
            "nonce": nonce,
        }
