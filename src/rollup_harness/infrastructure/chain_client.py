"""Chain client over web3.py.

Implements the ChainClient protocol: settled balances, the rollup contract's
pending-withdrawal pool, ERC20 approvals, deposits, on-chain signing-key
authorization, and plain value/ERC20 transfers used for provisioning.

Every transaction is signed by the acting wallet, sent raw, and awaited
until mined. Reverts and gas-estimation failures become SubmissionError;
a transaction that is not mined in time becomes ConfirmationTimeoutError.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import TimeExhausted, Web3Exception

from rollup_harness.domain.exceptions import ConfirmationTimeoutError, SubmissionError
from rollup_harness.logging_config import get_logger

if TYPE_CHECKING:
    from rollup_harness.domain.models import Token
    from rollup_harness.domain.protocols import Wallet

logger = get_logger(__name__)

ERC20_ABI: list[dict[str, Any]] = [
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "allowance",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "spender", "type": "address"},
        ],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "approve",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "spender", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "name": "transfer",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
]

ROLLUP_CONTRACT_ABI: list[dict[str, Any]] = [
    {
        "name": "depositETH",
        "type": "function",
        "stateMutability": "payable",
        "inputs": [{"name": "_franklinAddr", "type": "address"}],
        "outputs": [],
    },
    {
        "name": "depositERC20",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "_token", "type": "address"},
            {"name": "_amount", "type": "uint104"},
            {"name": "_franklinAddr", "type": "address"},
        ],
        "outputs": [],
    },
    {
        "name": "setAuthPubkeyHash",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "_pubkey_hash", "type": "bytes"},
            {"name": "_nonce", "type": "uint32"},
        ],
        "outputs": [],
    },
    {
        "name": "balancesToWithdraw",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "_address", "type": "address"},
            {"name": "_tokenId", "type": "uint16"},
        ],
        "outputs": [{"name": "", "type": "uint128"}],
    },
    {
        "name": "NewPriorityRequest",
        "type": "event",
        "anonymous": False,
        "inputs": [
            {"name": "sender", "type": "address", "indexed": False},
            {"name": "serialId", "type": "uint64", "indexed": False},
            {"name": "opType", "type": "uint8", "indexed": False},
            {"name": "pubData", "type": "bytes", "indexed": False},
            {"name": "expirationBlock", "type": "uint256", "indexed": False},
        ],
    },
]

NATIVE_TRANSFER_GAS = 21_000


def pub_key_hash_bytes(pub_key_hash: str) -> bytes:
    """Strip the "sync:" prefix from a rollup pub-key hash and decode it."""
    return bytes.fromhex(pub_key_hash.removeprefix("sync:"))


class Web3ChainClient:
    """ChainClient backed by an async web3 provider."""

    def __init__(
        self,
        web3_url: str,
        rollup_contract: str,
        tx_timeout: float = 120.0,
        w3: AsyncWeb3 | None = None,
    ) -> None:
        """Args:
            web3_url: Chain JSON-RPC endpoint.
            rollup_contract: Address of the rollup's main contract.
            tx_timeout: Seconds to wait for a transaction to be mined.
            w3: Pre-built AsyncWeb3 instance (tests inject one).
        """
        self._w3 = w3 or AsyncWeb3(AsyncHTTPProvider(web3_url))
        self._tx_timeout = tx_timeout
        self._rollup_address = AsyncWeb3.to_checksum_address(rollup_contract)
        self._rollup = self._w3.eth.contract(address=self._rollup_address, abi=ROLLUP_CONTRACT_ABI)

    def _erc20(self, token: Token):
        return self._w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(token.address), abi=ERC20_ABI
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_balance(self, address: str, token: Token) -> int:
        owner = AsyncWeb3.to_checksum_address(address)
        if token.is_native:
            return await self._w3.eth.get_balance(owner)
        return await self._erc20(token).functions.balanceOf(owner).call()

    async def get_pending_withdrawal(self, address: str, token: Token) -> int:
        owner = AsyncWeb3.to_checksum_address(address)
        return await self._rollup.functions.balancesToWithdraw(owner, token.id).call()

    async def get_allowance(self, owner: str, token: Token) -> int:
        if token.is_native:
            return 0
        return await self._erc20(token).functions.allowance(
            AsyncWeb3.to_checksum_address(owner), self._rollup_address
        ).call()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def approve_deposits(self, wallet: Wallet, token: Token, amount: int) -> str:
        call = self._erc20(token).functions.approve(self._rollup_address, amount)
        receipt = await self._send_call(wallet, call, "ApproveERC20")
        return AsyncWeb3.to_hex(receipt["transactionHash"])

    async def deposit(self, wallet: Wallet, target: str, token: Token, amount: int) -> int:
        franklin_addr = AsyncWeb3.to_checksum_address(target)
        if token.is_native:
            call = self._rollup.functions.depositETH(franklin_addr)
            receipt = await self._send_call(wallet, call, "Deposit", value=amount)
        else:
            call = self._rollup.functions.depositERC20(
                AsyncWeb3.to_checksum_address(token.address), amount, franklin_addr
            )
            receipt = await self._send_call(wallet, call, "Deposit")

        events = self._rollup.events.NewPriorityRequest().process_receipt(receipt)
        if not events:
            raise SubmissionError(
                "Deposit mined without a NewPriorityRequest event",
                operation="Deposit",
                reason="missing priority request",
            )
        serial_id = int(events[0]["args"]["serialId"])
        logger.info("chain.deposit_mined", serial_id=serial_id, token=token.symbol)
        return serial_id

    async def authorize_signing_key(self, wallet: Wallet, nonce: int) -> str:
        call = self._rollup.functions.setAuthPubkeyHash(
            pub_key_hash_bytes(wallet.pub_key_hash), nonce
        )
        receipt = await self._send_call(wallet, call, "SetAuthPubkeyHash")
        return AsyncWeb3.to_hex(receipt["transactionHash"])

    async def transfer(self, wallet: Wallet, to: str, token: Token, amount: int) -> str:
        recipient = AsyncWeb3.to_checksum_address(to)
        if token.is_native:
            sender = AsyncWeb3.to_checksum_address(wallet.address)
            tx = {
                "from": sender,
                "to": recipient,
                "value": amount,
                "gas": NATIVE_TRANSFER_GAS,
                "gasPrice": await self._w3.eth.gas_price,
                "nonce": await self._w3.eth.get_transaction_count(sender, "pending"),
                "chainId": await self._w3.eth.chain_id,
            }
            receipt = await self._send(wallet, tx, "Transfer")
        else:
            call = self._erc20(token).functions.transfer(recipient, amount)
            receipt = await self._send_call(wallet, call, "TransferERC20")
        return AsyncWeb3.to_hex(receipt["transactionHash"])

    async def close(self) -> None:
        provider = self._w3.provider
        disconnect = getattr(provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()

    async def _send_call(self, wallet: Wallet, call: Any, operation: str, value: int = 0):
        sender = AsyncWeb3.to_checksum_address(wallet.address)
        try:
            tx = await call.build_transaction(
                {
                    "from": sender,
                    "value": value,
                    "nonce": await self._w3.eth.get_transaction_count(sender, "pending"),
                }
            )
        except Web3Exception as exc:
            raise SubmissionError(
                f"{operation} rejected during estimation: {exc}",
                operation=operation,
                reason=str(exc),
            ) from exc
        return await self._send(wallet, tx, operation)

    async def _send(self, wallet: Wallet, tx: dict[str, Any], operation: str):
        try:
            tx_hash = await self._w3.eth.send_raw_transaction(wallet.sign_chain_transaction(tx))
        except Web3Exception as exc:
            raise SubmissionError(
                f"{operation} not accepted by the chain: {exc}",
                operation=operation,
                reason=str(exc),
            ) from exc

        try:
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self._tx_timeout
            )
        except TimeExhausted as exc:
            raise ConfirmationTimeoutError(
                AsyncWeb3.to_hex(tx_hash), "MINED", self._tx_timeout, "PENDING"
            ) from exc

        if receipt["status"] != 1:
            raise SubmissionError(
                f"{operation} reverted in transaction {AsyncWeb3.to_hex(tx_hash)}",
                operation=operation,
                reason="reverted",
            )
        logger.debug("chain.tx_mined", operation=operation, tx_hash=AsyncWeb3.to_hex(tx_hash))
        return receipt
