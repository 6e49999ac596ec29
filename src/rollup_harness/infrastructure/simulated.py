"""SimulatedNetwork — in-memory chain + rollup for dry-run mode and tests.

Implements both the LedgerClient and the ChainClient protocols with the
accounting rules of the real network, so the orchestrator runs unchanged
against it:

    - Deposits debit the chain at submission and credit the rollup on commit.
    - Transfers and withdrawals charge their fee to the operator account.
    - A withdrawal credits the contract's pending pool on commit; on verify
      the pool is paid out to the settled chain balance, unless
      ``auto_complete_withdrawals`` is off.
    - Operations commit and verify in submission order. Latency is counted
      in status polls: every status query advances in-flight operations by
      one tick.
    - Transfers from an account without a registered signing key are
      refused at submission; operations without enough committed balance
      are accepted and then rejected on execution.

No network calls, no signatures; SimulatedWallet produces unsigned payloads.
"""

from __future__ import annotations

import hashlib
import json
import secrets
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from rollup_harness.domain.enums import SigningKeyState
from rollup_harness.domain.exceptions import ConfigurationError, SubmissionError
from rollup_harness.domain.models import (
    MAX_ERC20_APPROVE_AMOUNT,
    NATIVE_TOKEN_SYMBOL,
    AccountState,
    ReceiptReport,
    StageState,
    Token,
    is_native_token_like,
)
from rollup_harness.logging_config import get_logger

logger = get_logger(__name__)

SIMULATED_OPERATOR = "0x" + "0f" * 20


def _fake_hash() -> str:
    return "0x" + secrets.token_hex(32)


class SimulatedWallet:
    """Wallet with a random address and a deterministic signing-key hash."""

    def __init__(self, address: str | None = None) -> None:
        self._address = address or "0x" + secrets.token_hex(20)
        digest = hashlib.sha256(self._address.lower().encode()).hexdigest()
        self._pub_key_hash = "sync:" + digest[:40]

    @property
    def address(self) -> str:
        return self._address

    @property
    def pub_key_hash(self) -> str:
        return self._pub_key_hash

    def sign_chain_transaction(self, transaction: dict[str, Any]) -> bytes:
        return json.dumps(transaction, sort_keys=True, default=str).encode()

    async def sign_transfer(
        self, *, account_id, to, token, amount, fee, nonce
    ) -> dict[str, Any]:
        return self._rollup_tx("Transfer", account_id, to, token, amount, fee, nonce)

    async def sign_withdraw(
        self, *, account_id, to, token, amount, fee, nonce
    ) -> dict[str, Any]:
        return self._rollup_tx("Withdraw", account_id, to, token, amount, fee, nonce)

    async def sign_change_pub_key(self, *, account_id, nonce, onchain_auth) -> dict[str, Any]:
        return {
            "type": "ChangePubKey",
            "accountId": account_id,
            "account": self._address,
            "newPkHash": self._pub_key_hash,
            "nonce": nonce,
            "ethSignature": None if onchain_auth else "0x" + secrets.token_hex(65),
        }

    def _rollup_tx(
        self, tx_type: str, account_id: int | None, to: str, token: Token, amount: int, fee: int, nonce: int
    ) -> dict[str, Any]:
        return {
            "type": tx_type,
            "accountId": account_id,
            "from": self._address,
            "to": to,
            "token": token.id,
            "amount": str(amount),
            "fee": str(fee),
            "nonce": nonce,
            "signerPubKeyHash": self._pub_key_hash,
        }


@dataclass
class _Stage:
    balances: dict[str, dict[str, int]] = field(default_factory=lambda: defaultdict(dict))
    nonces: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    pub_keys: dict[str, str] = field(default_factory=dict)

    def credit(self, address: str, symbol: str, amount: int) -> None:
        self.balances[address][symbol] = self.balances[address].get(symbol, 0) + amount

    def balance(self, address: str, symbol: str) -> int:
        return self.balances.get(address, {}).get(symbol, 0)


@dataclass
class _InFlight:
    kind: str
    payload: dict[str, Any]
    reference: str
    age: int = 0
    committed: bool = False
    verified: bool = False
    fail_reason: str | None = None

    def report(self) -> ReceiptReport:
        executed = self.committed or self.fail_reason is not None
        return ReceiptReport(
            executed=executed,
            success=None if not executed else self.fail_reason is None,
            fail_reason=self.fail_reason,
            committed=self.committed,
            verified=self.verified,
        )


class SimulatedNetwork:
    """Two-layer network held in memory. Satisfies LedgerClient and ChainClient."""

    def __init__(
        self,
        commit_after: int = 1,
        verify_after: int = 3,
        auto_complete_withdrawals: bool = True,
        operator_address: str = SIMULATED_OPERATOR,
    ) -> None:
        """Args:
            commit_after: Status polls before an operation commits.
            verify_after: Status polls before a committed operation verifies.
            auto_complete_withdrawals: Pay the pending pool out on verify.
            operator_address: Rollup account collecting fees.
        """
        if verify_after < commit_after:
            raise ValueError("verify_after must not be smaller than commit_after")
        self.commit_after = commit_after
        self.verify_after = verify_after
        self.auto_complete_withdrawals = auto_complete_withdrawals
        self.operator_address = operator_address

        self._tokens: dict[str, Token] = {}
        self._chain_balances: dict[tuple[str, int], int] = defaultdict(int)
        self._allowances: dict[tuple[str, int], int] = defaultdict(int)
        self._pending_pool: dict[tuple[str, int], int] = defaultdict(int)
        self._auth_facts: dict[tuple[str, int], str] = {}
        self._key_states: dict[str, SigningKeyState] = {}
        self._account_ids: dict[str, int] = {}
        self._stages = {"committed": _Stage(), "verified": _Stage()}
        self._in_flight: list[_InFlight] = []
        self._by_reference: dict[str, _InFlight] = {}
        self._skews: list[tuple[str, str, int]] = []
        self._serial = 0
        self.closed = False

        self.add_token(Token(id=0, symbol=NATIVE_TOKEN_SYMBOL))
        self._ensure_account(operator_address)

    # ------------------------------------------------------------------
    # Test hooks
    # ------------------------------------------------------------------

    def add_token(self, token: Token) -> Token:
        self._tokens[token.symbol.upper()] = token
        return token

    def mint(self, address: str, token: Token, amount: int) -> None:
        """Credit settled chain funds out of thin air."""
        self._chain_balances[(address.lower(), token.id)] += amount

    def skew_next_commit(self, address: str, token: Token, delta: int) -> None:
        """Shift ``address``'s committed balance by ``delta`` at the next commit."""
        self._skews.append((address.lower(), token.symbol, delta))

    def signing_key_state(self, address: str) -> SigningKeyState:
        return self._key_states.get(address.lower(), SigningKeyState.UNSET)

    # ------------------------------------------------------------------
    # LedgerClient
    # ------------------------------------------------------------------

    async def get_account_state(self, address: str) -> AccountState:
        key = address.lower()

        def view(stage: _Stage) -> StageState:
            return StageState(
                balances=dict(stage.balances.get(key, {})),
                nonce=stage.nonces.get(key, 0),
                pub_key_hash=stage.pub_keys.get(key, ""),
            )

        return AccountState(
            address=address,
            account_id=self._account_ids.get(key),
            committed=view(self._stages["committed"]),
            verified=view(self._stages["verified"]),
        )

    async def submit_transaction(self, transaction: dict[str, Any]) -> str:
        tx_type = transaction.get("type")
        if tx_type in ("Transfer", "Withdraw"):
            self._validate_signed(transaction, transaction["from"])
            self._token_by_id(transaction["token"])
        elif tx_type == "ChangePubKey":
            if transaction.get("accountId") is None:
                raise SubmissionError(
                    "Account does not exist on the rollup",
                    operation="ChangePubKey",
                    reason="unknown account",
                )
        else:
            raise SubmissionError(f"Unknown transaction type: {tx_type}", reason="malformed")

        tx_hash = "sync-tx:" + secrets.token_hex(32)
        self._enqueue(_InFlight(kind=tx_type, payload=transaction, reference=tx_hash))
        return tx_hash

    async def get_transaction_status(self, tx_hash: str) -> ReceiptReport:
        self._advance()
        op = self._by_reference.get(tx_hash)
        return op.report() if op else ReceiptReport()

    async def get_priority_operation_status(self, serial_id: int) -> ReceiptReport:
        self._advance()
        op = self._by_reference.get(f"priority-op:{serial_id}")
        return op.report() if op else ReceiptReport()

    async def resolve_token(self, token_like: str) -> Token:
        if is_native_token_like(token_like):
            return self._tokens[NATIVE_TOKEN_SYMBOL]
        token = self._tokens.get(token_like.upper())
        if token is None:
            token = next(
                (t for t in self._tokens.values() if t.address.lower() == token_like.lower()),
                None,
            )
        if token is None:
            raise ConfigurationError(f"Token not in registry: {token_like}")
        return token

    async def close(self) -> None:
        self.closed = True

    # ------------------------------------------------------------------
    # ChainClient
    # ------------------------------------------------------------------

    async def get_balance(self, address: str, token: Token) -> int:
        return self._chain_balances[(address.lower(), token.id)]

    async def get_pending_withdrawal(self, address: str, token: Token) -> int:
        return self._pending_pool[(address.lower(), token.id)]

    async def get_allowance(self, owner: str, token: Token) -> int:
        return self._allowances[(owner.lower(), token.id)]

    async def approve_deposits(self, wallet, token: Token, amount: int) -> str:
        self._allowances[(wallet.address.lower(), token.id)] = amount
        return _fake_hash()

    async def deposit(self, wallet, target: str, token: Token, amount: int) -> int:
        owner = wallet.address.lower()
        if not token.is_native:
            allowance = self._allowances[(owner, token.id)]
            if allowance < amount:
                raise SubmissionError(
                    f"Deposit reverted: allowance {allowance} below {amount}",
                    operation="Deposit",
                    reason="insufficient allowance",
                )
            if allowance != MAX_ERC20_APPROVE_AMOUNT:
                self._allowances[(owner, token.id)] = allowance - amount
        self._debit_chain(owner, token, amount, "Deposit")

        self._serial += 1
        self._enqueue(
            _InFlight(
                kind="Deposit",
                payload={"to": target, "token": token.id, "amount": amount},
                reference=f"priority-op:{self._serial}",
            )
        )
        return self._serial

    async def authorize_signing_key(self, wallet, nonce: int) -> str:
        self._auth_facts[(wallet.address.lower(), nonce)] = wallet.pub_key_hash
        return _fake_hash()

    async def transfer(self, wallet, to: str, token: Token, amount: int) -> str:
        self._debit_chain(wallet.address.lower(), token, amount, "Transfer")
        self._chain_balances[(to.lower(), token.id)] += amount
        return _fake_hash()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _debit_chain(self, owner: str, token: Token, amount: int, operation: str) -> None:
        balance = self._chain_balances[(owner, token.id)]
        if balance < amount:
            raise SubmissionError(
                f"{operation} reverted: chain balance {balance} below {amount}",
                operation=operation,
                reason="insufficient chain balance",
            )
        self._chain_balances[(owner, token.id)] = balance - amount

    def _token_by_id(self, token_id: int) -> Token:
        for token in self._tokens.values():
            if token.id == token_id:
                return token
        raise SubmissionError(f"Unknown token id {token_id}", reason="unknown token")

    def _ensure_account(self, address: str) -> None:
        key = address.lower()
        if key not in self._account_ids:
            self._account_ids[key] = len(self._account_ids)

    def _validate_signed(self, tx: dict[str, Any], address: str) -> None:
        committed = self._stages["committed"]
        key = address.lower()
        registered = committed.pub_keys.get(key)
        if not registered:
            raise SubmissionError(
                f"Account {address} is locked: signing key not set",
                operation=tx["type"],
                reason="account locked",
            )
        if registered != tx.get("signerPubKeyHash"):
            raise SubmissionError("Signing key mismatch", operation=tx["type"], reason="bad signature")
        if tx.get("nonce") != committed.nonces.get(key, 0):
            raise SubmissionError("Nonce mismatch", operation=tx["type"], reason="nonce")

    def _enqueue(self, op: _InFlight) -> None:
        self._in_flight.append(op)
        self._by_reference[op.reference] = op

    def _advance(self) -> None:
        """One tick: age every in-flight operation, then commit/verify in order."""
        for op in self._in_flight:
            op.age += 1

        for op in self._in_flight:
            if op.committed or op.fail_reason is not None:
                continue
            if op.age < self.commit_after:
                break
            self._commit(op)

        for op in self._in_flight:
            if op.verified or op.fail_reason is not None:
                continue
            if not op.committed or op.age < self.verify_after:
                break
            self._apply(op, self._stages["verified"])
            op.verified = True
            self._settle_withdrawal(op)

        self._in_flight = [
            op for op in self._in_flight if not op.verified and op.fail_reason is None
        ]

    def _commit(self, op: _InFlight) -> None:
        reason = self._apply(op, self._stages["committed"], validate=True)
        if reason is not None:
            op.fail_reason = reason
            logger.debug("simulated.rejected", reference=op.reference, reason=reason)
            return
        op.committed = True
        if op.kind == "Withdraw":
            payload = op.payload
            self._pending_pool[(payload["to"].lower(), payload["token"])] += int(payload["amount"])
        if op.kind == "ChangePubKey":
            onchain = op.payload.get("ethSignature") is None
            self._key_states[op.payload["account"].lower()] = (
                SigningKeyState.SET_ONCHAIN if onchain else SigningKeyState.SET_OFFCHAIN
            )
        committed = self._stages["committed"]
        for address, symbol, delta in self._skews:
            committed.credit(address, symbol, delta)
        self._skews.clear()

    def _settle_withdrawal(self, op: _InFlight) -> None:
        if op.kind != "Withdraw" or not self.auto_complete_withdrawals:
            return
        key = (op.payload["to"].lower(), op.payload["token"])
        amount = int(op.payload["amount"])
        self._pending_pool[key] -= amount
        self._chain_balances[key] += amount

    def _apply(self, op: _InFlight, stage: _Stage, validate: bool = False) -> str | None:
        """Apply ``op`` to one rollup stage; return a failure reason instead when invalid."""
        p = op.payload

        if op.kind == "Deposit":
            self._ensure_account(p["to"])
            stage.credit(p["to"].lower(), self._token_by_id(p["token"]).symbol, p["amount"])
            return None

        if op.kind == "ChangePubKey":
            account = p["account"].lower()
            if validate and p.get("ethSignature") is None:
                if self._auth_facts.get((account, p["nonce"])) != p["newPkHash"]:
                    return "Change pubkey onchain authorization not found"
            stage.pub_keys[account] = p["newPkHash"]
            stage.nonces[account] += 1
            return None

        sender = p["from"].lower()
        symbol = self._token_by_id(p["token"]).symbol
        amount, fee = int(p["amount"]), int(p["fee"])
        if validate and stage.balance(sender, symbol) < amount + fee:
            return "Not enough balance"

        stage.credit(sender, symbol, -(amount + fee))
        stage.credit(self.operator_address.lower(), symbol, fee)
        stage.nonces[sender] += 1
        if op.kind == "Transfer":
            self._ensure_account(p["to"])
            stage.credit(p["to"].lower(), symbol, amount)
        return None
