"""Rollup JSON-RPC client over httpx.

Implements the LedgerClient protocol against the rollup's HTTP JSON-RPC
endpoint:

    account_info       [address]          -> committed/verified account state
    tx_submit          [tx]               -> tx hash
    tx_info            [tx hash]          -> execution + block status
    ethop_info         [serial id]        -> priority operation status
    tokens             []                 -> token registry
    contract_address   []                 -> rollup contract addresses

Read calls are retried on transport errors with tenacity; tx_submit is not,
since a resubmission after a lost response could enqueue the operation twice.
"""

from __future__ import annotations

import itertools
from typing import Any

import httpx
from pydantic import ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from rollup_harness.domain.exceptions import ConfigurationError, SubmissionError
from rollup_harness.domain.models import (
    NATIVE_TOKEN_SYMBOL,
    AccountState,
    ReceiptReport,
    Token,
    is_native_token_like,
)
from rollup_harness.logging_config import get_logger
from rollup_harness.schemas.rollup import (
    AccountInfoResponse,
    ContractAddressResponse,
    OperationInfoResponse,
    RpcResponse,
    TokenResponse,
)

logger = get_logger(__name__)


class RollupRpcError(Exception):
    """JSON-RPC level error returned by the rollup server."""

    def __init__(self, method: str, code: int, message: str) -> None:
        super().__init__(f"{method} failed ({code}): {message}")
        self.method = method
        self.code = code
        self.message = message


class RollupRpcClient:
    """LedgerClient backed by the rollup's JSON-RPC API."""

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Args:
            url: JSON-RPC endpoint, e.g. http://localhost:3030.
            timeout: Per-request timeout in seconds.
            client: Pre-built AsyncClient (tests pass one with a MockTransport).
        """
        self._url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)
        self._tokens: dict[str, Token] | None = None

    async def _call(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        response = await self._client.post(self._url, json=payload)
        response.raise_for_status()
        envelope = RpcResponse.model_validate(response.json())
        if envelope.error is not None:
            raise RollupRpcError(method, envelope.error.code, envelope.error.message)
        return envelope.result

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    async def _query(self, method: str, params: list[Any]) -> Any:
        return await self._call(method, params)

    # ------------------------------------------------------------------
    # LedgerClient
    # ------------------------------------------------------------------

    async def get_account_state(self, address: str) -> AccountState:
        result = await self._query("account_info", [address])
        return AccountInfoResponse.model_validate(result).to_domain()

    async def submit_transaction(self, transaction: dict[str, Any]) -> str:
        try:
            result = await self._call("tx_submit", [transaction])
        except RollupRpcError as exc:
            logger.warning("rollup.tx_rejected", tx_type=transaction.get("type"), error=exc.message)
            raise SubmissionError(
                f"Rollup refused {transaction.get('type')}: {exc.message}",
                operation=transaction.get("type"),
                reason=exc.message,
            ) from exc
        except httpx.HTTPError as exc:
            raise SubmissionError(
                f"Transport error submitting {transaction.get('type')}: {exc}",
                operation=transaction.get("type"),
                reason="transport",
            ) from exc
        if not isinstance(result, str):
            raise SubmissionError(f"tx_submit returned {result!r}", reason="malformed response")
        return result

    async def get_transaction_status(self, tx_hash: str) -> ReceiptReport:
        result = await self._query("tx_info", [tx_hash])
        return OperationInfoResponse.model_validate(result).to_domain()

    async def get_priority_operation_status(self, serial_id: int) -> ReceiptReport:
        result = await self._query("ethop_info", [serial_id])
        return OperationInfoResponse.model_validate(result).to_domain()

    async def resolve_token(self, token_like: str) -> Token:
        tokens = await self._token_registry()
        if is_native_token_like(token_like):
            token = tokens.get(NATIVE_TOKEN_SYMBOL)
        else:
            token = tokens.get(token_like.upper()) or next(
                (t for t in tokens.values() if t.address.lower() == token_like.lower()),
                None,
            )
        if token is None:
            raise ConfigurationError(f"Token not in rollup registry: {token_like}")
        return token

    async def get_contract_address(self) -> ContractAddressResponse:
        result = await self._query("contract_address", [])
        return ContractAddressResponse.model_validate(result)

    async def close(self) -> None:
        await self._client.aclose()

    async def _token_registry(self) -> dict[str, Token]:
        if self._tokens is None:
            result = await self._query("tokens", [])
            try:
                parsed = {
                    symbol.upper(): TokenResponse.model_validate(info).to_domain()
                    for symbol, info in (result or {}).items()
                }
            except ValidationError as exc:
                raise ConfigurationError(f"Malformed token registry: {exc}") from exc
            self._tokens = parsed
            logger.info("rollup.tokens_loaded", symbols=sorted(parsed))
        return self._tokens
