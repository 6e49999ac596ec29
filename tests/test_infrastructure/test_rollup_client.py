"""Tests for the RollupRpcClient using httpx.MockTransport."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from rollup_harness.domain.exceptions import ConfigurationError, SubmissionError
from rollup_harness.infrastructure.rollup_client import RollupRpcClient, RollupRpcError

URL = "http://rollup.test/jsonrpc"
ADDRESS = "0x" + "a1" * 20
TST_ADDRESS = "0x" + "7e" * 20

TOKENS = {
    "ETH": {"id": 0, "address": "0x" + "0" * 40, "symbol": "ETH", "decimals": 18},
    "TST": {"id": 1, "address": TST_ADDRESS, "symbol": "TST", "decimals": 6},
}


def rpc_client(results: dict[str, Callable[[list[Any]], Any]], calls: list[str] | None = None) -> RollupRpcClient:
    """Client whose transport answers each method with ``results[method](params)``.

    A handler may return ``{"error": {...}}`` to produce a JSON-RPC error.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if calls is not None:
            calls.append(body["method"])
        answer = results[body["method"]](body["params"])
        if isinstance(answer, dict) and "error" in answer:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "error": answer["error"]})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": answer})

    return RollupRpcClient(URL, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestAccountState:
    @pytest.mark.asyncio
    async def test_parses_both_stages(self) -> None:
        client = rpc_client(
            {
                "account_info": lambda params: {
                    "address": params[0],
                    "id": 12,
                    "committed": {
                        "balances": {"ETH": "1000", "TST": "5"},
                        "nonce": 3,
                        "pubKeyHash": "sync:" + "ab" * 20,
                    },
                    "verified": {"balances": {"ETH": "400"}, "nonce": 1, "pubKeyHash": "sync:" + "00" * 20},
                }
            }
        )
        state = await client.get_account_state(ADDRESS)

        assert state.account_id == 12
        assert state.committed.balances == {"ETH": 1000, "TST": 5}
        assert state.committed.nonce == 3
        assert state.committed.pub_key_hash == "sync:" + "ab" * 20
        assert state.verified.balances == {"ETH": 400}
        await client.close()

    @pytest.mark.asyncio
    async def test_unknown_account(self) -> None:
        client = rpc_client({"account_info": lambda params: {"address": params[0], "id": None}})
        state = await client.get_account_state(ADDRESS)
        assert state.account_id is None
        assert state.committed.balances == {}
        assert state.committed.nonce == 0


class TestSubmit:
    @pytest.mark.asyncio
    async def test_returns_hash(self) -> None:
        client = rpc_client({"tx_submit": lambda params: "sync-tx:" + "cd" * 32})
        assert await client.submit_transaction({"type": "Transfer"}) == "sync-tx:" + "cd" * 32

    @pytest.mark.asyncio
    async def test_rpc_error_becomes_submission_error(self) -> None:
        client = rpc_client(
            {"tx_submit": lambda params: {"error": {"code": 101, "message": "Nonce mismatch"}}}
        )
        with pytest.raises(SubmissionError, match="Nonce mismatch") as exc_info:
            await client.submit_transaction({"type": "Transfer"})
        assert exc_info.value.operation == "Transfer"
        assert exc_info.value.reason == "Nonce mismatch"

    @pytest.mark.asyncio
    async def test_submit_is_not_retried(self) -> None:
        attempts = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal attempts
            attempts += 1
            raise httpx.ConnectError("connection refused", request=request)

        client = RollupRpcClient(URL, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        with pytest.raises(SubmissionError, match="Transport error"):
            await client.submit_transaction({"type": "Withdraw"})
        assert attempts == 1

    @pytest.mark.asyncio
    async def test_malformed_result(self) -> None:
        client = rpc_client({"tx_submit": lambda params: 42})
        with pytest.raises(SubmissionError, match="returned 42"):
            await client.submit_transaction({"type": "Transfer"})


class TestStatus:
    @pytest.mark.asyncio
    async def test_tx_info(self) -> None:
        client = rpc_client(
            {
                "tx_info": lambda params: {
                    "executed": True,
                    "success": False,
                    "failReason": "Not enough balance",
                    "block": {"blockNumber": 7, "committed": True, "verified": False},
                }
            }
        )
        report = await client.get_transaction_status("sync-tx:1")
        assert report.executed
        assert report.success is False
        assert report.fail_reason == "Not enough balance"
        assert report.committed and not report.verified

    @pytest.mark.asyncio
    async def test_pending_tx(self) -> None:
        client = rpc_client({"tx_info": lambda params: {"executed": False, "block": None}})
        report = await client.get_transaction_status("sync-tx:1")
        assert not report.executed
        assert report.success is None
        assert not report.committed

    @pytest.mark.asyncio
    async def test_priority_operation_executed_means_success(self) -> None:
        seen: list[Any] = []

        def ethop_info(params: list[Any]) -> dict[str, Any]:
            seen.extend(params)
            return {"executed": True, "block": {"blockNumber": 9, "committed": True, "verified": True}}

        client = rpc_client({"ethop_info": ethop_info})
        report = await client.get_priority_operation_status(31)
        assert seen == [31]
        assert report.success is True
        assert report.verified

    @pytest.mark.asyncio
    async def test_reads_retry_transport_errors(self) -> None:
        attempts = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise httpx.ConnectError("connection refused", request=request)
            body = json.loads(request.content)
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": {"executed": False}})

        client = RollupRpcClient(URL, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        report = await client.get_transaction_status("sync-tx:1")
        assert attempts == 2
        assert not report.executed

    @pytest.mark.asyncio
    async def test_rpc_error_on_read(self) -> None:
        client = rpc_client({"tx_info": lambda params: {"error": {"code": -32602, "message": "bad hash"}}})
        with pytest.raises(RollupRpcError, match="bad hash") as exc_info:
            await client.get_transaction_status("nonsense")
        assert exc_info.value.method == "tx_info"


class TestTokens:
    @pytest.mark.asyncio
    async def test_resolution_and_cache(self) -> None:
        calls: list[str] = []
        client = rpc_client({"tokens": lambda params: TOKENS}, calls)

        eth = await client.resolve_token("ETH")
        by_symbol = await client.resolve_token("tst")
        by_address = await client.resolve_token(TST_ADDRESS.upper().replace("0X", "0x"))

        assert eth.is_native
        assert by_symbol == by_address
        assert by_symbol.decimals == 6
        assert calls == ["tokens"]

    @pytest.mark.asyncio
    async def test_unknown_token(self) -> None:
        client = rpc_client({"tokens": lambda params: TOKENS})
        with pytest.raises(ConfigurationError, match="DAI"):
            await client.resolve_token("DAI")

    @pytest.mark.asyncio
    async def test_contract_address(self) -> None:
        main = "0x" + "c0" * 20
        client = rpc_client(
            {"contract_address": lambda params: {"mainContract": main, "govContract": "0x" + "90" * 20}}
        )
        contracts = await client.get_contract_address()
        assert contracts.main_contract == main
