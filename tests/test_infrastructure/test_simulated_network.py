"""Tests for the in-memory SimulatedNetwork."""

from __future__ import annotations

import pytest

from rollup_harness.domain.exceptions import ConfigurationError, SubmissionError
from rollup_harness.domain.models import ReceiptReport
from rollup_harness.domain.protocols import ChainClient, LedgerClient, Wallet
from rollup_harness.infrastructure.simulated import SimulatedNetwork, SimulatedWallet


async def deposit(network, eth, target: SimulatedWallet, amount: int) -> int:
    funder = SimulatedWallet()
    network.mint(funder.address, eth, amount)
    return await network.deposit(funder, target.address, eth, amount)


class TestProtocols:
    def test_satisfies_client_protocols(self, network) -> None:
        assert isinstance(network, LedgerClient)
        assert isinstance(network, ChainClient)

    def test_wallet_protocol(self) -> None:
        assert isinstance(SimulatedWallet(), Wallet)


class TestConstruction:
    def test_verify_before_commit_is_invalid(self) -> None:
        with pytest.raises(ValueError, match="verify_after"):
            SimulatedNetwork(commit_after=3, verify_after=1)

    @pytest.mark.asyncio
    async def test_operator_account_exists(self, network) -> None:
        state = await network.get_account_state(network.operator_address)
        assert state.account_id == 0


class TestTokens:
    @pytest.mark.asyncio
    async def test_resolve_by_symbol_address_and_native(self, network, token) -> None:
        assert await network.resolve_token("tst") == token
        assert await network.resolve_token(token.address.upper().replace("0X", "0x")) == token
        assert (await network.resolve_token("0x" + "0" * 40)).symbol == "ETH"

    @pytest.mark.asyncio
    async def test_unknown_token(self, network) -> None:
        with pytest.raises(ConfigurationError):
            await network.resolve_token("DAI")


class TestLatency:
    @pytest.mark.asyncio
    async def test_commit_then_verify_by_polls(self, network, eth) -> None:
        serial = await deposit(network, eth, SimulatedWallet(), 10)

        reports = [await network.get_priority_operation_status(serial) for _ in range(3)]
        assert [r.committed for r in reports] == [True, True, True]
        assert [r.verified for r in reports] == [False, False, True]

    @pytest.mark.asyncio
    async def test_slower_network(self, eth) -> None:
        network = SimulatedNetwork(commit_after=2, verify_after=2)
        serial = await deposit(network, eth, SimulatedWallet(), 10)
        first = await network.get_priority_operation_status(serial)
        second = await network.get_priority_operation_status(serial)
        assert not first.committed
        assert second.committed and second.verified

    @pytest.mark.asyncio
    async def test_unknown_reference(self, network) -> None:
        assert await network.get_transaction_status("sync-tx:nope") == ReceiptReport()

    @pytest.mark.asyncio
    async def test_verified_stage_follows_committed(self, network, eth) -> None:
        target = SimulatedWallet()
        serial = await deposit(network, eth, target, 10)
        for _ in range(3):
            await network.get_priority_operation_status(serial)
        state = await network.get_account_state(target.address)
        assert state.committed.balances == state.verified.balances == {"ETH": 10}


class TestSubmission:
    @pytest.mark.asyncio
    async def test_unknown_type(self, network) -> None:
        with pytest.raises(SubmissionError, match="Unknown transaction type"):
            await network.submit_transaction({"type": "ForcedExit"})

    @pytest.mark.asyncio
    async def test_change_pub_key_needs_account(self, network) -> None:
        wallet = SimulatedWallet()
        tx = await wallet.sign_change_pub_key(account_id=None, nonce=0, onchain_auth=False)
        with pytest.raises(SubmissionError, match="does not exist"):
            await network.submit_transaction(tx)

    @pytest.mark.asyncio
    async def test_nonce_mismatch(self, network, eth) -> None:
        wallet = SimulatedWallet()
        serial = await deposit(network, eth, wallet, 100)
        await network.get_priority_operation_status(serial)
        state = await network.get_account_state(wallet.address)
        tx_hash = await network.submit_transaction(
            await wallet.sign_change_pub_key(account_id=state.account_id, nonce=0, onchain_auth=False)
        )
        await network.get_transaction_status(tx_hash)

        stale = await wallet.sign_transfer(
            account_id=state.account_id, to=SimulatedWallet().address, token=eth,
            amount=1, fee=0, nonce=0,
        )
        with pytest.raises(SubmissionError, match="Nonce mismatch"):
            await network.submit_transaction(stale)

    @pytest.mark.asyncio
    async def test_foreign_signature(self, network, eth) -> None:
        wallet = SimulatedWallet()
        serial = await deposit(network, eth, wallet, 100)
        await network.get_priority_operation_status(serial)
        state = await network.get_account_state(wallet.address)
        tx_hash = await network.submit_transaction(
            await wallet.sign_change_pub_key(account_id=state.account_id, nonce=0, onchain_auth=False)
        )
        await network.get_transaction_status(tx_hash)

        forged = await wallet.sign_transfer(
            account_id=state.account_id, to=SimulatedWallet().address, token=eth,
            amount=1, fee=0, nonce=1,
        )
        forged["signerPubKeyHash"] = "sync:" + "00" * 20
        with pytest.raises(SubmissionError, match="Signing key mismatch"):
            await network.submit_transaction(forged)


class TestChainSide:
    @pytest.mark.asyncio
    async def test_erc20_deposit_needs_allowance(self, network, token) -> None:
        wallet = SimulatedWallet()
        network.mint(wallet.address, token, 100)
        with pytest.raises(SubmissionError, match="allowance"):
            await network.deposit(wallet, wallet.address, token, 100)
        assert await network.get_balance(wallet.address, token) == 100

    @pytest.mark.asyncio
    async def test_deposit_debits_chain_immediately(self, network, eth) -> None:
        wallet = SimulatedWallet()
        network.mint(wallet.address, eth, 100)
        await network.deposit(wallet, wallet.address, eth, 40)
        assert await network.get_balance(wallet.address, eth) == 60

    @pytest.mark.asyncio
    async def test_transfer_overdraft(self, network, eth) -> None:
        with pytest.raises(SubmissionError, match="chain balance"):
            await network.transfer(SimulatedWallet(), SimulatedWallet().address, eth, 1)

    @pytest.mark.asyncio
    async def test_close(self, network) -> None:
        await network.close()
        assert network.closed
