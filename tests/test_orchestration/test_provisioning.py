"""Tests for scenario wallet provisioning."""

from __future__ import annotations

import pytest

from rollup_harness.domain.exceptions import SubmissionError
from rollup_harness.domain.models import parse_units
from rollup_harness.infrastructure.simulated import SimulatedWallet
from rollup_harness.orchestration.provisioning import FundingPlan, provision_parties


@pytest.fixture
def funder(network, token, eth) -> SimulatedWallet:
    wallet = SimulatedWallet()
    network.mint(wallet.address, eth, parse_units("1"))
    network.mint(wallet.address, token, parse_units("1"))
    return wallet


class TestProvisionParties:
    @pytest.mark.asyncio
    async def test_funds_every_party(self, context, network, funder, token, eth) -> None:
        runs = await provision_parties(
            context, funder, [token.address, "ETH"], lambda label: SimulatedWallet()
        )

        assert [token_like for token_like, _ in runs] == [token.address, "ETH"]
        erc20, native = runs[0][1], runs[1][1]
        assert erc20.depositor is native.depositor
        assert erc20.sender is native.sender
        assert erc20.receiver is not native.receiver

        depositor = erc20.depositor.address
        assert await network.get_balance(depositor, eth) == parse_units("0.02")
        assert await network.get_balance(depositor, token) == parse_units("0.02")
        assert await network.get_balance(erc20.sender.address, eth) == parse_units("0.01")
        for parties in (erc20, native):
            assert await network.get_balance(parties.receiver.address, eth) == parse_units("0.01")
            assert await network.get_balance(parties.receiver.address, token) == 0

    @pytest.mark.asyncio
    async def test_registers_labels(self, context, funder, token) -> None:
        labels: list[str] = []
        created: list[SimulatedWallet] = []

        def new_wallet(label: str) -> SimulatedWallet:
            labels.append(label)
            created.append(SimulatedWallet())
            return created[-1]

        await provision_parties(context, funder, [token.symbol, "ETH"], new_wallet)

        assert labels == ["depositor", "sender", "receiver-TST", "receiver-ETH"]
        assert [context.accounts.get(label) for label in labels] == created

    @pytest.mark.asyncio
    async def test_custom_plan(self, context, network, funder, eth) -> None:
        plan = FundingPlan(depositor_native="0.5", account_native="0.25")
        runs = await provision_parties(
            context, funder, ["ETH"], lambda label: SimulatedWallet(), plan
        )
        parties = runs[0][1]
        assert await network.get_balance(parties.depositor.address, eth) == parse_units("0.5")
        assert await network.get_balance(parties.receiver.address, eth) == parse_units("0.25")

    @pytest.mark.asyncio
    async def test_underfunded_funder(self, context, network, token) -> None:
        broke = SimulatedWallet()
        with pytest.raises(SubmissionError, match="chain balance"):
            await provision_parties(context, broke, [token.symbol], lambda label: SimulatedWallet())
