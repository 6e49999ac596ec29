"""Tests for tokens, operations, unit conversion and snapshots."""

from __future__ import annotations

import pytest

from rollup_harness.domain.enums import ConfirmationStage
from rollup_harness.domain.models import (
    NATIVE_TOKEN_ADDRESS,
    AccountState,
    BalanceSnapshot,
    Deposit,
    SnapshotPair,
    StageState,
    Token,
    Transfer,
    Withdrawal,
    format_units,
    is_native_token_like,
    parse_units,
)

ETH = Token(id=0, symbol="ETH")
TST = Token(id=1, symbol="TST", address="0x" + "7e" * 20)
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b0" * 20


class TestUnits:
    def test_parse_units(self) -> None:
        assert parse_units("0.018") == 18 * 10**15
        assert parse_units("1", decimals=6) == 1_000_000

    def test_parse_rejects_excess_precision(self) -> None:
        with pytest.raises(ValueError, match="fractional digits"):
            parse_units("0.0000001", decimals=6)

    def test_parse_rejects_garbage(self) -> None:
        with pytest.raises(ValueError, match="Not a decimal"):
            parse_units("lots")

    @pytest.mark.parametrize("value", ["inf", "-Infinity", "NaN"])
    def test_parse_rejects_non_finite(self, value: str) -> None:
        with pytest.raises(ValueError, match="Not a finite"):
            parse_units(value)

    def test_parse_rejects_negative(self) -> None:
        with pytest.raises(ValueError, match="Negative"):
            parse_units("-0.018")

    def test_format_units(self) -> None:
        assert format_units(7_866 * 10**12) == "0.007866"
        assert format_units(10**18) == "1"


class TestToken:
    def test_native(self) -> None:
        assert ETH.is_native
        assert ETH.address == NATIVE_TOKEN_ADDRESS
        assert not TST.is_native

    def test_str_is_symbol(self) -> None:
        assert str(TST) == "TST"

    @pytest.mark.parametrize("token_like", ["ETH", "eth", NATIVE_TOKEN_ADDRESS])
    def test_native_token_like(self, token_like: str) -> None:
        assert is_native_token_like(token_like)

    def test_erc20_is_not_native_like(self) -> None:
        assert not is_native_token_like(TST.address)


class TestOperations:
    def test_total_debit(self) -> None:
        transfer = Transfer(sender=ALICE, receiver=BOB, token=ETH, amount=100, fee=4)
        withdrawal = Withdrawal(sender=ALICE, destination=BOB, token=ETH, amount=50, fee=5)
        assert transfer.total_debit == 104
        assert withdrawal.total_debit == 55

    def test_negative_amount_rejected(self) -> None:
        with pytest.raises(ValueError, match="amount must be non-negative"):
            Deposit(depositor=ALICE, target=BOB, token=ETH, amount=-1)

    def test_negative_fee_rejected(self) -> None:
        with pytest.raises(ValueError, match="fee must be non-negative"):
            Transfer(sender=ALICE, receiver=BOB, token=ETH, amount=1, fee=-1)

    def test_zero_amounts_allowed(self) -> None:
        transfer = Transfer(sender=ALICE, receiver=BOB, token=ETH, amount=0, fee=0)
        assert transfer.total_debit == 0


class TestSnapshots:
    def test_delta_includes_pending_withdrawal(self) -> None:
        before = BalanceSnapshot(ALICE, ETH, ConfirmationStage.CHAIN, amount=10)
        after = BalanceSnapshot(ALICE, ETH, ConfirmationStage.CHAIN, amount=10, pending_withdrawal=7)
        assert SnapshotPair(before, after).delta == 7

    def test_address_compare_is_case_insensitive(self) -> None:
        before = BalanceSnapshot("0x" + "A1" * 20, ETH, ConfirmationStage.COMMITTED, 1)
        after = BalanceSnapshot(ALICE, ETH, ConfirmationStage.COMMITTED, 3)
        assert SnapshotPair(before, after).delta == 2

    def test_mismatched_stage_rejected(self) -> None:
        before = BalanceSnapshot(ALICE, ETH, ConfirmationStage.COMMITTED, 1)
        after = BalanceSnapshot(ALICE, ETH, ConfirmationStage.VERIFIED, 1)
        with pytest.raises(ValueError, match="mismatch"):
            SnapshotPair(before, after)

    def test_mismatched_token_rejected(self) -> None:
        before = BalanceSnapshot(ALICE, ETH, ConfirmationStage.COMMITTED, 1)
        after = BalanceSnapshot(ALICE, TST, ConfirmationStage.COMMITTED, 1)
        with pytest.raises(ValueError, match="mismatch"):
            SnapshotPair(before, after)


class TestAccountState:
    def test_at_stage(self) -> None:
        state = AccountState(
            address=ALICE,
            committed=StageState(balances={"ETH": 5}, nonce=2),
            verified=StageState(balances={"ETH": 3}, nonce=1),
        )
        assert state.at(ConfirmationStage.COMMITTED).balances["ETH"] == 5
        assert state.at(ConfirmationStage.VERIFIED).nonce == 1

    def test_chain_stage_is_not_a_rollup_stage(self) -> None:
        with pytest.raises(ValueError):
            AccountState(address=ALICE).at(ConfirmationStage.CHAIN)
