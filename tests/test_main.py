"""Tests for the command-line driver and its exit statuses."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from rollup_harness.config import Settings
from rollup_harness.domain.exceptions import (
    ConfigurationError,
    ConfirmationTimeoutError,
    IdentityFailure,
    InvariantViolation,
    PreconditionError,
    RejectedOperationError,
    SubmissionError,
)
from rollup_harness.infrastructure.simulated import SimulatedNetwork
from rollup_harness.main import (
    EXIT_CONFIGURATION_ERROR,
    EXIT_CONFIRMATION_TIMEOUT,
    EXIT_INVARIANT_VIOLATION,
    EXIT_OK,
    EXIT_OPERATION_FAILED,
    build_simulated_setup,
    exit_code_for,
    main,
    parse_args,
    run_harness,
)


def settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def run_main(argv: list[str], **overrides) -> int:
    with (
        patch("rollup_harness.main.get_settings", return_value=settings(**overrides)),
        patch("rollup_harness.main.setup_logging"),
    ):
        return main(argv)


class TestExitCodes:
    @pytest.mark.parametrize(
        ("exc", "expected"),
        [
            (InvariantViolation("Transfer", [IdentityFailure("operator_fee", 1, 0)]), EXIT_INVARIANT_VIOLATION),
            (ConfirmationTimeoutError("ref", "COMMITTED", 1.0, "SUBMITTED"), EXIT_CONFIRMATION_TIMEOUT),
            (ConfigurationError("missing"), EXIT_CONFIGURATION_ERROR),
            (SubmissionError("refused"), EXIT_OPERATION_FAILED),
            (PreconditionError("not approved", precondition="x"), EXIT_OPERATION_FAILED),
            (RejectedOperationError("ref", "Not enough balance"), EXIT_OPERATION_FAILED),
        ],
    )
    def test_mapping(self, exc, expected: int) -> None:
        assert exit_code_for(exc) == expected

    def test_codes_are_distinct_and_nonzero(self) -> None:
        failures = {
            EXIT_INVARIANT_VIOLATION,
            EXIT_OPERATION_FAILED,
            EXIT_CONFIRMATION_TIMEOUT,
            EXIT_CONFIGURATION_ERROR,
        }
        assert len(failures) == 4
        assert EXIT_OK not in failures


class TestParseArgs:
    def test_defaults(self) -> None:
        args = parse_args([])
        assert args.dry_run is False
        assert args.token is None
        assert args.deposit_amount is None

    def test_repeatable_token(self) -> None:
        args = parse_args(["--token", "ETH", "--token", "0xabc", "--dry-run"])
        assert args.token == ["ETH", "0xabc"]
        assert args.dry_run


class TestMain:
    def test_dry_run_passes(self) -> None:
        assert run_main(["--dry-run"]) == EXIT_OK

    def test_reports_step_timings_and_environment(self) -> None:
        with patch("rollup_harness.main.logger") as logger:
            assert run_main(["--dry-run", "--token", "ETH"], app_env="ci") == EXIT_OK

        calls = {c.args[0]: c.kwargs for c in logger.info.call_args_list}
        assert calls["harness.starting"]["env"] == "ci"
        steps = calls["harness.token_passed"]["steps"]
        assert "withdraw" in steps
        assert all(isinstance(ms, int) and ms >= 0 for ms in steps.values())

    def test_dry_run_single_token(self) -> None:
        assert run_main(["--dry-run", "--token", "ETH", "--deposit-amount", "0.01"]) == EXIT_OK

    def test_underfunded_deposit_is_operation_failure(self) -> None:
        # the depositor is funded with 0.02 TST; half of 0.5 does not fit
        assert run_main(["--dry-run", "--deposit-amount", "0.5"]) == EXIT_OPERATION_FAILED

    @pytest.mark.parametrize("amount", ["abc", "-0.018", "0.0000000000000000001", "inf", "0"])
    def test_invalid_deposit_amount_moves_no_funds(self, amount: str) -> None:
        with patch.object(SimulatedNetwork, "transfer", autospec=True) as transfer:
            code = run_main(["--dry-run", "--deposit-amount", amount])
        assert code == EXIT_CONFIGURATION_ERROR
        transfer.assert_not_called()

    def test_invalid_deposit_amount_from_environment(self) -> None:
        assert run_main(["--dry-run"], deposit_amount="lots") == EXIT_CONFIGURATION_ERROR

    def test_unknown_token_is_configuration_error(self) -> None:
        assert run_main(["--dry-run", "--token", "DAI"]) == EXIT_CONFIGURATION_ERROR

    def test_live_run_without_mnemonic(self) -> None:
        assert run_main([], test_mnemonic="") == EXIT_CONFIGURATION_ERROR

    def test_live_run_without_signer_factory(self) -> None:
        code = run_main(
            [],
            test_mnemonic="test test test test test test test test test test test junk",
            operator_franklin_address="0x" + "0f" * 20,
            rollup_signer_factory="",
        )
        assert code == EXIT_CONFIGURATION_ERROR


class TestRunHarness:
    @pytest.mark.asyncio
    async def test_closes_context_on_failure(self) -> None:
        setup = build_simulated_setup(settings())
        with pytest.raises(ConfigurationError):
            await run_harness(setup, ["DAI"], "0.018")
        assert setup.context.ledger.closed

    @pytest.mark.asyncio
    async def test_reports_per_token(self) -> None:
        setup = build_simulated_setup(settings())
        reports = await run_harness(setup, setup.default_tokens, "0.018")
        assert [r.token.symbol for r in reports] == ["TST", "ETH"]
        assert setup.context.ledger.closed
