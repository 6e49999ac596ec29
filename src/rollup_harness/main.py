"""Rollup Reconciliation Harness — command-line driver.

Builds the harness context once (ledger client, chain client, account
registry), provisions the scenario wallets, runs every token script
sequentially, and exits with a status that tells CI what went wrong:

    0   every scenario passed
    3   an accounting invariant was violated
    4   an operation was refused, rejected, or its precondition did not hold
    5   a confirmation did not arrive in time
    6   the harness could not be configured

Usage:
    # Against a local network (needs WEB3_URL, TEST_MNEMONIC, TEST_ERC20,
    # OPERATOR_FRANKLIN_ADDRESS and ROLLUP_SIGNER_FACTORY):
    rollup-harness

    # Dry-run against the in-memory network (no chain, no rollup):
    rollup-harness --dry-run

    # Only the native asset, with a different deposit total:
    rollup-harness --dry-run --token ETH --deposit-amount 0.05
"""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING

from rollup_harness.config import Settings, get_settings
from rollup_harness.domain.exceptions import (
    ConfigurationError,
    ConfirmationTimeoutError,
    HarnessError,
    InvariantViolation,
)
from rollup_harness.domain.models import NATIVE_TOKEN_SYMBOL, Token, parse_units
from rollup_harness.logging_config import bind_run, get_logger, setup_logging
from rollup_harness.orchestration.provisioning import FundingPlan, provision_parties
from rollup_harness.orchestration.scenario import ScenarioAmounts, ScenarioOrchestrator
from rollup_harness.services.context import HarnessContext
from rollup_harness.services.receipt import ConfirmationPolicy

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from rollup_harness.domain.protocols import Wallet
    from rollup_harness.orchestration.scenario import ScenarioReport

EXIT_OK = 0
EXIT_INVARIANT_VIOLATION = 3
EXIT_OPERATION_FAILED = 4
EXIT_CONFIRMATION_TIMEOUT = 5
EXIT_CONFIGURATION_ERROR = 6

SIMULATED_TOKEN = Token(id=1, symbol="TST", address="0x" + "7e" * 20)

logger = get_logger("rollup_harness")


def exit_code_for(exc: HarnessError) -> int:
    """Map a propagated failure to the process exit status."""
    if isinstance(exc, InvariantViolation):
        return EXIT_INVARIANT_VIOLATION
    if isinstance(exc, ConfirmationTimeoutError):
        return EXIT_CONFIRMATION_TIMEOUT
    if isinstance(exc, ConfigurationError):
        return EXIT_CONFIGURATION_ERROR
    return EXIT_OPERATION_FAILED


@dataclass
class HarnessSetup:
    """A built context plus what provisioning needs."""

    context: HarnessContext
    funder: Wallet
    new_wallet: Callable[[str], Wallet]
    default_tokens: list[str]


def _policy(settings: Settings, poll_interval: float | None = None) -> ConfirmationPolicy:
    return ConfirmationPolicy(
        commit_timeout=settings.commit_timeout_seconds,
        verify_timeout=settings.verify_timeout_seconds,
        poll_interval=settings.poll_interval_seconds if poll_interval is None else poll_interval,
    )


def build_simulated_setup(settings: Settings) -> HarnessSetup:
    """In-memory network with one ERC20 token and a funder holding 1 unit of each."""
    from rollup_harness.infrastructure.simulated import SimulatedNetwork, SimulatedWallet

    network = SimulatedNetwork()
    network.add_token(SIMULATED_TOKEN)
    funder = SimulatedWallet()
    for token in (Token(id=0, symbol=NATIVE_TOKEN_SYMBOL), SIMULATED_TOKEN):
        network.mint(funder.address, token, parse_units("1", token.decimals))

    context = HarnessContext(
        ledger=network,
        chain=network,
        operator_address=network.operator_address,
        policy=_policy(settings, poll_interval=0.0),
    )
    return HarnessSetup(
        context=context,
        funder=funder,
        new_wallet=lambda label: SimulatedWallet(),
        default_tokens=[SIMULATED_TOKEN.address, NATIVE_TOKEN_SYMBOL],
    )


async def build_live_setup(settings: Settings) -> HarnessSetup:
    """Rollup JSON-RPC + web3 chain client with mnemonic-funded wallets.

    Raises:
        ConfigurationError: If a required setting is missing.
    """
    from rollup_harness.infrastructure.chain_client import Web3ChainClient
    from rollup_harness.infrastructure.rollup_client import RollupRpcClient
    from rollup_harness.infrastructure.wallets import LiveWallet, load_signer_factory

    if not settings.test_mnemonic:
        raise ConfigurationError("TEST_MNEMONIC is required for live runs")
    if not settings.operator_franklin_address:
        raise ConfigurationError("OPERATOR_FRANKLIN_ADDRESS is required for live runs")
    signer_factory = load_signer_factory(settings.rollup_signer_factory)

    ledger = RollupRpcClient(settings.rollup_rpc_url, timeout=settings.rpc_timeout_seconds)
    try:
        contracts = await ledger.get_contract_address()
    except Exception:
        await ledger.close()
        raise
    chain = Web3ChainClient(
        settings.web3_url,
        contracts.main_contract,
        tx_timeout=settings.chain_tx_timeout_seconds,
    )

    default_tokens = [NATIVE_TOKEN_SYMBOL]
    if settings.test_erc20:
        default_tokens.insert(0, settings.test_erc20)
    else:
        logger.warning("harness.no_erc20", detail="TEST_ERC20 unset; running the native asset only")

    return HarnessSetup(
        context=HarnessContext(
            ledger=ledger,
            chain=chain,
            operator_address=settings.operator_franklin_address,
            policy=_policy(settings),
        ),
        funder=LiveWallet.from_mnemonic(settings.test_mnemonic, signer_factory),
        new_wallet=lambda label: LiveWallet.create(signer_factory),
        default_tokens=default_tokens,
    )


async def run_harness(
    setup: HarnessSetup,
    tokens: Sequence[str],
    deposit_amount: str,
    funding: FundingPlan | None = None,
) -> list[ScenarioReport]:
    """Provision wallets and run every token scenario; always closes the clients.

    The deposit total is checked against every token before any funds move.
    """
    try:
        for token_like in tokens:
            token = await setup.context.ledger.resolve_token(token_like)
            ScenarioAmounts.for_token(deposit_amount, token)
        runs = await provision_parties(
            setup.context, setup.funder, tokens, setup.new_wallet, funding
        )
        return await ScenarioOrchestrator(setup.context).run(runs, deposit_amount)
    finally:
        await setup.context.close()


async def _run(args: argparse.Namespace, settings: Settings) -> list[ScenarioReport]:
    bind_run(network="simulated" if args.dry_run else settings.network_name)
    if args.dry_run:
        setup = build_simulated_setup(settings)
    else:
        setup = await build_live_setup(settings)

    tokens = args.token or setup.default_tokens
    logger.info("harness.starting", env=settings.app_env, tokens=tokens)
    funding = FundingPlan(
        depositor_native=settings.funding_eth_depositor,
        depositor_token=settings.funding_erc20_depositor,
        account_native=settings.funding_eth_account,
    )
    return await run_harness(setup, tokens, args.deposit_amount or settings.deposit_amount, funding)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Rollup reconciliation harness")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run against the in-memory simulated network (no chain, no rollup).",
    )
    parser.add_argument(
        "--token",
        action="append",
        help="Token symbol or address to test; repeatable. Default: TEST_ERC20 then ETH.",
    )
    parser.add_argument(
        "--deposit-amount",
        default=None,
        help="Total deposited per token, in whole units. Default: DEPOSIT_AMOUNT (0.018).",
    )
    parser.add_argument("--log-level", default=None, help="Override APP_LOG_LEVEL.")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines.")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point; returns the process exit status."""
    args = parse_args(argv)
    settings = get_settings()
    setup_logging(
        log_level=args.log_level or settings.app_log_level,
        json_logs=args.json_logs or settings.json_logs,
    )

    try:
        reports = asyncio.run(_run(args, settings))
    except HarnessError as exc:
        status = exit_code_for(exc)
        logger.error("harness.failed", code=exc.code, error=exc.message, exit_status=status)
        return status

    for report in reports:
        logger.info(
            "harness.token_passed",
            token=report.token.symbol,
            steps={s.name: s.elapsed_ms for s in report.steps if not s.skipped},
            skipped=report.skipped_steps,
        )
    logger.info("harness.passed", tokens=[r.token.symbol for r in reports])
    return EXIT_OK


def cli() -> None:
    raise SystemExit(main())
