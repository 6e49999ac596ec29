"""Account provisioning for a harness run.

A funded wallet seeds the scenario parties on the chain before any script
runs: the depositor gets native funds plus every ERC20 under test, the
sender and each receiver get native funds for gas. One shared depositor and
sender serve all tokens; every token gets a fresh receiver, so its first
transfer always lands on an account the rollup has never seen.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from rollup_harness.domain.models import NATIVE_TOKEN_SYMBOL, parse_units
from rollup_harness.logging_config import get_logger
from rollup_harness.orchestration.scenario import ScenarioParties

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from rollup_harness.domain.models import Token
    from rollup_harness.domain.protocols import Wallet
    from rollup_harness.services.context import HarnessContext

logger = get_logger(__name__)


@dataclass(frozen=True)
class FundingPlan:
    """Chain funding per party, in whole token units."""

    depositor_native: str = "0.02"
    depositor_token: str = "0.02"
    account_native: str = "0.01"


async def provision_parties(
    context: HarnessContext,
    funder: Wallet,
    token_likes: Sequence[str],
    new_wallet: Callable[[str], Wallet],
    plan: FundingPlan | None = None,
) -> list[tuple[str, ScenarioParties]]:
    """Create and fund the wallets of every token script.

    Args:
        context: Harness context; created wallets are registered in it.
        funder: Wallet holding native and ERC20 funds on the chain.
        token_likes: Tokens under test, in run order.
        new_wallet: Factory creating a fresh wallet for a label.
        plan: Funding amounts.

    Returns:
        (token, parties) pairs ready for ScenarioOrchestrator.run().
    """
    plan = plan or FundingPlan()
    chain = context.chain
    native = await context.ledger.resolve_token(NATIVE_TOKEN_SYMBOL)
    tokens: list[Token] = [await context.ledger.resolve_token(t) for t in token_likes]

    depositor = context.accounts.register("depositor", new_wallet("depositor"))
    await chain.transfer(funder, depositor.address, native, parse_units(plan.depositor_native))
    for token in tokens:
        if not token.is_native:
            await chain.transfer(
                funder,
                depositor.address,
                token,
                parse_units(plan.depositor_token, token.decimals),
            )
    logger.info("provision.depositor_funded", address=depositor.address)

    sender = context.accounts.register("sender", new_wallet("sender"))
    await chain.transfer(funder, sender.address, native, parse_units(plan.account_native))

    runs: list[tuple[str, ScenarioParties]] = []
    for token_like, token in zip(token_likes, tokens, strict=True):
        label = f"receiver-{token.symbol}"
        receiver = context.accounts.register(label, new_wallet(label))
        await chain.transfer(funder, receiver.address, native, parse_units(plan.account_native))
        runs.append((token_like, ScenarioParties(depositor=depositor, sender=sender, receiver=receiver)))

    logger.info(
        "provision.completed",
        sender=sender.address,
        receivers=[parties.receiver.address for _, parties in runs],
    )
    return runs
