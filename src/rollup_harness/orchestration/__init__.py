"""Scenario orchestration — the scripted reconciliation runs."""

from rollup_harness.orchestration.provisioning import FundingPlan, provision_parties
from rollup_harness.orchestration.scenario import (
    ScenarioAmounts,
    ScenarioOrchestrator,
    ScenarioParties,
    ScenarioReport,
    StepResult,
)

__all__ = [
    "FundingPlan",
    "ScenarioAmounts",
    "ScenarioOrchestrator",
    "ScenarioParties",
    "ScenarioReport",
    "StepResult",
    "provision_parties",
]
