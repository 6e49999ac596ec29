"""Infrastructure — transport clients, wallets and the simulated network."""

from rollup_harness.infrastructure.simulated import SimulatedNetwork, SimulatedWallet

__all__ = ["SimulatedNetwork", "SimulatedWallet"]
