"""End-to-end reconciliation harness for a chain + rollup value-transfer network."""

__version__ = "0.1.0"
