"""CommSync — tactical comms simulation with causal ordering and a tamper-evident ledger."""

__version__ = "0.1.0"
