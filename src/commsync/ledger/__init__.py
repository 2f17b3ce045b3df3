"""Append-only message ledger."""

from commsync.ledger.chain import Ledger

__all__ = ["Ledger"]
