"""Itemized worksite costs."""

from millesbtp.ledger.service import CostLedger, positive_amount

__all__ = ["CostLedger", "positive_amount"]
