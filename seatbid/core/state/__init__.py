"""Admission token state"""
from seatbid.core.state.ledger import CreditLedger

__all__ = ["CreditLedger"]
