"""
SeatBid - Course admission auction engine.

A priority-auction system for allocating quota-limited course seats:
- Admission-token credit ledger (mint / burn / transfer)
- Per-course priority bid lists
- Time-boxed bidding rounds with single-pass settlement
- Signature-authorised enrolment, token transfers and prerequisite waivers
"""

__version__ = "0.1.0"
