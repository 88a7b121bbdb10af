"""
SeatBid Auction Module.

This module provides the allocation engine:
- Priority bid lists
- Course catalog with reservations and budget checks
- Bidding round controller
- Settlement
"""

from seatbid.core.auction.bid_list import PriorityBidList

from seatbid.core.auction.catalog import Course, CourseCatalog

from seatbid.core.auction.bidding_round import BiddingRound, RoundState

from seatbid.core.auction.settlement import (
    Award,
    Discard,
    Rejection,
    SettlementResult,
    plan_settlement,
)

__all__ = [
    # Bid list
    "PriorityBidList",
    # Catalog
    "Course",
    "CourseCatalog",
    # Round
    "BiddingRound",
    "RoundState",
    # Settlement
    "Award",
    "Discard",
    "Rejection",
    "SettlementResult",
    "plan_settlement",
]
