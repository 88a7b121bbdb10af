"""
Bidding Round Controller - The global open/closed bidding window.

State machine:
    CLOSED --open(duration)--> OPEN(end_time) --close()--> CLOSED

A round stops accepting bid activity as soon as `now > end_time`, but it
is only formally closed by an explicit close() after the deadline, which
is when the orchestrator runs settlement.
"""

import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, Optional

from seatbid.core.errors import InvalidDuration, RoundAlreadyOpen, RoundClosed, TooEarly
from seatbid.utils.logger import get_logger
from seatbid.utils.validation import validate_int

logger = get_logger("round")


# =============================================================================
# Enums
# =============================================================================


class RoundState(IntEnum):
    """State of the bidding round."""
    CLOSED = 0   # No round, or the last round has been settled
    OPEN = 1     # Round running until end_time


# =============================================================================
# Bidding Round
# =============================================================================


@dataclass
class BiddingRound:
    """
    The single bidding round owned by the orchestrator.

    Attributes:
        state: Current state
        end_time: Deadline (seconds since epoch) of the open round
        round_number: Rounds opened so far
        clock: Source of "now"; trusted and assumed monotonic
    """
    state: RoundState = RoundState.CLOSED
    end_time: Optional[int] = None
    round_number: int = 0
    clock: Callable[[], float] = field(default=time.time, repr=False, compare=False)

    def now(self) -> int:
        return int(self.clock())

    @property
    def is_open(self) -> bool:
        return self.state == RoundState.OPEN

    # =========================================================================
    # Transitions
    # =========================================================================

    def open(self, duration_seconds: int) -> int:
        """
        Open a new round.

        Returns:
            The round's end time

        Raises:
            RoundAlreadyOpen: a round is already open
            InvalidDuration: duration is not a positive integer
        """
        if self.is_open:
            raise RoundAlreadyOpen(f"Round {self.round_number} is open until {self.end_time}")

        is_valid, error = validate_int(duration_seconds, "duration", min_value=1)
        if not is_valid:
            raise InvalidDuration(error)

        self.end_time = self.now() + duration_seconds
        self.state = RoundState.OPEN
        self.round_number += 1

        logger.info(f"Bidding round {self.round_number} opened until {self.end_time}")
        return self.end_time

    def ensure_closable(self) -> None:
        """
        Raises:
            RoundClosed: no round is open
            TooEarly: the deadline has not passed
        """
        if not self.is_open:
            raise RoundClosed("No bidding round is open")
        if self.now() <= self.end_time:
            raise TooEarly(f"Round ends at {self.end_time}, now is {self.now()}")

    def close(self) -> None:
        """
        Formally close the round after its deadline.

        Raises:
            RoundClosed: no round is open
            TooEarly: the deadline has not passed
        """
        self.ensure_closable()
        self.state = RoundState.CLOSED
        logger.info(f"Bidding round {self.round_number} closed")

    # =========================================================================
    # Queries
    # =========================================================================

    def accepting_bids(self) -> bool:
        """Whether bids may be placed, changed or removed right now."""
        return self.is_open and self.now() <= self.end_time

    def ensure_accepting_bids(self) -> None:
        """
        Raises:
            RoundClosed: no round is open or its deadline has passed
        """
        if not self.is_open:
            raise RoundClosed("Bidding is not open")
        if self.now() > self.end_time:
            raise RoundClosed(f"Bidding ended at {self.end_time}")

    def time_remaining(self) -> int:
        """Seconds until the deadline (0 when closed or past it)."""
        if not self.is_open:
            return 0
        return max(0, self.end_time - self.now())

    # =========================================================================
    # Persistence
    # =========================================================================

    def to_dict(self) -> dict:
        return {
            "state": int(self.state),
            "end_time": self.end_time,
            "round_number": self.round_number,
        }

    @classmethod
    def from_dict(cls, data: dict, clock: Callable[[], float] = time.time) -> "BiddingRound":
        return cls(
            state=RoundState(int(data.get("state", RoundState.CLOSED))),
            end_time=data.get("end_time"),
            round_number=int(data.get("round_number", 0)),
            clock=clock,
        )
