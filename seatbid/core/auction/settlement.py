"""
Settlement - Single-pass conversion of a round's bids into seats.

Algorithm:
----------
For each course, in creation order:

1. remaining = quota - len(accepted)
2. Walk the bid list from the highest bid (ties already in arrival order)
3. For each (student, amount):
   - bid discarded by an earlier acceptance -> skipped
   - remaining > 0  -> award: the amount will be burned, remaining -= 1,
     and (with discard_on_accept) every other pending bid of the student
     is discarded
   - remaining == 0 -> rejected: nothing is burned, other bids untouched

Planning is pure: it reads the catalog and returns a SettlementResult.
The orchestrator then burns award amounts and applies the result to the
catalog, which clears every bid list.

discard_on_accept:
------------------
On by default: a student accepted into a course stops competing for the
rest of the round, so a seat won early can lose them a course whose list
is walked later. Turning it off lets a student win every course they bid
within quota in the same round.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Set, Tuple

from seatbid.core.auction.catalog import CourseCatalog
from seatbid.utils.logger import get_logger

logger = get_logger("settlement")


# =============================================================================
# Data Structures
# =============================================================================


@dataclass(frozen=True)
class Award:
    """A bid converted into a seat."""
    course_code: str
    claimant: str
    amount: int
    weight: int


@dataclass(frozen=True)
class Rejection:
    """A bid that fell outside the quota. Its reservation lapses."""
    course_code: str
    claimant: str
    amount: int


@dataclass(frozen=True)
class Discard:
    """A bid dropped because its student was accepted elsewhere first."""
    course_code: str
    claimant: str
    amount: int
    accepted_into: str


@dataclass
class SettlementResult:
    """Outcome of settling one round."""
    round_number: int = 0
    awards: List[Award] = field(default_factory=list)
    rejections: List[Rejection] = field(default_factory=list)
    discards: List[Discard] = field(default_factory=list)

    @property
    def total_burned(self) -> int:
        return sum(award.amount for award in self.awards)

    def burns(self) -> List[Tuple[str, int]]:
        """(student, amount) debits to apply to the ledger."""
        return [(award.claimant, award.amount) for award in self.awards]

    def accepted_for(self, course_code: str) -> List[str]:
        return [a.claimant for a in self.awards if a.course_code == course_code]

    def awards_for(self, claimant: str) -> List[Award]:
        return [a for a in self.awards if a.claimant == claimant]

    def summary(self) -> Dict[str, int]:
        return {
            "awards": len(self.awards),
            "rejections": len(self.rejections),
            "discards": len(self.discards),
            "burned": self.total_burned,
        }

    def to_dict(self) -> dict:
        return {
            "round_number": self.round_number,
            "awards": [[a.course_code, a.claimant, a.amount] for a in self.awards],
            "rejections": [[r.course_code, r.claimant, r.amount] for r in self.rejections],
            "discards": [[d.course_code, d.claimant, d.amount, d.accepted_into] for d in self.discards],
            "summary": self.summary(),
        }


# =============================================================================
# Settlement
# =============================================================================


def plan_settlement(
    catalog: CourseCatalog,
    discard_on_accept: bool = True,
    round_number: int = 0,
) -> SettlementResult:
    """
    Decide awards, rejections and discards for every open bid.

    Does not modify the catalog.

    Args:
        catalog: Catalog holding the round's bids
        discard_on_accept: Drop an accepted student's other bids
        round_number: Recorded on the result

    Returns:
        SettlementResult
    """
    result = SettlementResult(round_number=round_number)

    # (student, course) -> course the student was accepted into
    discarded: Dict[Tuple[str, str], str] = {}
    accepted_now: Set[Tuple[str, str]] = set()

    for course in catalog.courses():
        remaining = course.remaining

        for claimant, amount in course.bids.entries():
            key = (claimant, course.code)

            if key in discarded:
                result.discards.append(Discard(
                    course_code=course.code,
                    claimant=claimant,
                    amount=amount,
                    accepted_into=discarded[key],
                ))
                continue

            if remaining > 0:
                result.awards.append(Award(
                    course_code=course.code,
                    claimant=claimant,
                    amount=amount,
                    weight=course.weight,
                ))
                accepted_now.add(key)
                remaining -= 1

                if discard_on_accept:
                    for other in catalog.pending_courses(claimant):
                        if other != course.code and (claimant, other) not in accepted_now:
                            discarded.setdefault((claimant, other), course.code)
            else:
                result.rejections.append(Rejection(
                    course_code=course.code,
                    claimant=claimant,
                    amount=amount,
                ))

    logger.info(
        f"Settlement planned for round {round_number}: "
        f"{len(result.awards)} awarded, {len(result.rejections)} rejected, "
        f"{len(result.discards)} discarded, {result.total_burned} tokens to burn"
    )
    return result
