"""
Course Catalog - Courses, their bid lists and acceptance state.

The catalog owns:
- Every course (quota, weight in units of credit, prerequisites, owner)
- Each course's PriorityBidList
- Accepted students per course
- Per-student indexes of pending bids and awarded courses

Reservations:
------------
A pending bid reserves its amount against the student's ledger balance
without moving any tokens. The unreserved balance is

    unreserved = balance - sum(amounts of the student's other live bids)

and a new bid (or a changed bid, plus its old amount) must fit in it.

Budget:
-------
Every course consumes `weight` units of credit. Awarded weight plus the
weight of all pending bids may never exceed the student's paid-for ceiling.

Round gating and prerequisite checks are performed by the orchestrator
before it calls into the catalog.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Tuple

from seatbid.core.auction.bid_list import PriorityBidList
from seatbid.core.errors import (
    BudgetExceeded,
    DuplicateBid,
    DuplicateResource,
    InsufficientFunds,
    InvalidAmount,
    InvalidCourseCode,
    InvalidQuota,
    InvalidWeight,
    NoSuchBid,
    NoSuchResource,
)
from seatbid.utils.logger import get_logger
from seatbid.utils.validation import (
    MAX_PREREQUISITES,
    validate_amount,
    validate_course_code,
    validate_int,
)

if TYPE_CHECKING:
    from seatbid.core.auction.settlement import SettlementResult

logger = get_logger("catalog")


# =============================================================================
# Data Structures
# =============================================================================


@dataclass
class Course:
    """
    A biddable course.

    Attributes:
        code: Unique course code (e.g. "COMP6451")
        quota: Maximum number of accepted students
        weight: Units of credit consumed from a student's budget
        owner: Lecturer address
        prerequisites: Codes that must be completed before bidding
        accepted: Accepted students, in acceptance order
        bids: Live bids for the current round
    """
    code: str
    quota: int
    weight: int
    owner: str
    prerequisites: Tuple[str, ...] = ()
    accepted: List[str] = field(default_factory=list)
    bids: PriorityBidList = field(default_factory=PriorityBidList)

    @property
    def remaining(self) -> int:
        """Seats still available."""
        return self.quota - len(self.accepted)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "quota": self.quota,
            "weight": self.weight,
            "owner": self.owner,
            "prerequisites": list(self.prerequisites),
            "accepted": list(self.accepted),
            "bids": [[claimant, amount] for claimant, amount in self.bids.entries()],
        }


# =============================================================================
# Course Catalog
# =============================================================================


class CourseCatalog:
    """
    Registry of courses and the bids placed on them.
    """

    def __init__(self):
        # Insertion order is creation order, which settlement follows
        self._courses: Dict[str, Course] = {}

        # Student -> course codes with a live bid (in bid order)
        self._pending: Dict[str, List[str]] = {}

        # Student -> course codes the student has been accepted into
        self._awarded: Dict[str, List[str]] = {}

    # =========================================================================
    # Course Management
    # =========================================================================

    def create_course(
        self,
        code: str,
        quota: int,
        weight: int,
        owner: str,
        prerequisites: Iterable[str] = (),
    ) -> Course:
        """
        Register a new course with an empty bid list.

        Raises:
            InvalidCourseCode: code or a prerequisite code is malformed
            DuplicateResource: code already registered
            InvalidQuota: quota is not a positive integer
            InvalidWeight: weight is not a positive integer
        """
        is_valid, error = validate_course_code(code)
        if not is_valid:
            raise InvalidCourseCode(error)

        if code in self._courses:
            raise DuplicateResource(f"Course {code} already exists")

        is_valid, error = validate_int(quota, "quota", min_value=1)
        if not is_valid:
            raise InvalidQuota(error)

        is_valid, error = validate_int(weight, "weight", min_value=1)
        if not is_valid:
            raise InvalidWeight(error)

        prerequisites = tuple(dict.fromkeys(prerequisites))
        if len(prerequisites) > MAX_PREREQUISITES:
            raise InvalidCourseCode(f"At most {MAX_PREREQUISITES} prerequisites allowed")
        for prerequisite in prerequisites:
            is_valid, error = validate_course_code(prerequisite)
            if not is_valid:
                raise InvalidCourseCode(f"prerequisite: {error}")
        if code in prerequisites:
            raise InvalidCourseCode(f"Course {code} cannot be its own prerequisite")

        course = Course(
            code=code,
            quota=quota,
            weight=weight,
            owner=owner,
            prerequisites=prerequisites,
        )
        self._courses[code] = course

        logger.info(f"Course created: {code} quota={quota} weight={weight} prerequisites={list(prerequisites)}")
        return course

    def get_course(self, code: str) -> Course:
        """
        Raises:
            NoSuchResource: code is not registered
        """
        course = self._courses.get(code)
        if course is None:
            raise NoSuchResource(f"No course with code {code}")
        return course

    def has_course(self, code: str) -> bool:
        return code in self._courses

    def codes(self) -> List[str]:
        """Course codes in creation order."""
        return list(self._courses)

    def courses(self) -> List[Course]:
        return list(self._courses.values())

    # =========================================================================
    # Student Views
    # =========================================================================

    def pending_courses(self, claimant: str) -> List[str]:
        return list(self._pending.get(claimant, []))

    def awarded_courses(self, claimant: str) -> List[str]:
        return list(self._awarded.get(claimant, []))

    def reserved(self, claimant: str, exclude: Optional[str] = None) -> int:
        """Tokens held against the claimant's live bids, optionally skipping one course."""
        return sum(
            self._courses[code].bids.get(claimant)
            for code in self._pending.get(claimant, [])
            if code != exclude
        )

    def unreserved(self, claimant: str, balance: int) -> int:
        return balance - self.reserved(claimant)

    def committed_weight(self, claimant: str) -> int:
        """Units of credit consumed by awarded courses and live bids."""
        awarded = sum(self._courses[code].weight for code in self._awarded.get(claimant, []))
        pending = sum(self._courses[code].weight for code in self._pending.get(claimant, []))
        return awarded + pending

    # =========================================================================
    # Bids
    # =========================================================================

    def place_bid(
        self,
        code: str,
        claimant: str,
        amount: int,
        balance: int,
        budget_ceiling: int,
    ) -> None:
        """
        Place a new bid, reserving `amount` tokens.

        Args:
            code: Course code
            claimant: Bidding student
            amount: Tokens offered
            balance: Student's current ledger balance
            budget_ceiling: Units of credit the student has paid for

        Raises:
            NoSuchResource: unknown course
            InvalidAmount: amount is not a positive integer
            DuplicateBid: student already bid on, or was accepted into, the course
            InsufficientFunds: amount exceeds the unreserved balance
            BudgetExceeded: committed weight would exceed the ceiling
        """
        course = self.get_course(code)

        is_valid, error = validate_amount(amount)
        if not is_valid:
            raise InvalidAmount(error)

        if course.bids.contains(claimant):
            raise DuplicateBid(f"{claimant} already has a bid on {code}")

        if claimant in course.accepted:
            raise DuplicateBid(f"{claimant} is already accepted into {code}")

        available = self.unreserved(claimant, balance)
        if amount > available:
            raise InsufficientFunds(f"Bid of {amount} exceeds unreserved balance {available}")

        committed = self.committed_weight(claimant) + course.weight
        if committed > budget_ceiling:
            raise BudgetExceeded(
                f"Bid on {code} would commit {committed} units of credit, ceiling is {budget_ceiling}"
            )

        course.bids.insert(claimant, amount)
        self._pending.setdefault(claimant, []).append(code)

        logger.debug(f"Bid placed: {claimant[:10]}... -> {code} amount={amount}")

    def change_bid(self, code: str, claimant: str, new_amount: int, balance: int) -> int:
        """
        Change an existing bid. The old amount is released and re-reserved.

        Returns:
            The previous amount

        Raises:
            NoSuchResource: unknown course
            NoSuchBid: student has no bid on the course
            InvalidAmount: new_amount is not a positive integer
            InsufficientFunds: new_amount exceeds unreserved balance plus old amount
        """
        course = self.get_course(code)
        old_amount = course.bids.get(claimant)

        is_valid, error = validate_amount(new_amount)
        if not is_valid:
            raise InvalidAmount(error)

        available = balance - self.reserved(claimant, exclude=code)
        if new_amount > available:
            raise InsufficientFunds(f"Bid of {new_amount} exceeds available balance {available}")

        course.bids.update(claimant, new_amount)

        logger.debug(f"Bid changed: {claimant[:10]}... -> {code} {old_amount} => {new_amount}")
        return old_amount

    def remove_bid(self, code: str, claimant: str) -> int:
        """
        Withdraw a bid, releasing its reservation.

        Returns:
            The withdrawn amount

        Raises:
            NoSuchResource: unknown course
            NoSuchBid: student has no bid on the course
        """
        course = self.get_course(code)
        amount = course.bids.get(claimant)

        course.bids.remove(claimant)
        self._drop_pending(claimant, code)

        logger.debug(f"Bid removed: {claimant[:10]}... -> {code} amount={amount}")
        return amount

    def get_bid(self, code: str, claimant: str) -> int:
        """
        Raises:
            NoSuchResource: unknown course
            NoSuchBid: student has no bid on the course
        """
        return self.get_course(code).bids.get(claimant)

    def get_bids(self, code: str) -> List[Tuple[str, int]]:
        """Bids on a course, highest first."""
        return self.get_course(code).bids.entries()

    def get_accepted(self, code: str) -> List[str]:
        return list(self.get_course(code).accepted)

    def open_bid_count(self) -> int:
        return sum(len(course.bids) for course in self._courses.values())

    # =========================================================================
    # Settlement
    # =========================================================================

    def apply_settlement(self, result: "SettlementResult") -> None:
        """
        Record a round's awards and clear every bid list.

        The result must have been planned against the current catalog state.
        """
        seats: Dict[str, int] = {}
        for award in result.awards:
            seats[award.course_code] = seats.get(award.course_code, 0) + 1
        for code, count in seats.items():
            course = self.get_course(code)
            if count > course.remaining:
                raise RuntimeError(f"Settlement would overfill {code}")

        for award in result.awards:
            course = self._courses[award.course_code]
            course.accepted.append(award.claimant)
            self._awarded.setdefault(award.claimant, []).append(award.course_code)

        for course in self._courses.values():
            course.bids.clear()
        self._pending.clear()

    # =========================================================================
    # Internals
    # =========================================================================

    def _drop_pending(self, claimant: str, code: str) -> None:
        codes = self._pending.get(claimant)
        if not codes:
            return
        if code in codes:
            codes.remove(code)
        if not codes:
            del self._pending[claimant]

    # =========================================================================
    # Persistence
    # =========================================================================

    def to_dict(self) -> dict:
        return {
            "courses": [course.to_dict() for course in self._courses.values()],
            "pending": {k: list(v) for k, v in self._pending.items()},
            "awarded": {k: list(v) for k, v in self._awarded.items()},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CourseCatalog":
        catalog = cls()
        for entry in data.get("courses", []):
            course = Course(
                code=entry["code"],
                quota=int(entry["quota"]),
                weight=int(entry["weight"]),
                owner=entry["owner"],
                prerequisites=tuple(entry.get("prerequisites", [])),
                accepted=list(entry.get("accepted", [])),
            )
            # Re-inserting in stored order reproduces tie order
            for claimant, amount in entry.get("bids", []):
                course.bids.insert(claimant, int(amount))
            catalog._courses[course.code] = course
        catalog._pending = {k: list(v) for k, v in data.get("pending", {}).items()}
        catalog._awarded = {k: list(v) for k, v in data.get("awarded", {}).items()}
        return catalog

    def __repr__(self) -> str:
        return f"CourseCatalog(courses={len(self._courses)}, open_bids={self.open_bid_count()})"
