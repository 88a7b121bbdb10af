"""
Integration tests for bidding rounds and settlement through the University.

Tests cover:
1. Round lifecycle and gating
2. Bidding, changing and removing bids with reservations and budgets
3. Settlement: quotas, burns and released reservations
4. Multi-course rounds with and without discarding other bids
"""

import pytest

from seatbid.core.authorization import enrollment_hash
from seatbid.core.config import UniversityConfig
from seatbid.core.errors import (
    AuthorizationError,
    BudgetExceeded,
    DuplicateBid,
    InsufficientFunds,
    NoSuchBid,
    NoSuchResource,
    RoundAlreadyOpen,
    RoundClosed,
    TooEarly,
)
from seatbid.core.university import University
from seatbid.crypto import generate_keypair, sign_recoverable


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: int = 1_700_000_000):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(scope="module")
def accounts():
    """Ten keypairs: 0 chief, 1-2 admins, 3-7 students, 8 outsider, 9 lecturer."""
    return [generate_keypair() for _ in range(10)]


@pytest.fixture
def clock():
    return FakeClock()


def build_university(accounts, clock, discard_on_accept=True):
    """
    Five courses owned by account 9; students 3-5 pay for 18 UOC and
    students 6-7 for 12 UOC.
    """
    chief, admin1, admin2, lecturer = accounts[0], accounts[1], accounts[2], accounts[9]
    config = UniversityConfig(discard_on_accept=discard_on_accept)

    uni = University(chief.address, config=config, clock=clock)
    uni.init(chief.address, max_uoc=18, fee_per_uoc=1000)
    uni.add_admins(chief.address, [admin1.address, admin2.address])
    uni.add_lecturer(admin1.address, lecturer.address)

    uni.create_course(admin1.address, "COMP6451", 2, 6, lecturer.address)
    uni.create_course(admin1.address, "COMP1511", 4, 6, lecturer.address)
    uni.create_course(admin1.address, "COMP1521", 4, 6, lecturer.address)
    uni.create_course(admin2.address, "COMP9517", 3, 6, lecturer.address)
    uni.create_course(admin2.address, "COMP3151", 2, 6, lecturer.address)

    for i, uoc in [(3, 18), (4, 18), (5, 18), (6, 12), (7, 12)]:
        approver = admin1 if i <= 5 else admin2
        signature = sign_recoverable(
            enrollment_hash(uni.instance_id, accounts[i].address), approver.private_key
        )
        uni.enroll(accounts[i].address, signature)
        uni.pay_fees(accounts[i].address, uoc, uoc * 1000)
    return uni


@pytest.fixture
def uni(accounts, clock):
    return build_university(accounts, clock)


@pytest.fixture
def open_uni(uni, accounts):
    uni.start_bidding_round(accounts[1].address, 10)
    return uni


def addr(accounts, i):
    return accounts[i].address


# =============================================================================
# Setup
# =============================================================================


class TestSetup:

    def test_initial_state(self, uni, accounts):
        assert uni.get_courses() == ["COMP6451", "COMP1511", "COMP1521", "COMP9517", "COMP3151"]
        assert [uni.get_balance(addr(accounts, i)) for i in range(3, 8)] == [1800, 1800, 1800, 1200, 1200]
        assert uni.get_role(addr(accounts, 8)) == "Unknown"
        assert not uni.is_bidding_open()
        assert uni.get_bidding_end_time() is None


# =============================================================================
# Round Lifecycle
# =============================================================================


class TestRoundLifecycle:

    def test_bid_before_round(self, uni, accounts):
        with pytest.raises(RoundClosed):
            uni.make_bid(addr(accounts, 3), "COMP1511", 500)

    def test_only_admin_starts_round(self, uni, accounts):
        with pytest.raises(AuthorizationError):
            uni.start_bidding_round(addr(accounts, 8), 10)

    def test_start_round(self, uni, accounts, clock):
        end_time = uni.start_bidding_round(addr(accounts, 1), 10)
        assert end_time == clock.now + 10
        assert uni.get_bidding_end_time() == end_time
        assert uni.is_bidding_open()

    def test_second_round_while_open(self, open_uni, accounts):
        with pytest.raises(RoundAlreadyOpen):
            open_uni.start_bidding_round(addr(accounts, 2), 10)

    def test_default_duration_from_config(self, uni, accounts, clock):
        end_time = uni.start_bidding_round(addr(accounts, 1))
        assert end_time == clock.now + uni.config.default_round_duration

    def test_close_too_early_then_once(self, open_uni, accounts, clock):
        """Closing before the deadline fails; after it, closing works exactly once."""
        with pytest.raises(TooEarly):
            open_uni.close_bidding(addr(accounts, 1))

        clock.advance(11)
        open_uni.close_bidding(addr(accounts, 1))
        assert not open_uni.is_bidding_open()

        with pytest.raises(RoundClosed):
            open_uni.close_bidding(addr(accounts, 1))

    def test_only_admin_closes(self, open_uni, accounts, clock):
        clock.advance(11)
        with pytest.raises(AuthorizationError):
            open_uni.close_bidding(addr(accounts, 8))

    def test_no_bid_activity_after_deadline(self, open_uni, accounts, clock):
        open_uni.make_bid(addr(accounts, 3), "COMP1511", 500)
        clock.advance(11)
        with pytest.raises(RoundClosed):
            open_uni.make_bid(addr(accounts, 4), "COMP3151", 500)
        with pytest.raises(RoundClosed):
            open_uni.change_bid(addr(accounts, 3), "COMP1511", 600)
        with pytest.raises(RoundClosed):
            open_uni.remove_bid(addr(accounts, 3), "COMP1511")


# =============================================================================
# Bidding
# =============================================================================


class TestBidding:

    def test_bid_checks(self, open_uni, accounts):
        student = addr(accounts, 3)
        with pytest.raises(AuthorizationError):
            open_uni.make_bid(addr(accounts, 8), "COMP1511", 500)
        with pytest.raises(NoSuchResource):
            open_uni.make_bid(student, "COMP1234", 500)
        with pytest.raises(InsufficientFunds):
            open_uni.make_bid(student, "COMP1511", 1801)

        open_uni.make_bid(student, "COMP1511", 500)
        assert open_uni.get_bid("COMP1511", student) == 500

        with pytest.raises(DuplicateBid):
            open_uni.make_bid(student, "COMP1511", 500)

        open_uni.make_bid(student, "COMP6451", 1000)
        with pytest.raises(InsufficientFunds):
            open_uni.make_bid(student, "COMP3151", 301)
        open_uni.make_bid(student, "COMP3151", 200)

        # Three 6-UOC courses already use the 18 UOC paid for
        with pytest.raises(BudgetExceeded):
            open_uni.make_bid(student, "COMP1521", 100)

        # Bids only reserve; the balance is untouched until settlement
        assert open_uni.get_balance(student) == 1800
        assert open_uni.get_unreserved_balance(student) == 100

    def test_budget_used_up(self, open_uni, accounts):
        """Two 6-UOC bids use up a 12 UOC budget."""
        student = addr(accounts, 6)
        open_uni.make_bid(student, "COMP1511", 100)
        open_uni.make_bid(student, "COMP1521", 100)
        with pytest.raises(BudgetExceeded):
            open_uni.make_bid(student, "COMP9517", 100)
        assert open_uni.get_unreserved_balance(student) == 1000

    def test_bid_without_tokens(self, open_uni, accounts):
        """A student who never paid fees holds no tokens to bid with."""
        admin, newcomer = accounts[1], accounts[8]
        signature = sign_recoverable(
            enrollment_hash(open_uni.instance_id, newcomer.address), admin.private_key
        )
        open_uni.enroll(newcomer.address, signature)
        with pytest.raises(InsufficientFunds):
            open_uni.make_bid(newcomer.address, "COMP1511", 500)

    def test_bids_ordered(self, open_uni, accounts):
        open_uni.make_bid(addr(accounts, 3), "COMP6451", 1000)
        open_uni.make_bid(addr(accounts, 4), "COMP6451", 800)
        open_uni.make_bid(addr(accounts, 5), "COMP6451", 1050)
        assert open_uni.get_bids("COMP6451") == [
            (addr(accounts, 5), 1050), (addr(accounts, 3), 1000), (addr(accounts, 4), 800),
        ]

    def test_change_bid_repositions(self, open_uni, accounts):
        student = addr(accounts, 3)
        open_uni.make_bid(student, "COMP1511", 500)
        open_uni.make_bid(student, "COMP6451", 1000)
        open_uni.make_bid(addr(accounts, 5), "COMP6451", 1050)

        with pytest.raises(InsufficientFunds):
            open_uni.change_bid(student, "COMP6451", 1301)
        assert open_uni.change_bid(student, "COMP6451", 1100) == 1000
        assert [a for a, _ in open_uni.get_bids("COMP6451")] == [student, addr(accounts, 5)]

    def test_duplicate_then_change(self, open_uni, accounts):
        student = addr(accounts, 4)
        open_uni.make_bid(student, "COMP6451", 500)
        open_uni.make_bid(addr(accounts, 5), "COMP6451", 700)
        with pytest.raises(DuplicateBid):
            open_uni.make_bid(student, "COMP6451", 900)
        open_uni.change_bid(student, "COMP6451", 900)
        assert open_uni.get_bids("COMP6451")[0] == (student, 900)

    def test_remove_and_rebid(self, open_uni, accounts):
        student = addr(accounts, 3)
        open_uni.make_bid(student, "COMP6451", 1100)
        assert open_uni.remove_bid(student, "COMP6451") == 1100
        with pytest.raises(NoSuchBid):
            open_uni.get_bid("COMP6451", student)
        open_uni.make_bid(student, "COMP6451", 1100)
        assert open_uni.get_bid("COMP6451", student) == 1100

    def test_reads_are_idempotent(self, open_uni, accounts):
        open_uni.make_bid(addr(accounts, 3), "COMP6451", 1000)
        assert open_uni.get_bids("COMP6451") == open_uni.get_bids("COMP6451")
        assert open_uni.get_course("COMP6451") == open_uni.get_course("COMP6451")


# =============================================================================
# Settlement
# =============================================================================


class TestSettlement:

    def test_top_quota_accepted(self, accounts, clock):
        """Quota 2 with bids 1200, 800, 1000, 600, 600: the 1200 and 1000 bidders win."""
        chief, admin, lecturer = accounts[0], accounts[1], accounts[9]
        uni = University(chief.address, clock=clock)
        uni.init(chief.address, max_uoc=18, fee_per_uoc=1000)
        uni.add_admins(chief.address, [admin.address])
        uni.add_lecturer(admin.address, lecturer.address)
        uni.create_course(admin.address, "X", 2, 6, lecturer.address)

        students = accounts[3:8]
        for kp in students:
            signature = sign_recoverable(enrollment_hash(uni.instance_id, kp.address), admin.private_key)
            uni.enroll(kp.address, signature)
            uni.pay_fees(kp.address, 18, 18000)

        uni.start_bidding_round(admin.address, 10)
        for kp, amount in zip(students, [1200, 800, 1000, 600, 600]):
            uni.make_bid(kp.address, "X", amount)

        clock.advance(11)
        result = uni.close_bidding(admin.address)

        assert set(uni.get_accepted_students("X")) == {students[0].address, students[2].address}
        assert [uni.get_balance(kp.address) for kp in students] == [600, 1800, 800, 1800, 1800]
        assert result.total_burned == 2200
        assert uni.ledger.total_supply == 5 * 1800 - 2200
        assert uni.get_bids("X") == []
        assert all(uni.get_unreserved_balance(kp.address) == uni.get_balance(kp.address) for kp in students)

    def _original_round(self, uni, accounts, clock):
        s3, s4, s5 = addr(accounts, 3), addr(accounts, 4), addr(accounts, 5)
        uni.start_bidding_round(addr(accounts, 1), 10)
        uni.make_bid(s3, "COMP1511", 500)
        uni.make_bid(s3, "COMP6451", 1000)
        uni.make_bid(s3, "COMP3151", 200)
        uni.make_bid(s4, "COMP6451", 800)
        uni.make_bid(s5, "COMP6451", 1050)
        uni.change_bid(s3, "COMP6451", 1100)
        uni.remove_bid(s3, "COMP6451")
        uni.make_bid(s3, "COMP6451", 1100)
        clock.advance(15)
        return uni.close_bidding(addr(accounts, 1))

    def test_multi_course_round_keeping_other_bids(self, accounts, clock):
        uni = build_university(accounts, clock, discard_on_accept=False)
        self._original_round(uni, accounts, clock)

        s3, s4, s5 = addr(accounts, 3), addr(accounts, 4), addr(accounts, 5)
        assert uni.get_accepted_students("COMP1511") == [s3]
        assert set(uni.get_accepted_students("COMP6451")) == {s3, s5}
        assert uni.get_accepted_students("COMP3151") == [s3]
        assert uni.get_accepted_students("COMP1521") == []
        assert uni.get_accepted_students("COMP9517") == []
        assert uni.get_balance(s3) == 0
        assert uni.get_balance(s4) == 1800
        assert uni.get_balance(s5) == 750
        assert uni.get_balance(addr(accounts, 6)) == 1200
        assert uni.get_balance(addr(accounts, 7)) == 1200

    def test_multi_course_round_discarding_other_bids(self, uni, accounts, clock):
        result = self._original_round(uni, accounts, clock)

        s3, s5 = addr(accounts, 3), addr(accounts, 5)
        # COMP6451 is settled first; s3's bids on the later courses are dropped
        assert set(uni.get_accepted_students("COMP6451")) == {s3, s5}
        assert uni.get_accepted_students("COMP1511") == []
        assert uni.get_accepted_students("COMP3151") == []
        assert {(d.course_code, d.claimant) for d in result.discards} == {
            ("COMP1511", s3), ("COMP3151", s3),
        }
        assert uni.get_balance(s3) == 700
        assert uni.get_balance(s5) == 750
        assert uni.get_balance(addr(accounts, 4)) == 1800

    def test_awarded_weight_carries_into_next_round(self, uni, accounts, clock):
        s6 = addr(accounts, 6)
        uni.start_bidding_round(addr(accounts, 1), 10)
        uni.make_bid(s6, "COMP9517", 100)
        clock.advance(11)
        uni.close_bidding(addr(accounts, 1))
        assert uni.get_accepted_students("COMP9517") == [s6]

        uni.start_bidding_round(addr(accounts, 1), 10)
        uni.make_bid(s6, "COMP1511", 100)
        # 12 UOC paid, 6 awarded and 6 pending
        with pytest.raises(BudgetExceeded):
            uni.make_bid(s6, "COMP3151", 100)
        with pytest.raises(DuplicateBid):
            uni.make_bid(s6, "COMP9517", 100)

    def test_stats(self, open_uni, accounts):
        open_uni.make_bid(addr(accounts, 3), "COMP6451", 1000)
        stats = open_uni.stats()
        assert stats["courses"] == 5
        assert stats["open_bids"] == 1
        assert stats["round"]["open"] is True
        assert stats["roles"]["Student"] == 5
        assert stats["ledger"]["total_supply"] == 3 * 1800 + 2 * 1200
