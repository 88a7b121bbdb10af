"""
Integration tests for checkpointing a university to SQLite and restoring it.

Tests cover:
1. Restoring state mid-round, including bid tie order and used nonces
2. Settlement history
3. Completed courses recorded through the university
4. Failed checkpoint writes
5. Concurrent callers
"""

import sqlite3
import threading

import pytest

from seatbid.core.authorization import enrollment_hash, transfer_hash
from seatbid.core.config import UniversityConfig
from seatbid.core.errors import ReplayedNonce
from seatbid.core.storage import StorageManager
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
def keys():
    names = ["chief", "admin", "lecturer", "s1", "s2", "s3"]
    return {name: generate_keypair() for name in names}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage(tmp_path):
    manager = StorageManager(tmp_path / "data")
    yield manager
    manager.close()


@pytest.fixture
def uni(keys, clock, storage):
    """Checkpointing university with three paying students and an open round."""
    chief, admin, lecturer = keys["chief"], keys["admin"], keys["lecturer"]
    uni = University(chief.address, storage=storage, clock=clock)
    uni.init(chief.address, max_uoc=18, fee_per_uoc=1000)
    uni.add_admins(chief.address, [admin.address])
    uni.add_lecturer(admin.address, lecturer.address)
    uni.create_course(admin.address, "COMP6451", 2, 6, lecturer.address)
    uni.create_course(admin.address, "COMP4212", 3, 6, lecturer.address, ["COMP3441"])

    for name in ("s1", "s2", "s3"):
        signature = sign_recoverable(enrollment_hash(uni.instance_id, keys[name].address), admin.private_key)
        uni.enroll(keys[name].address, signature)
        uni.pay_fees(keys[name].address, 18, 18000)

    uni.start_bidding_round(admin.address, 10)
    return uni


# =============================================================================
# Restore
# =============================================================================


class TestRestore:

    def test_nothing_stored(self, tmp_path):
        empty = StorageManager(tmp_path / "empty")
        with pytest.raises(LookupError):
            University.load(empty)
        empty.close()

    def test_restore_mid_round(self, uni, keys, clock, storage):
        s1, s2, s3 = keys["s1"].address, keys["s2"].address, keys["s3"].address
        uni.make_bid(s1, "COMP6451", 900)
        uni.make_bid(s2, "COMP6451", 900)
        uni.make_bid(s3, "COMP6451", 1000)

        signature = sign_recoverable(transfer_hash(uni.instance_id, s1, 100, 7), keys["s2"].private_key)
        uni.receive_transfer(s1, signature, 100, 7, 100)

        restored = University.load(storage, clock=clock)

        assert restored.to_dict() == uni.to_dict()
        assert restored.instance_id == uni.instance_id
        assert restored.get_bids("COMP6451") == [(s3, 1000), (s1, 900), (s2, 900)]
        assert restored.get_balance(s1) == 1900
        assert restored.get_unreserved_balance(s2) == 800
        assert restored.get_paid_uoc(s3) == 18
        assert restored.get_course("COMP4212")["prerequisites"] == ["COMP3441"]
        assert restored.is_bidding_open()
        assert restored.fees.treasury == 54100

        with pytest.raises(ReplayedNonce):
            restored.receive_transfer(s1, signature, 100, 7, 100)

    def test_restored_university_settles(self, uni, keys, clock, storage):
        s1, s2 = keys["s1"].address, keys["s2"].address
        uni.make_bid(s1, "COMP6451", 900)
        uni.make_bid(s2, "COMP6451", 400)

        restored = University.load(storage, clock=clock)
        clock.advance(11)
        restored.close_bidding(keys["admin"].address)

        reloaded = University.load(storage, clock=clock)
        assert set(reloaded.get_accepted_students("COMP6451")) == {s1, s2}
        assert reloaded.get_balance(s1) == 900
        assert reloaded.get_balance(s2) == 1400
        assert reloaded.get_bids("COMP6451") == []
        assert not reloaded.round.is_open

    def test_settings_follow_snapshot(self, keys, clock, tmp_path):
        storage = StorageManager(tmp_path / "keep")
        University(keys["chief"].address, config=UniversityConfig(discard_on_accept=False), storage=storage)
        assert University.load(storage).config.discard_on_accept is False
        storage.close()

    def test_new_university_refuses_occupied_storage(self, uni, keys, storage):
        before = storage.load_snapshot()

        with pytest.raises(ValueError, match="University.load"):
            University(keys["chief"].address, storage=storage)

        assert storage.load_snapshot() == before
        assert University.load(storage).instance_id == uni.instance_id


# =============================================================================
# Settlement History
# =============================================================================


class TestSettlementHistory:

    def test_one_record_per_round(self, uni, keys, clock, storage):
        admin = keys["admin"].address
        s1 = keys["s1"].address

        uni.make_bid(s1, "COMP6451", 500)
        clock.advance(11)
        uni.close_bidding(admin)

        uni.start_bidding_round(admin, 10)
        clock.advance(11)
        uni.close_bidding(admin)

        history = storage.get_settlements()
        assert [record["round_number"] for record in history] == [1, 2]
        assert history[0]["awards"] == [["COMP6451", s1, 500]]
        assert history[0]["summary"]["burned"] == 500
        assert history[0]["closed_at"] == clock.now - 11
        assert history[1]["awards"] == []


# =============================================================================
# Student Record
# =============================================================================


class TestStudentRecord:

    def test_passed_course_survives_restart(self, uni, keys, clock, storage):
        chief, admin = keys["chief"].address, keys["admin"].address
        s1 = keys["s1"].address

        uni.add_record_admins(chief, [admin])
        uni.pass_course(admin, "COMP3441", s1)

        restored = University.load(storage, clock=clock)
        assert restored.student_record.has_completed(s1, "COMP3441")
        assert restored.student_record.admins == {admin}

        restored.make_bid(s1, "COMP4212", 300)
        assert restored.get_bid("COMP4212", s1) == 300


# =============================================================================
# Failed Checkpoints
# =============================================================================


class TestFailedCheckpoint:

    @staticmethod
    def break_disk(storage, monkeypatch):
        def fail(*args, **kwargs):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(storage.adapter, "persist_checkpoint", fail)

    def test_bid_rolled_back(self, uni, keys, clock, storage, monkeypatch):
        s1, s2 = keys["s1"].address, keys["s2"].address
        uni.make_bid(s1, "COMP6451", 400)
        before = uni.to_dict()

        self.break_disk(storage, monkeypatch)
        with pytest.raises(sqlite3.OperationalError):
            uni.make_bid(s2, "COMP6451", 500)

        assert uni.to_dict() == before
        assert uni.get_bids("COMP6451") == [(s1, 400)]
        assert uni.get_unreserved_balance(s2) == 1800

        monkeypatch.undo()
        uni.make_bid(s2, "COMP6451", 500)
        assert University.load(storage, clock=clock).to_dict() == uni.to_dict()

    def test_settlement_rolled_back(self, uni, keys, clock, storage, monkeypatch):
        s1 = keys["s1"].address
        uni.make_bid(s1, "COMP6451", 400)
        clock.advance(11)

        self.break_disk(storage, monkeypatch)

        with pytest.raises(sqlite3.OperationalError):
            uni.close_bidding(keys["admin"].address)

        assert uni.round.is_open
        assert uni.last_settlement is None
        assert uni.get_balance(s1) == 1800
        assert uni.get_accepted_students("COMP6451") == []
        assert uni.get_bids("COMP6451") == [(s1, 400)]
        assert storage.get_settlements() == []


# =============================================================================
# Concurrency
# =============================================================================


class TestConcurrency:

    def test_concurrent_bids(self, keys, clock):
        """Students bidding from separate threads all end up in one consistent list."""
        chief, admin, lecturer = keys["chief"], keys["admin"], keys["lecturer"]
        uni = University(chief.address, clock=clock)
        uni.init(chief.address, max_uoc=18, fee_per_uoc=0)
        uni.add_admins(chief.address, [admin.address])
        uni.add_lecturer(admin.address, lecturer.address)
        uni.create_course(admin.address, "COMP6451", 5, 6, lecturer.address)

        students = [generate_keypair() for _ in range(20)]
        for kp in students:
            signature = sign_recoverable(enrollment_hash(uni.instance_id, kp.address), admin.private_key)
            uni.enroll(kp.address, signature)
            uni.pay_fees(kp.address, 6, 0)
        uni.start_bidding_round(admin.address, 10)

        errors = []

        def bid(kp, amount):
            try:
                uni.make_bid(kp.address, "COMP6451", amount)
            except Exception as e:
                errors.append(e)

        threads = [
            threading.Thread(target=bid, args=(kp, 100 + i * 10))
            for i, kp in enumerate(students)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        amounts = [amount for _, amount in uni.get_bids("COMP6451")]
        assert amounts == sorted(amounts, reverse=True)
        assert len(amounts) == 20

        clock.advance(11)
        result = uni.close_bidding(admin.address)
        assert result.total_burned == sum(range(250, 300, 10))
