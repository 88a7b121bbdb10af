"""
University - Orchestrates the admission auction for SeatBid.

This module ties together all components of a university session:
- Role registry (who may do what)
- Fee manager (payments become admission tokens)
- Credit ledger (token balances)
- Course catalog and bid lists
- Bidding round controller
- Settlement at round close
- Optional durable checkpointing via StorageManager

Operation Flow:
---------------
    chief:    init -> set_fee / add_admins / transfer_chief
    admin:    add_lecturer -> create_course -> start_bidding_round
    student:  enroll (admin-signed) -> pay_fees -> make_bid / change_bid /
              remove_bid / receive_transfer (seller-signed)
    admin:    close_bidding -> settlement burns winning bids, releases the rest
    record:   add_record_admins (record chief) -> pass_course (record admin)

Every public operation runs under one re-entrant lock, so callers on
different threads observe operations one at a time. A failed operation
raises and leaves all state as it was, including when the checkpoint
write itself fails.
"""

import functools
import secrets
import threading
import time
from typing import Callable, Iterable, List, Optional, Tuple

from seatbid.core.auction import (
    BiddingRound,
    CourseCatalog,
    SettlementResult,
    plan_settlement,
)
from seatbid.core.authorization import (
    NonceRegistry,
    enrollment_hash,
    recover_signer,
    transfer_hash,
    waiver_hash,
)
from seatbid.core.config import UniversityConfig
from seatbid.core.errors import (
    AuthorizationError,
    InsufficientFunds,
    InvalidAmount,
    InvalidSignature,
    PrerequisiteNotMet,
)
from seatbid.core.registry import PrerequisiteOracle, Role, RoleRegistry, StudentRecord
from seatbid.core.state import CreditLedger
from seatbid.core.storage import StorageManager
from seatbid.core.tokenomics import FeeManager, FeeSchedule
from seatbid.utils.logger import get_logger
from seatbid.utils.validation import validate_amount, validate_identity, validate_int

logger = get_logger("university")


def synchronized(method):
    """Run a University method while holding its lock."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper


class University:
    """
    A single university session.

    Attributes:
        config: University configuration
        instance_id: 32-byte id bound into every signed message
        roles: Role registry
        ledger: Admission token balances
        catalog: Courses, bids and accepted students
        round: Bidding round controller
        fees: Fee schedule and treasury
        student_record: Prerequisite oracle
        nonces: Used transfer nonces per seller
        storage: Optional storage manager checkpointed after each change
        last_settlement: Result of the most recent close_bidding
    """

    def __init__(
        self,
        chief: str,
        config: Optional[UniversityConfig] = None,
        student_record: Optional[PrerequisiteOracle] = None,
        storage: Optional[StorageManager] = None,
        clock: Callable[[], float] = time.time,
        instance_id: Optional[bytes] = None,
    ):
        self.config = config or UniversityConfig()
        self.instance_id = instance_id or secrets.token_bytes(32)
        if len(self.instance_id) != 32:
            raise ValueError("instance_id must be 32 bytes")

        self.roles = RoleRegistry(chief)
        self.ledger = CreditLedger()
        self.catalog = CourseCatalog()
        self.round = BiddingRound(clock=clock)
        self.fees = FeeManager(FeeSchedule(tokens_per_uoc=self.config.tokens_per_uoc))
        self.student_record = student_record if student_record is not None else StudentRecord(chief)
        self.nonces = NonceRegistry()
        self.storage = storage
        self.last_settlement: Optional[SettlementResult] = None

        self._clock = clock
        self._lock = threading.RLock()
        self._saved: Optional[dict] = None

        if storage is not None and storage.has_snapshot():
            raise ValueError(f"{storage.db_path} already holds a university; use University.load to resume it")

        logger.info(f"University created: chief={chief} instance={self.instance_id.hex()[:16]}...")
        self._checkpoint()

    # =========================================================================
    # Chief Operations
    # =========================================================================

    @synchronized
    def init(self, caller: str, max_uoc: Optional[int] = None, fee_per_uoc: Optional[int] = None) -> None:
        """
        Open the session for fee payments.

        Defaults come from the configuration.
        """
        self.roles.require(caller, Role.CHIEF)
        self.fees.configure(
            self.config.max_uoc if max_uoc is None else max_uoc,
            self.config.fee_per_uoc if fee_per_uoc is None else fee_per_uoc,
        )
        self._checkpoint()

    @synchronized
    def set_fee(self, caller: str, fee_per_uoc: int) -> None:
        self.roles.require(caller, Role.CHIEF)
        self.fees.set_fee(fee_per_uoc)
        logger.info(f"Fee per UOC set to {fee_per_uoc}")
        self._checkpoint()

    @synchronized
    def transfer_chief(self, caller: str, new_chief: str) -> None:
        self.roles.transfer_chief(caller, new_chief)
        self._checkpoint()

    @synchronized
    def add_admins(self, caller: str, admins: Iterable[str]) -> None:
        self.roles.add_admins(caller, admins)
        self._checkpoint()

    @synchronized
    def remove_admin(self, caller: str, admin: str) -> None:
        self.roles.remove_admin(caller, admin)
        self._checkpoint()

    # =========================================================================
    # Admin Operations
    # =========================================================================

    @synchronized
    def add_lecturer(self, caller: str, lecturer: str) -> None:
        self.roles.add_lecturer(caller, lecturer)
        self._checkpoint()

    @synchronized
    def create_course(
        self,
        caller: str,
        code: str,
        quota: int,
        weight: int,
        owner: str,
        prerequisites: Iterable[str] = (),
    ) -> None:
        """
        Create a course owned by a lecturer.

        Prerequisites may name courses that do not exist yet.
        """
        self.roles.require(caller, Role.ADMIN)
        if self.roles.role_of(owner) != Role.LECTURER:
            raise AuthorizationError(f"Course owner {owner} is not a lecturer")

        self.catalog.create_course(code, quota, weight, owner, prerequisites)
        self._checkpoint()

    @synchronized
    def start_bidding_round(self, caller: str, duration_seconds: Optional[int] = None) -> int:
        """
        Open a bidding round.

        Returns:
            The round's end time
        """
        self.roles.require(caller, Role.ADMIN)
        if duration_seconds is None:
            duration_seconds = self.config.default_round_duration
        end_time = self.round.open(duration_seconds)
        self._checkpoint()
        return end_time

    @synchronized
    def close_bidding(self, caller: str) -> SettlementResult:
        """
        Close the round after its deadline and settle every course.

        Winning bids are burned; every other reservation lapses.

        Raises:
            AuthorizationError: caller is not an admin
            RoundClosed: no round is open
            TooEarly: the deadline has not passed
        """
        self.roles.require(caller, Role.ADMIN)
        self.round.ensure_closable()

        result = plan_settlement(
            self.catalog,
            discard_on_accept=self.config.discard_on_accept,
            round_number=self.round.round_number,
        )

        self.ledger.burn_many(result.burns())
        self.catalog.apply_settlement(result)
        self.round.close()

        logger.info(
            f"Round {result.round_number} settled: {len(result.awards)} seats awarded, "
            f"{result.total_burned} tokens burned"
        )

        record = result.to_dict()
        record["closed_at"] = self.round.now()
        self._checkpoint(settlement=record)
        self.last_settlement = result
        return result

    # =========================================================================
    # Student Record Operations
    # =========================================================================

    @synchronized
    def add_record_admins(self, caller: str, admins: Iterable[str]) -> None:
        """Let `admins` record passed courses. Caller must be the record's chief."""
        self._record().add_admins(caller, admins)
        self._checkpoint()

    @synchronized
    def pass_course(self, caller: str, code: str, student: str) -> None:
        """
        Record that `student` completed `code`, satisfying it as a prerequisite.

        Raises:
            AuthorizationError: caller is not a record administrator
            ValueError: malformed course code
        """
        self._record().pass_course(caller, code, student)
        self._checkpoint()

    # =========================================================================
    # Student Operations
    # =========================================================================

    @synchronized
    def enroll(self, caller: str, signature: bytes) -> None:
        """
        Enrol the caller as a student using an administrator's signed approval.

        Raises:
            AuthorizationError: caller already holds a role
            InvalidSignature: signature not made by an administrator
        """
        self._check_identity(caller)
        self.roles.require(caller, Role.UNKNOWN)

        signer = recover_signer(enrollment_hash(self.instance_id, caller), signature)
        if self.roles.role_of(signer) != Role.ADMIN:
            logger.warning(f"Enrolment of {caller} signed by non-admin {signer}")
            raise InvalidSignature(f"Enrolment approval signed by {signer}, who is not an administrator")

        self.roles.add_student(caller)
        logger.info(f"Student enrolled: {caller} (approved by {signer})")
        self._checkpoint()

    @synchronized
    def pay_fees(self, caller: str, uoc: int, payment: int) -> int:
        """
        Pay for units of credit and receive admission tokens.

        Returns:
            Tokens minted
        """
        self.roles.require(caller, Role.STUDENT)
        receipt = self.fees.pay_fees(caller, uoc, payment)
        self.ledger.mint(caller, receipt.tokens_minted)

        logger.info(f"{caller[:10]}... paid for {uoc} UOC, minted {receipt.tokens_minted} tokens")
        self._checkpoint()
        return receipt.tokens_minted

    @synchronized
    def receive_transfer(self, caller: str, signature: bytes, amount: int, nonce: int, payment: int) -> str:
        """
        Receive tokens from another student who signed the transfer.

        The seller signs (receiver, amount, nonce); the receiver submits it
        along with the transfer fee. Tokens reserved by the seller's live
        bids cannot be transferred.

        Returns:
            The seller's address

        Raises:
            AuthorizationError: caller is not a student
            InvalidAmount: amount or payment is not a valid integer
            InvalidSignature: signature not made by another student
            ReplayedNonce: the seller already used this nonce
            InsufficientPayment: payment below the transfer fee
            InsufficientFunds: amount exceeds the seller's unreserved balance
        """
        self.roles.require(caller, Role.STUDENT)

        is_valid, error = validate_amount(amount)
        if not is_valid:
            raise InvalidAmount(error)
        is_valid, error = validate_int(payment, "payment", min_value=0)
        if not is_valid:
            raise InvalidAmount(error)
        is_valid, error = validate_int(nonce, "nonce", min_value=0, max_value=2**256 - 1)
        if not is_valid:
            raise InvalidSignature(error)

        seller = recover_signer(transfer_hash(self.instance_id, caller, amount, nonce), signature)
        if self.roles.role_of(seller) != Role.STUDENT:
            logger.warning(f"Transfer to {caller} signed by non-student {seller}")
            raise InvalidSignature(f"Transfer signed by {seller}, who is not a student")
        if seller == caller:
            raise InvalidSignature("Seller and receiver must be different students")

        self.nonces.check(seller, nonce)
        self.fees.check_transfer_fee(amount, payment)

        available = self.catalog.unreserved(seller, self.ledger.balance(seller))
        if amount > available:
            raise InsufficientFunds(f"Seller {seller} has {available} unreserved tokens, transfer needs {amount}")

        self.nonces.consume(seller, nonce)
        self.ledger.transfer(seller, caller, amount)
        self.fees.collect_transfer_fee(payment)

        logger.info(f"Transfer of {amount} tokens from {seller[:10]}... to {caller[:10]}... (fee {payment})")
        self._checkpoint()
        return seller

    @synchronized
    def make_bid(self, caller: str, code: str, amount: int) -> None:
        """
        Bid on a course during an open round.

        Raises:
            AuthorizationError: caller is not a student
            RoundClosed: bidding is not open
            NoSuchResource: unknown course
            PrerequisiteNotMet: a prerequisite has not been completed
            InvalidAmount, DuplicateBid, InsufficientFunds, BudgetExceeded:
                see CourseCatalog.place_bid
        """
        self.roles.require(caller, Role.STUDENT)
        self.round.ensure_accepting_bids()
        course = self.catalog.get_course(code)

        missing = [
            prerequisite for prerequisite in course.prerequisites
            if not self.student_record.has_completed(caller, prerequisite)
        ]
        if missing:
            raise PrerequisiteNotMet(f"{caller} has not completed {', '.join(missing)} required for {code}")

        self._place_bid(caller, code, amount)

    @synchronized
    def make_bid_with_signature(self, caller: str, code: str, amount: int, signature: bytes) -> None:
        """
        Bid on a course, skipping its prerequisites with the owning lecturer's waiver.

        Raises:
            InvalidSignature: waiver not signed by the course's lecturer
        """
        self.roles.require(caller, Role.STUDENT)
        self.round.ensure_accepting_bids()
        course = self.catalog.get_course(code)

        signer = recover_signer(waiver_hash(self.instance_id, caller, code), signature)
        if signer != course.owner:
            logger.warning(f"Waiver for {caller} on {code} signed by {signer}, not the course lecturer")
            raise InvalidSignature(f"Waiver for {code} must be signed by its lecturer {course.owner}")

        self._place_bid(caller, code, amount)

    @synchronized
    def change_bid(self, caller: str, code: str, new_amount: int) -> int:
        """
        Change a live bid. The bid is repositioned for the new amount.

        Returns:
            The previous amount
        """
        self.roles.require(caller, Role.STUDENT)
        self.round.ensure_accepting_bids()
        old_amount = self.catalog.change_bid(code, caller, new_amount, self.ledger.balance(caller))
        self._checkpoint()
        return old_amount

    @synchronized
    def remove_bid(self, caller: str, code: str) -> int:
        """
        Withdraw a live bid.

        Returns:
            The withdrawn amount
        """
        self.roles.require(caller, Role.STUDENT)
        self.round.ensure_accepting_bids()
        amount = self.catalog.remove_bid(code, caller)
        self._checkpoint()
        return amount

    def _place_bid(self, caller: str, code: str, amount: int) -> None:
        self.catalog.place_bid(
            code,
            caller,
            amount,
            balance=self.ledger.balance(caller),
            budget_ceiling=self.fees.get_paid_uoc(caller),
        )
        self._checkpoint()

    # =========================================================================
    # Queries
    # =========================================================================

    @synchronized
    def get_role(self, identity: str) -> str:
        return self.roles.role_of(identity).value

    @synchronized
    def get_balance(self, identity: str) -> int:
        return self.ledger.balance(identity)

    @synchronized
    def get_unreserved_balance(self, identity: str) -> int:
        """Balance not held against live bids."""
        return self.catalog.unreserved(identity, self.ledger.balance(identity))

    @synchronized
    def get_paid_uoc(self, identity: str) -> int:
        return self.fees.get_paid_uoc(identity)

    @synchronized
    def get_bid(self, code: str, student: str) -> int:
        return self.catalog.get_bid(code, student)

    @synchronized
    def get_bids(self, code: str) -> List[Tuple[str, int]]:
        """Bids on a course, highest first, ties in arrival order."""
        return self.catalog.get_bids(code)

    @synchronized
    def get_accepted_students(self, code: str) -> List[str]:
        return self.catalog.get_accepted(code)

    @synchronized
    def get_courses(self) -> List[str]:
        """Course codes in creation order."""
        return self.catalog.codes()

    @synchronized
    def get_course(self, code: str) -> dict:
        return self.catalog.get_course(code).to_dict()

    @synchronized
    def get_bidding_end_time(self) -> Optional[int]:
        return self.round.end_time

    @synchronized
    def is_bidding_open(self) -> bool:
        return self.round.accepting_bids()

    @synchronized
    def stats(self) -> dict:
        """Get university statistics."""
        return {
            "round": {
                "number": self.round.round_number,
                "open": self.round.is_open,
                "end_time": self.round.end_time,
                "time_remaining": self.round.time_remaining(),
            },
            "roles": {role.value: len(self.roles.members(role)) for role in Role if role != Role.UNKNOWN},
            "courses": len(self.catalog.codes()),
            "open_bids": self.catalog.open_bid_count(),
            "ledger": self.ledger.stats(),
            "fees": self.fees.stats(),
            "nonces_used": len(self.nonces),
        }

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _check_identity(identity: str) -> None:
        is_valid, error = validate_identity(identity)
        if not is_valid:
            raise AuthorizationError(error)

    def _record(self) -> StudentRecord:
        if not isinstance(self.student_record, StudentRecord):
            raise TypeError(f"{type(self.student_record).__name__} is an external prerequisite oracle")
        return self.student_record

    def _checkpoint(self, settlement: Optional[dict] = None) -> None:
        """
        Persist the current state. If the write fails, in-memory state is
        rolled back to the last successful checkpoint before re-raising.
        """
        if self.storage is None:
            return

        snapshot = self.to_dict()
        try:
            self.storage.save_snapshot(snapshot, settlement=settlement)
        except Exception:
            logger.error("Checkpoint failed, rolling back to the last stored state")
            if self._saved is not None:
                self._restore(self._saved)
            raise
        self._saved = snapshot

    def _restore(self, data: dict, restore_record: bool = True) -> None:
        clock = self._clock
        self.ledger = CreditLedger.from_dict(data["ledger"])
        self.roles = RoleRegistry.from_dict(data["roles"])
        self.fees = FeeManager.from_dict(data["fees"])
        self.catalog = CourseCatalog.from_dict(data["catalog"])
        self.round = BiddingRound.from_dict(data["round"], clock=clock)
        self.nonces = NonceRegistry.from_dict(data.get("nonces", {}))
        if restore_record and "record" in data and isinstance(self.student_record, StudentRecord):
            self.student_record = StudentRecord.from_dict(data["record"])

    # =========================================================================
    # Persistence
    # =========================================================================

    @synchronized
    def to_dict(self) -> dict:
        snapshot = {
            "meta": {
                "instance_id": self.instance_id.hex(),
                "discard_on_accept": self.config.discard_on_accept,
            },
            "ledger": self.ledger.to_dict(),
            "roles": self.roles.to_dict(),
            "fees": self.fees.to_dict(),
            "catalog": self.catalog.to_dict(),
            "round": self.round.to_dict(),
            "nonces": self.nonces.to_dict(),
        }
        if isinstance(self.student_record, StudentRecord):
            snapshot["record"] = self.student_record.to_dict()
        return snapshot

    @classmethod
    def from_dict(
        cls,
        data: dict,
        config: Optional[UniversityConfig] = None,
        student_record: Optional[PrerequisiteOracle] = None,
        clock: Callable[[], float] = time.time,
    ) -> "University":
        """Rebuild a university from a to_dict() snapshot."""
        if config is None:
            config = UniversityConfig(discard_on_accept=data["meta"].get("discard_on_accept", True))
        if student_record is None and "record" in data:
            student_record = StudentRecord.from_dict(data["record"])

        university = cls(
            chief=data["roles"]["chief"],
            config=config,
            student_record=student_record,
            clock=clock,
            instance_id=bytes.fromhex(data["meta"]["instance_id"]),
        )
        university._restore(data, restore_record=False)
        return university

    @classmethod
    def load(
        cls,
        storage: StorageManager,
        config: Optional[UniversityConfig] = None,
        student_record: Optional[PrerequisiteOracle] = None,
        clock: Callable[[], float] = time.time,
    ) -> "University":
        """
        Restore the university persisted in `storage` and keep checkpointing to it.

        Raises:
            LookupError: storage holds no university
        """
        snapshot = storage.load_snapshot()
        if snapshot is None:
            raise LookupError(f"No university stored at {storage.db_path}")

        university = cls.from_dict(snapshot, config=config, student_record=student_record, clock=clock)
        university.storage = storage
        university._saved = snapshot
        logger.info(
            f"University loaded from {storage.db_path}: "
            f"{len(university.catalog.codes())} courses, supply={university.ledger.total_supply}"
        )
        return university

    def __repr__(self) -> str:
        return (
            f"University(courses={len(self.catalog.codes())}, "
            f"round={self.round.round_number}, open={self.round.is_open})"
        )
