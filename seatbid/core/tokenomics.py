"""
Tokenomics - Fee schedule and payment accounting for SeatBid.

Manages:
- Paying fees for units of credit (UOC) and the admission tokens they mint
- Each student's paid-for UOC, which is their bidding budget ceiling
- Peer transfer fees
- The university treasury that collects payments
"""

from dataclasses import dataclass
from typing import Dict, Optional

from seatbid.core.config import TOKENS_PER_UOC, TRANSFER_FEE_PERCENT
from seatbid.core.errors import (
    BudgetExceeded,
    InsufficientPayment,
    InvalidAmount,
    SystemNotInitialized,
)
from seatbid.utils.logger import get_logger
from seatbid.utils.validation import validate_int

logger = get_logger("tokenomics")


@dataclass
class FeeSchedule:
    """Current session's economic parameters."""
    max_uoc: int = 0                        # Max UOC purchasable per student
    fee_per_uoc: int = 0                    # Payment units per UOC
    tokens_per_uoc: int = TOKENS_PER_UOC    # Tokens minted per UOC
    transfer_fee_percent: int = TRANSFER_FEE_PERCENT

    @property
    def initialized(self) -> bool:
        return self.max_uoc > 0


@dataclass
class PaymentReceipt:
    """Receipt for a fee payment."""
    student: str
    uoc: int
    payment: int
    required: int
    tokens_minted: int


class FeeManager:
    """
    Converts external payments into token mints and tracks the treasury.

    The manager only decides how many tokens a payment buys; the caller
    mints them on the ledger.
    """

    def __init__(self, schedule: Optional[FeeSchedule] = None):
        self.schedule = schedule or FeeSchedule()

        # Student -> UOC paid for this session
        self.paid_uoc: Dict[str, int] = {}

        # Totals
        self.treasury: int = 0
        self.total_fee_payments: int = 0
        self.total_transfer_fees: int = 0

    # =========================================================================
    # Configuration
    # =========================================================================

    def configure(self, max_uoc: int, fee_per_uoc: int) -> None:
        """Set the session's UOC ceiling and fee (the chief's init)."""
        is_valid, error = validate_int(max_uoc, "max_uoc", min_value=1)
        if not is_valid:
            raise InvalidAmount(error)
        is_valid, error = validate_int(fee_per_uoc, "fee_per_uoc", min_value=0)
        if not is_valid:
            raise InvalidAmount(error)

        self.schedule.max_uoc = max_uoc
        self.schedule.fee_per_uoc = fee_per_uoc
        logger.info(f"Fee schedule set: max_uoc={max_uoc}, fee_per_uoc={fee_per_uoc}")

    def set_fee(self, fee_per_uoc: int) -> None:
        is_valid, error = validate_int(fee_per_uoc, "fee_per_uoc", min_value=0)
        if not is_valid:
            raise InvalidAmount(error)
        self.schedule.fee_per_uoc = fee_per_uoc

    # =========================================================================
    # Fee Calculation
    # =========================================================================

    def calculate_fee(self, uoc: int) -> int:
        """Payment required for `uoc` units of credit."""
        return uoc * self.schedule.fee_per_uoc

    def transfer_fee(self, amount: int) -> int:
        """
        Payment required to transfer `amount` tokens between students.

        A fixed percentage of what the tokens cost when paid for as fees.
        """
        value = amount * self.schedule.fee_per_uoc
        return value * self.schedule.transfer_fee_percent // (100 * self.schedule.tokens_per_uoc)

    def get_paid_uoc(self, student: str) -> int:
        return self.paid_uoc.get(student, 0)

    # =========================================================================
    # Payments
    # =========================================================================

    def pay_fees(self, student: str, uoc: int, payment: int) -> PaymentReceipt:
        """
        Accept a fee payment for `uoc` units of credit.

        Raises:
            SystemNotInitialized: fee schedule not configured
            InvalidAmount: uoc or payment is not a valid integer
            BudgetExceeded: student's total paid UOC would exceed max_uoc
            InsufficientPayment: payment below uoc * fee_per_uoc
        """
        if not self.schedule.initialized:
            raise SystemNotInitialized("Fees cannot be paid before the university is initialised")

        is_valid, error = validate_int(uoc, "uoc", min_value=1)
        if not is_valid:
            raise InvalidAmount(error)
        is_valid, error = validate_int(payment, "payment", min_value=0)
        if not is_valid:
            raise InvalidAmount(error)

        total_uoc = self.get_paid_uoc(student) + uoc
        if total_uoc > self.schedule.max_uoc:
            raise BudgetExceeded(
                f"Paying for {uoc} UOC brings total to {total_uoc}, maximum is {self.schedule.max_uoc}"
            )

        required = self.calculate_fee(uoc)
        if payment < required:
            raise InsufficientPayment(f"Payment {payment} below required fee {required}")

        self.paid_uoc[student] = total_uoc
        self.treasury += payment
        self.total_fee_payments += payment

        receipt = PaymentReceipt(
            student=student,
            uoc=uoc,
            payment=payment,
            required=required,
            tokens_minted=uoc * self.schedule.tokens_per_uoc,
        )
        logger.debug(f"Fees paid by {student[:10]}...: {uoc} UOC for {payment}")
        return receipt

    def check_transfer_fee(self, amount: int, payment: int) -> int:
        """
        Raises:
            InsufficientPayment: payment below the transfer fee
        """
        required = self.transfer_fee(amount)
        if payment < required:
            raise InsufficientPayment(f"Transfer fee is {required}, got {payment}")
        return required

    def collect_transfer_fee(self, payment: int) -> None:
        self.treasury += payment
        self.total_transfer_fees += payment

    # =========================================================================
    # Utility
    # =========================================================================

    def stats(self) -> dict:
        """Get fee statistics."""
        return {
            "max_uoc": self.schedule.max_uoc,
            "fee_per_uoc": self.schedule.fee_per_uoc,
            "treasury_balance": self.treasury,
            "fee_payments": self.total_fee_payments,
            "transfer_fees": self.total_transfer_fees,
            "students_paid": len(self.paid_uoc),
        }

    def to_dict(self) -> dict:
        return {
            "max_uoc": self.schedule.max_uoc,
            "fee_per_uoc": self.schedule.fee_per_uoc,
            "tokens_per_uoc": self.schedule.tokens_per_uoc,
            "transfer_fee_percent": self.schedule.transfer_fee_percent,
            "paid_uoc": dict(self.paid_uoc),
            "treasury": self.treasury,
            "total_fee_payments": self.total_fee_payments,
            "total_transfer_fees": self.total_transfer_fees,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FeeManager":
        manager = cls(FeeSchedule(
            max_uoc=int(data.get("max_uoc", 0)),
            fee_per_uoc=int(data.get("fee_per_uoc", 0)),
            tokens_per_uoc=int(data.get("tokens_per_uoc", TOKENS_PER_UOC)),
            transfer_fee_percent=int(data.get("transfer_fee_percent", TRANSFER_FEE_PERCENT)),
        ))
        manager.paid_uoc = {k: int(v) for k, v in data.get("paid_uoc", {}).items()}
        manager.treasury = int(data.get("treasury", 0))
        manager.total_fee_payments = int(data.get("total_fee_payments", 0))
        manager.total_transfer_fees = int(data.get("total_transfer_fees", 0))
        return manager
