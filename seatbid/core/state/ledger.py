"""
Credit Ledger - Admission token balances for SeatBid.

Conceptual Background:
---------------------
The ledger is the only owner of token balances. Supply changes only
through two operations:

1. **Mint**: tokens created when a student pays fees
2. **Burn**: tokens destroyed when a bid is converted into a seat

Transfers move tokens between two students atomically and never change
total supply. Balances can never go negative: every debit is checked
against the current balance before any state is touched.
"""

from typing import Dict, Iterable, List, Tuple

from seatbid.core.errors import InsufficientFunds, InvalidAmount
from seatbid.utils.logger import get_logger
from seatbid.utils.validation import validate_amount

logger = get_logger("ledger")


class CreditLedger:
    """
    Integer token balances keyed by student address.

    Attributes:
        balances: Mapping of address to balance (zero balances are dropped)
        total_minted: Tokens created since genesis
        total_burned: Tokens destroyed since genesis
    """

    def __init__(self):
        self.balances: Dict[str, int] = {}
        self.total_minted: int = 0
        self.total_burned: int = 0

    # =========================================================================
    # State Access
    # =========================================================================

    @property
    def total_supply(self) -> int:
        """Tokens currently in circulation."""
        return self.total_minted - self.total_burned

    def balance(self, claimant: str) -> int:
        """Balance of an address; unknown addresses hold zero."""
        return self.balances.get(claimant, 0)

    def holders(self) -> List[str]:
        return sorted(self.balances)

    # =========================================================================
    # Mutations
    # =========================================================================

    def mint(self, claimant: str, amount: int) -> None:
        """
        Create tokens for a claimant.

        Raises:
            InvalidAmount: amount is negative or not an integer
        """
        self._check_amount(amount)
        if amount == 0:
            return

        self.balances[claimant] = self.balance(claimant) + amount
        self.total_minted += amount
        logger.debug(f"Minted {amount} to {claimant[:10]}... (balance={self.balances[claimant]})")

    def burn(self, claimant: str, amount: int) -> None:
        """
        Destroy tokens held by a claimant.

        Raises:
            InvalidAmount: amount is negative or not an integer
            InsufficientFunds: amount exceeds the balance
        """
        self._check_amount(amount)
        self._check_covered(claimant, amount)
        if amount == 0:
            return

        self._debit(claimant, amount)
        self.total_burned += amount
        logger.debug(f"Burned {amount} from {claimant[:10]}... (balance={self.balance(claimant)})")

    def burn_many(self, debits: Iterable[Tuple[str, int]]) -> int:
        """
        Burn a batch of amounts, all or nothing.

        The whole batch is checked (amounts summed per claimant) before any
        balance changes.

        Returns:
            Total burned
        """
        totals: Dict[str, int] = {}
        for claimant, amount in debits:
            self._check_amount(amount)
            totals[claimant] = totals.get(claimant, 0) + amount

        for claimant, amount in totals.items():
            self._check_covered(claimant, amount)

        for claimant, amount in totals.items():
            if amount:
                self._debit(claimant, amount)
                self.total_burned += amount

        burned = sum(totals.values())
        if burned:
            logger.debug(f"Burned {burned} across {len(totals)} holders")
        return burned

    def transfer(self, sender: str, receiver: str, amount: int) -> None:
        """
        Move tokens between two holders. Supply neutral.

        Raises:
            InvalidAmount: amount is negative or not an integer
            InsufficientFunds: amount exceeds the sender's balance
        """
        self._check_amount(amount)
        self._check_covered(sender, amount)
        if amount == 0 or sender == receiver:
            return

        self._debit(sender, amount)
        self.balances[receiver] = self.balance(receiver) + amount
        logger.debug(f"Transferred {amount} from {sender[:10]}... to {receiver[:10]}...")

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _check_amount(amount: int) -> None:
        is_valid, error = validate_amount(amount, allow_zero=True)
        if not is_valid:
            raise InvalidAmount(error)

    def _check_covered(self, claimant: str, amount: int) -> None:
        available = self.balance(claimant)
        if amount > available:
            raise InsufficientFunds(
                f"{claimant} holds {available} tokens, needs {amount}"
            )

    def _debit(self, claimant: str, amount: int) -> None:
        remaining = self.balance(claimant) - amount
        if remaining:
            self.balances[claimant] = remaining
        else:
            self.balances.pop(claimant, None)

    # =========================================================================
    # Persistence
    # =========================================================================

    def to_dict(self) -> dict:
        return {
            "balances": dict(self.balances),
            "total_minted": self.total_minted,
            "total_burned": self.total_burned,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CreditLedger":
        ledger = cls()
        ledger.balances = {k: int(v) for k, v in data.get("balances", {}).items() if int(v) > 0}
        ledger.total_minted = int(data.get("total_minted", 0))
        ledger.total_burned = int(data.get("total_burned", 0))
        if sum(ledger.balances.values()) != ledger.total_supply:
            raise ValueError("Ledger snapshot balances do not match recorded supply")
        return ledger

    # =========================================================================
    # Utility
    # =========================================================================

    def __repr__(self) -> str:
        return f"CreditLedger(holders={len(self.balances)}, supply={self.total_supply})"

    def stats(self) -> dict:
        """Get ledger statistics."""
        return {
            "holders": len(self.balances),
            "total_supply": self.total_supply,
            "total_minted": self.total_minted,
            "total_burned": self.total_burned,
        }
