"""
Error taxonomy for SeatBid.

Every failure is a caller-correctable precondition violation. Operations
raise one of these synchronously and leave ledger, catalog and round state
untouched when they do.
"""


class SeatBidError(Exception):
    """Base class for all engine errors."""


# =============================================================================
# Authorization
# =============================================================================


class AuthorizationError(SeatBidError):
    """Caller has the wrong role or identity for the action."""


class InvalidSignature(AuthorizationError):
    """Signature does not recover to an authorised signer."""


class ReplayedNonce(AuthorizationError):
    """Transfer nonce has already been used by the signer."""


# =============================================================================
# Catalog / Bids
# =============================================================================


class DuplicateResource(SeatBidError):
    """Course code already exists."""


class NoSuchResource(SeatBidError):
    """Course code is unknown."""


class DuplicateBid(SeatBidError):
    """Claimant already holds a live bid (or a seat) for the course."""


class NoSuchBid(SeatBidError):
    """Claimant has no live bid for the course."""


class InvalidQuota(SeatBidError):
    """Course quota must be a positive integer."""


class InvalidWeight(SeatBidError):
    """Course weight must be a positive integer."""


class InvalidCourseCode(SeatBidError):
    """Course code is not 1-8 printable ASCII characters."""


class InvalidAmount(SeatBidError):
    """Token amount is not a valid integer for the operation."""


class PrerequisiteNotMet(SeatBidError):
    """Claimant has not completed a prerequisite of the course."""


# =============================================================================
# Round
# =============================================================================


class RoundAlreadyOpen(SeatBidError):
    """A bidding round is already open."""


class RoundClosed(SeatBidError):
    """No bidding round is accepting activity."""


class TooEarly(SeatBidError):
    """Round deadline has not passed yet."""


class InvalidDuration(SeatBidError):
    """Round duration must be positive."""


# =============================================================================
# Funds
# =============================================================================


class InsufficientFunds(SeatBidError):
    """Not enough (unreserved) tokens for the operation."""


class BudgetExceeded(SeatBidError):
    """Committed units of credit would exceed the claimant's ceiling."""


class InsufficientPayment(SeatBidError):
    """External payment does not cover the required fee."""


class SystemNotInitialized(SeatBidError):
    """Fee schedule has not been set by the chief."""


__all__ = [
    "SeatBidError",
    "AuthorizationError",
    "InvalidSignature",
    "ReplayedNonce",
    "DuplicateResource",
    "NoSuchResource",
    "DuplicateBid",
    "NoSuchBid",
    "InvalidQuota",
    "InvalidWeight",
    "InvalidCourseCode",
    "InvalidAmount",
    "PrerequisiteNotMet",
    "RoundAlreadyOpen",
    "RoundClosed",
    "TooEarly",
    "InvalidDuration",
    "InsufficientFunds",
    "BudgetExceeded",
    "InsufficientPayment",
    "SystemNotInitialized",
]
