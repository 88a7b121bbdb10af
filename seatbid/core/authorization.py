"""
Authorization - Signed approvals and one-time transfer nonces.

Three actions are authorised by a signature rather than by the caller's
own role:

    Enrolment   an administrator approves an address as a student
    Transfer    the seller approves moving tokens to a receiver
    Waiver      a course's lecturer lets a student skip its prerequisites

Message Binding:
----------------
Each signed message is keccak256 over a packed encoding

    domain_tag (1 byte) || instance_id (32 bytes) || action parameters

Addresses pack as 20 bytes, integers as 32 bytes big-endian and course codes
as 8 bytes, right-padded with zeros. The domain tag keeps a signature made
for one action from being accepted for another, and the instance id keeps
it from being replayed against a different university.
"""

from typing import Dict, Set

from seatbid.crypto import hex_to_bytes, keccak256, recover_address
from seatbid.core.errors import InvalidSignature, ReplayedNonce
from seatbid.utils.logger import get_logger
from seatbid.utils.validation import (
    MAX_COURSE_CODE_LENGTH,
    validate_int,
    validate_signature,
)

logger = get_logger("authorization")


# =============================================================================
# Constants
# =============================================================================

ENROLL = 0x01
TRANSFER = 0x02
WAIVER = 0x03


# =============================================================================
# Message Hashes
# =============================================================================


def _pack_address(address: str) -> bytes:
    raw = hex_to_bytes(address)
    if len(raw) != 20:
        raise ValueError(f"Address must be 20 bytes: {address}")
    return raw


def _pack_uint(value: int) -> bytes:
    return value.to_bytes(32, byteorder="big")


def _pack_code(code: str) -> bytes:
    return code.encode("ascii").ljust(MAX_COURSE_CODE_LENGTH, b"\x00")


def _message(tag: int, instance_id: bytes, *parts: bytes) -> bytes:
    if len(instance_id) != 32:
        raise ValueError("Instance id must be 32 bytes")
    return keccak256(bytes([tag]) + instance_id + b"".join(parts))


def enrollment_hash(instance_id: bytes, student: str) -> bytes:
    """Hash an administrator signs to enrol `student`."""
    return _message(ENROLL, instance_id, _pack_address(student))


def transfer_hash(instance_id: bytes, receiver: str, amount: int, nonce: int) -> bytes:
    """Hash a seller signs to send `amount` tokens to `receiver`."""
    return _message(TRANSFER, instance_id, _pack_address(receiver), _pack_uint(amount), _pack_uint(nonce))


def waiver_hash(instance_id: bytes, student: str, course_code: str) -> bytes:
    """Hash a lecturer signs to waive the prerequisites of `course_code`."""
    return _message(WAIVER, instance_id, _pack_address(student), _pack_code(course_code))


def recover_signer(message_hash: bytes, signature: bytes) -> str:
    """
    Recover the address that signed `message_hash`.

    Raises:
        InvalidSignature: malformed or unrecoverable signature
    """
    is_valid, error = validate_signature(signature)
    if not is_valid:
        raise InvalidSignature(error)

    signer = recover_address(message_hash, bytes(signature))
    if signer is None:
        logger.warning("Rejected unrecoverable signature")
        raise InvalidSignature("Signature could not be recovered")
    return signer


# =============================================================================
# Nonce Registry
# =============================================================================


class NonceRegistry:
    """
    One-time nonces per signer.

    A nonce is consumed only after every other check of the operation it
    authorises has passed.
    """

    def __init__(self):
        self._used: Dict[str, Set[int]] = {}

    def is_used(self, signer: str, nonce: int) -> bool:
        return nonce in self._used.get(signer, ())

    def check(self, signer: str, nonce: int) -> None:
        """
        Raises:
            InvalidSignature: nonce is not a 256-bit unsigned integer
            ReplayedNonce: nonce already consumed by this signer
        """
        is_valid, error = validate_int(nonce, "nonce", min_value=0, max_value=2**256 - 1)
        if not is_valid:
            raise InvalidSignature(error)
        if self.is_used(signer, nonce):
            logger.warning(f"Replayed nonce {nonce} from {signer[:10]}...")
            raise ReplayedNonce(f"Nonce {nonce} already used by {signer}")

    def consume(self, signer: str, nonce: int) -> None:
        """
        Mark a nonce as used.

        Raises:
            ReplayedNonce: nonce already consumed by this signer
        """
        self.check(signer, nonce)
        self._used.setdefault(signer, set()).add(nonce)

    def __len__(self) -> int:
        return sum(len(nonces) for nonces in self._used.values())

    def to_dict(self) -> dict:
        return {signer: sorted(nonces) for signer, nonces in self._used.items()}

    @classmethod
    def from_dict(cls, data: dict) -> "NonceRegistry":
        registry = cls()
        registry._used = {signer: {int(n) for n in nonces} for signer, nonces in data.items()}
        return registry
