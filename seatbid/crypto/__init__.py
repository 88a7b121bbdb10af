"""
Cryptographic primitives for SeatBid.

Identities and signed approvals:
--------------------------------
An identity is an Ethereum-style address, the last 20 bytes of
keccak256(public_key) written as 0x-prefixed lowercase hex. Approvals
(enrolment, transfer, prerequisite waiver) are recoverable ECDSA
signatures on secp256k1, laid out as

    r (32 bytes) || s (32 bytes) || v (1 byte, 27 or 28)

so the engine can recover who signed a message instead of being told.
Only low-s signatures are accepted, which makes each approval have a
single valid encoding.
"""

import secrets
import string
from dataclasses import dataclass
from typing import Optional, Tuple

from Crypto.Hash import keccak
from py_ecc.secp256k1 import secp256k1


# =============================================================================
# Constants
# =============================================================================

SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
HALF_ORDER = SECP256K1_ORDER // 2

SIGNATURE_SIZE = 65
ADDRESS_HEX_LENGTH = 42  # "0x" + 20 bytes


def keccak256(data: bytes) -> bytes:
    """Keccak-256 digest (the pre-standard SHA-3 variant Ethereum uses)."""
    digest = keccak.new(digest_bits=256)
    digest.update(data)
    return digest.digest()


# =============================================================================
# Keys and Addresses
# =============================================================================


@dataclass(frozen=True)
class KeyPair:
    """
    A participant's signing key.

    Attributes:
        private_key: 32-byte scalar in [1, order - 1]
        public_key: 64-byte x || y of the public point
    """
    private_key: bytes
    public_key: bytes

    @classmethod
    def from_private_key(cls, private_key: bytes) -> "KeyPair":
        return cls(private_key=private_key, public_key=private_key_to_public_key(private_key))

    @property
    def address(self) -> str:
        return address_from_public_key(self.public_key)

    @property
    def private_key_hex(self) -> str:
        return self.private_key.hex()

    @property
    def public_key_hex(self) -> str:
        return self.public_key.hex()


def _encode_point(point: Tuple[int, int]) -> bytes:
    x, y = point
    return x.to_bytes(32, "big") + y.to_bytes(32, "big")


def generate_keypair() -> KeyPair:
    """New random keypair from the OS CSPRNG."""
    scalar = 1 + secrets.randbelow(SECP256K1_ORDER - 1)
    return KeyPair.from_private_key(scalar.to_bytes(32, "big"))


def private_key_to_public_key(private_key: bytes) -> bytes:
    if len(private_key) != 32:
        raise ValueError(f"private key must be 32 bytes, got {len(private_key)}")
    return _encode_point(secp256k1.privtopub(private_key))


def address_from_public_key(public_key: bytes) -> str:
    if len(public_key) != 64:
        raise ValueError(f"public key must be 64 bytes, got {len(public_key)}")
    return "0x" + keccak256(public_key)[12:].hex()


def is_valid_address(address: str) -> bool:
    """True for a 0x-prefixed, 40-digit hex string."""
    if not isinstance(address, str) or len(address) != ADDRESS_HEX_LENGTH or not address.startswith("0x"):
        return False
    return all(c in string.hexdigits for c in address[2:])


def hex_to_bytes(value: str) -> bytes:
    """Decode hex, with or without a 0x prefix."""
    if value[:2] in ("0x", "0X"):
        value = value[2:]
    return bytes.fromhex(value)


# =============================================================================
# Recoverable Signatures
# =============================================================================


def sign_recoverable(message_hash: bytes, private_key: bytes) -> bytes:
    """
    Sign a 32-byte digest.

    Returns:
        65-byte r || s || v signature with low s and v in {27, 28}
    """
    if len(message_hash) != 32:
        raise ValueError(f"message hash must be 32 bytes, got {len(message_hash)}")
    if len(private_key) != 32:
        raise ValueError(f"private key must be 32 bytes, got {len(private_key)}")

    # py_ecc already returns low-s with the matching recovery id
    v, r, s = secp256k1.ecdsa_raw_sign(message_hash, private_key)
    return r.to_bytes(32, "big") + s.to_bytes(32, "big") + bytes([v])


def _split_signature(signature: bytes) -> Optional[Tuple[int, int, int]]:
    if len(signature) != SIGNATURE_SIZE:
        return None

    r = int.from_bytes(signature[:32], "big")
    s = int.from_bytes(signature[32:64], "big")
    v = signature[64]
    if v in (0, 1):
        v += 27

    if v not in (27, 28):
        return None
    if not 1 <= r < SECP256K1_ORDER or not 1 <= s <= HALF_ORDER:
        return None
    return v, r, s


def recover_public_key(message_hash: bytes, signature: bytes) -> Optional[bytes]:
    """
    Public key that produced `signature` over `message_hash`.

    Returns:
        64-byte public key, or None for malformed, high-s or unrecoverable
        signatures
    """
    if len(message_hash) != 32:
        return None
    vrs = _split_signature(signature)
    if vrs is None:
        return None

    try:
        point = secp256k1.ecdsa_raw_recover(message_hash, vrs)
    except ValueError:
        return None
    if not point:
        return None
    return _encode_point(point)


def recover_address(message_hash: bytes, signature: bytes) -> Optional[str]:
    public_key = recover_public_key(message_hash, signature)
    if public_key is None:
        return None
    return address_from_public_key(public_key)
