"""
Cryptographic primitives for the solver.

This module provides:
- Solver key generation and loading (Ed25519)
- Transaction signatures over the node's signing message
- Account address derivation and comparison

Design Notes:
-------------
The solver account is a single-signer Ed25519 account. Its address is
sha3_256(public_key || 0x00), the trailing byte being the single-key
authentication scheme. Ledger views return addresses in short form
("0x1", "0x00ab..."), so comparisons go through `normalize_address`.
"""

from dataclasses import dataclass
from typing import Optional

from Crypto.Hash import SHA3_256
from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey


# =============================================================================
# Constants
# =============================================================================

ED25519_SCHEME = b"\x00"
KEY_LENGTH = 32
SIGNATURE_LENGTH = 64

# AIP-80 private key prefix ("ed25519-priv-0x...")
PRIVATE_KEY_PREFIX = "ed25519-priv-"


# =============================================================================
# Hashing
# =============================================================================


def sha3_256(data: bytes) -> bytes:
    """Compute SHA3-256 hash."""
    return SHA3_256.new(data).digest()


def derive_address(public_key: bytes) -> str:
    """Account address of a single-key Ed25519 public key."""
    return "0x" + sha3_256(public_key + ED25519_SCHEME).hex()


# =============================================================================
# Key Generation
# =============================================================================


@dataclass
class KeyPair:
    """
    An Ed25519 keypair.

    Attributes:
        private_key: 32-byte seed
        public_key: 32-byte verify key
    """
    private_key: bytes
    public_key: bytes

    @property
    def address(self) -> str:
        """Full 32-byte account address, hex-encoded with 0x prefix."""
        return derive_address(self.public_key)

    @property
    def private_key_hex(self) -> str:
        return self.private_key.hex()

    @property
    def public_key_hex(self) -> str:
        return self.public_key.hex()


def private_key_to_public_key(private_key: bytes) -> bytes:
    """
    Derive public key from private key.

    Args:
        private_key: 32-byte seed

    Returns:
        32-byte public key
    """
    if len(private_key) != KEY_LENGTH:
        raise ValueError("Private key must be 32 bytes")
    return bytes(SigningKey(private_key).verify_key)


def generate_keypair() -> KeyPair:
    """Generate a new random keypair."""
    signing_key = SigningKey.generate()
    return KeyPair(private_key=bytes(signing_key), public_key=bytes(signing_key.verify_key))


def keypair_from_hex(private_key_hex: str) -> KeyPair:
    """
    Load a keypair from a hex-encoded private key.

    Accepts a bare hex seed, a 0x-prefixed one, or the
    "ed25519-priv-0x..." form.

    Raises:
        ValueError: not hex, or not 32 bytes
    """
    raw = private_key_hex.strip()
    if raw.lower().startswith(PRIVATE_KEY_PREFIX):
        raw = raw[len(PRIVATE_KEY_PREFIX):]
    private_key = hex_to_bytes(raw)
    return KeyPair(private_key=private_key, public_key=private_key_to_public_key(private_key))


# =============================================================================
# Digital Signatures (Ed25519)
# =============================================================================


def sign(message: bytes, private_key: bytes) -> bytes:
    """
    Sign a message with Ed25519.

    Returns:
        64-byte signature
    """
    if len(private_key) != KEY_LENGTH:
        raise ValueError("Private key must be 32 bytes")
    return SigningKey(private_key).sign(message).signature


def verify(message: bytes, signature: bytes, public_key: bytes) -> bool:
    """
    Verify an Ed25519 signature.

    Args:
        message: signed bytes
        signature: 64-byte signature
        public_key: 32-byte public key
    """
    if len(signature) != SIGNATURE_LENGTH or len(public_key) != KEY_LENGTH:
        return False
    try:
        VerifyKey(public_key).verify(message, signature)
    except BadSignatureError:
        return False
    return True


# =============================================================================
# Utility Functions
# =============================================================================


def bytes_to_hex(data: bytes) -> str:
    """Convert bytes to hex string with 0x prefix."""
    return "0x" + data.hex()


def hex_to_bytes(hex_str: str) -> bytes:
    """Convert hex string (with or without 0x prefix) to bytes."""
    if hex_str.startswith("0x") or hex_str.startswith("0X"):
        hex_str = hex_str[2:]
    return bytes.fromhex(hex_str)


def normalize_address(address: Optional[str]) -> str:
    """
    Canonical short form of an address: lowercase, 0x prefix, no leading zeros.

    "0x00AB" and "0xab" both normalize to "0xab"; the zero address is "0x0".
    """
    if not address:
        return ""
    raw = address.strip().lower()
    if raw.startswith("0x"):
        raw = raw[2:]
    return "0x" + (raw.lstrip("0") or "0")


def addresses_equal(a: Optional[str], b: Optional[str]) -> bool:
    """Compare two addresses ignoring case and zero padding."""
    if not a or not b:
        return False
    return normalize_address(a) == normalize_address(b)
