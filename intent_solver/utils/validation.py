"""
Input Validation - checks for operator-supplied configuration values.

Provides validation for:
- Ledger account addresses
- Signing keys
- RPC and feed URLs
"""

import re
from typing import Any, Tuple
from urllib.parse import urlparse

from intent_solver.crypto import PRIVATE_KEY_PREFIX, keypair_from_hex

# =============================================================================
# Constants
# =============================================================================

MIN_ADDRESS_LENGTH = 10
PRIVATE_KEY_HEX_LENGTH = 64

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")


# =============================================================================
# Validation Functions
# =============================================================================


def validate_address(address: Any, name: str = "address") -> Tuple[bool, str]:
    """
    Validate a ledger account address.

    Addresses are 0x-prefixed hex strings. The ledger accepts short
    addresses, so only a minimum length is enforced.

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(address, str):
        return False, f"{name} must be a string, got {type(address).__name__}"

    if not address.startswith("0x"):
        return False, f"{name} must start with 0x"

    if len(address) < MIN_ADDRESS_LENGTH:
        return False, f"{name} too short: {address}"

    if not _HEX_RE.match(address[2:]):
        return False, f"{name} must be hex: {address}"

    return True, ""


def validate_private_key(private_key: Any) -> Tuple[bool, str]:
    """
    Validate an Ed25519 signing key: 32 bytes of hex, with an optional
    0x or ed25519-priv-0x prefix. The key is loaded once to be sure it
    can sign.
    """
    if not isinstance(private_key, str):
        return False, "private_key must be a string"

    raw = private_key.strip()
    if raw.lower().startswith(PRIVATE_KEY_PREFIX):
        raw = raw[len(PRIVATE_KEY_PREFIX):]
    if raw.lower().startswith("0x"):
        raw = raw[2:]
    if len(raw) != PRIVATE_KEY_HEX_LENGTH:
        return False, f"private_key must be {PRIVATE_KEY_HEX_LENGTH} hex characters"
    if not _HEX_RE.match(raw):
        return False, "private_key must be hex"

    try:
        keypair_from_hex(private_key)
    except ValueError as e:
        return False, f"private_key is not a usable Ed25519 key: {e}"

    return True, ""


def validate_url(url: Any, name: str = "url") -> Tuple[bool, str]:
    """Validate an http(s) URL."""
    if not isinstance(url, str) or not url:
        return False, f"{name} must be a non-empty string"

    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        return False, f"{name} must use http or https: {url}"
    if not parsed.netloc:
        return False, f"{name} has no host: {url}"

    return True, ""

