"""
Content-addressed hashing using BLAKE3.

Provides deterministic addresses for blobs and tree objects.
"""

import hashlib
import hmac
import os

import blake3

ADDRESS_LENGTH = 64

PASSWORD_ITERATIONS = 200_000

_HEX_DIGITS = frozenset("0123456789abcdef")


def compute_hash(data: bytes) -> str:
    """
    Compute the address of raw bytes.
    
    Returns hex-encoded BLAKE3 digest.
    """
    return blake3.blake3(data).hexdigest()


def is_valid_address(address: str) -> bool:
    """Check that a string looks like a content address."""
    if not isinstance(address, str) or len(address) != ADDRESS_LENGTH:
        return False
    return all(c in _HEX_DIGITS for c in address)


def get_hash_prefix(hash_str: str, prefix_length: int = 2) -> str:
    """
    Get prefix of hash for directory sharding.
    
    Default is 2 characters, creating 256 subdirectories.
    """
    if len(hash_str) < prefix_length:
        raise ValueError(f"Hash too short for prefix length {prefix_length}")
    return hash_str[:prefix_length]


def hash_password(password: str, salt: bytes = None) -> str:
    """
    Derive a storable password hash.
    
    Returns "<salt hex>$<digest hex>".
    """
    if salt is None:
        salt = os.urandom(16)
    digest = hashlib.pbkdf2_hmac(
        'sha256', password.encode('utf-8'), salt, PASSWORD_ITERATIONS
    )
    return f"{salt.hex()}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    """Check a password against a value produced by hash_password."""
    try:
        salt_hex, _ = stored.split('$', 1)
        salt = bytes.fromhex(salt_hex)
    except ValueError:
        return False
    return hmac.compare_digest(hash_password(password, salt), stored)
