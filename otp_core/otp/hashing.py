"""
OTP Hashing Utilities
=====================
Secure generation, hashing and verification of OTP codes.
"""

import secrets
import hashlib
import hmac


def generate_otp(length: int = 6) -> str:
    """
    Generate a numeric OTP from a cryptographically secure source.

    Args:
        length: Number of digits

    Returns:
        Zero-padded OTP string of exactly ``length`` digits
    """
    otp = secrets.randbelow(10 ** length)
    return str(otp).zfill(length)


def generate_salt(num_bytes: int = 16) -> str:
    """Generate a random salt for OTP hashing (hex encoded)."""
    return secrets.token_hex(num_bytes)


def hash_otp(otp: str, salt: str) -> str:
    """
    Hash an OTP with salt using SHA-256.

    Args:
        otp: Plain OTP
        salt: Random salt

    Returns:
        Hex digest (64 chars)
    """
    return hashlib.sha256(f"{salt}:{otp}".encode()).hexdigest()


def verify_otp_hash(otp: str, salt: str, stored_hash: str) -> bool:
    """
    Verify an OTP against its hash.

    Uses constant-time comparison to prevent timing attacks.
    """
    if not stored_hash:
        return False
    computed_hash = hash_otp(otp.strip(), salt)
    return hmac.compare_digest(computed_hash, stored_hash)


def hash_token(token: str) -> str:
    """SHA-256 digest of a session token, for at-rest storage."""
    return hashlib.sha256(token.encode()).hexdigest()
