"""
OTP Generation and Verification
================================
Secure OTP generation, the challenge ledger and dual-channel verification.
"""

from .models import OTPChannel, ChallengeState, IssuedChallenge
from .hashing import generate_otp, generate_salt, hash_otp, verify_otp_hash, hash_token
from .ledger import OTPLedger
from .dual import DualChannelVerifier

__all__ = [
    # Models
    "OTPChannel",
    "ChallengeState",
    "IssuedChallenge",
    # Hashing
    "generate_otp",
    "generate_salt",
    "hash_otp",
    "verify_otp_hash",
    "hash_token",
    # Ledger
    "OTPLedger",
    "DualChannelVerifier",
]
