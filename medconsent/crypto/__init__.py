"""
Cryptographic utilities for medconsent
Credential hashing and session tokens
"""

from .hash import hash_password, verify_password, sha256_hex, HashChain
from .tokens import (
    create_session_token,
    verify_session_token,
    extract_bearer_token,
    TokenError,
    TokenExpiredError,
    TokenInvalidError,
)

__all__ = [
    "hash_password",
    "verify_password",
    "sha256_hex",
    "HashChain",
    "create_session_token",
    "verify_session_token",
    "extract_bearer_token",
    "TokenError",
    "TokenExpiredError",
    "TokenInvalidError",
]
