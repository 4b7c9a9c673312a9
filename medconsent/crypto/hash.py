"""
Digests and credential hashing for medconsent

bcrypt protects account secrets. SHA-256 feeds subject key derivation
and links the audit trail.
"""

import hashlib
from typing import Iterable

import bcrypt
import structlog

logger = structlog.get_logger(__name__)

# bcrypt ignores (or, in recent releases, rejects) anything past this many bytes
MAX_SECRET_BYTES = 72

AUDIT_CHAIN_SEED = b"medconsent-audit"


def hash_password(secret: str, rounds: int = 12) -> str:
    """Return the bcrypt hash stored as an account's credential_hash"""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(secret.encode("utf-8"), salt).decode("ascii")


def verify_password(secret: str, credential_hash: str) -> bool:
    """Check a login secret; an unreadable stored hash counts as a mismatch"""
    try:
        return bcrypt.checkpw(secret.encode("utf-8"), credential_hash.encode("ascii"))
    except ValueError as e:
        logger.warning("Unreadable credential hash", error=str(e))
        return False


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class HashChain:
    """
    Running SHA-256 over audit entries.

    Each link hashes the previous head together with the new entry, so the
    head covers every entry appended so far.
    """

    def __init__(self):
        self.head = hashlib.sha256(AUDIT_CHAIN_SEED).hexdigest()
        self.length = 0

    @staticmethod
    def _link(previous: str, entry: bytes) -> str:
        return hashlib.sha256(previous.encode("ascii") + entry).hexdigest()

    def append(self, entry: bytes) -> str:
        self.head = self._link(self.head, entry)
        self.length += 1
        return self.head

    def matches(self, entries: Iterable[bytes]) -> bool:
        """Replay entries from the seed and compare with the current head"""
        head = hashlib.sha256(AUDIT_CHAIN_SEED).hexdigest()
        for entry in entries:
            head = self._link(head, entry)
        return head == self.head
