"""
Subject key issuance for medconsent

A subject key is 14 characters: ten digits derived from the holder's
normalised name, phone and the issuance month, followed by a four digit
disambiguator that is re-rolled on collision.
"""

import re
import secrets
from datetime import date, datetime, UTC
from typing import Optional

from ..constants import SubjectKeyFormat
from ..crypto.hash import sha256_hex

_KEY_PATTERN = re.compile(r"[A-Za-z0-9]{%d}" % SubjectKeyFormat.LENGTH)


def normalize_name(name: str) -> str:
    """Collapse whitespace; comparisons use name_key"""
    return " ".join(name.split())


def name_key(name: str) -> str:
    """Comparison form of a display name, identical across storage backends"""
    return normalize_name(name).casefold()


def normalize_phone(phone: str) -> str:
    return re.sub(r"[\s\-().]", "", phone)


def derive_subject_key(name: str, phone: str,
                       issued_on: Optional[date] = None,
                       disambiguator: Optional[int] = None) -> str:
    """
    Derive a subject key

    Args:
        name: Holder's display name
        phone: Holder's phone number
        issued_on: Issuance date; only year and month are used (default today)
        disambiguator: Four digit suffix (random when omitted)

    Returns:
        14-character subject key
    """
    issued_on = issued_on or datetime.now(UTC).date()
    material = f"{name_key(name)}|{normalize_phone(phone)}|{issued_on:%Y%m}"
    digest = int(sha256_hex(material), 16) % (10 ** SubjectKeyFormat.DIGEST_DIGITS)

    if disambiguator is None:
        disambiguator = secrets.randbelow(10 ** SubjectKeyFormat.DISAMBIGUATOR_DIGITS)

    return (f"{digest:0{SubjectKeyFormat.DIGEST_DIGITS}d}"
            f"{disambiguator:0{SubjectKeyFormat.DISAMBIGUATOR_DIGITS}d}")


def is_valid_subject_key(subject_key: str) -> bool:
    return bool(subject_key) and bool(_KEY_PATTERN.fullmatch(subject_key))
