"""
Identity registry for medconsent
Institution and individual accounts
"""

from .models import Account, AccountKind, Individual, Institution, Sex
from .registry import IdentityRegistry
from .subject_keys import derive_subject_key, is_valid_subject_key, name_key

__all__ = [
    "Account",
    "AccountKind",
    "Individual",
    "Institution",
    "Sex",
    "IdentityRegistry",
    "derive_subject_key",
    "is_valid_subject_key",
    "name_key",
]
