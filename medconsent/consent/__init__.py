"""
Consent ledger for medconsent
Per-grant, subject-approved upload and access requests
"""

from .models import (
    AccessConsentRequest,
    ConsentKind,
    ConsentRequest,
    ConsentStatus,
    LedgerAction,
    LedgerEvent,
    UploadConsentRequest,
)
from .ledger import ConsentLedger, LedgerListener

__all__ = [
    "AccessConsentRequest",
    "ConsentKind",
    "ConsentRequest",
    "ConsentStatus",
    "LedgerAction",
    "LedgerEvent",
    "UploadConsentRequest",
    "ConsentLedger",
    "LedgerListener",
]
