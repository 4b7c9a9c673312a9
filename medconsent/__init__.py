"""
medconsent
Consent-gated medical record exchange between institutions and individuals
"""

__version__ = "0.1.0"

# Core exports
from .config import ExchangeConfig, get_exchange_config

# Identity
from .identity import Account, Individual, Institution, Sex, IdentityRegistry

# Records
from .records import Record, RecordStore

# Consent
from .consent import (
    AccessConsentRequest, ConsentKind, ConsentRequest, ConsentStatus,
    LedgerEvent, UploadConsentRequest, ConsentLedger,
)

# Access resolution
from .access import AccessResolver, combine_visible

# Persistence
from .storage import (
    ExchangeRepository, InMemoryExchangeRepository, SQLExchangeRepository, create_repository,
)

# Errors
from .exceptions import (
    ExchangeError, DuplicateIdentifierError, InvalidCredentialsError,
    NotFoundError, UnauthorizedError, InvalidStateError, ValidationError,
)

from .service import ExchangeService

__all__ = [
    # Config
    "ExchangeConfig",
    "get_exchange_config",

    # Identity
    "Account",
    "Individual",
    "Institution",
    "Sex",
    "IdentityRegistry",

    # Records
    "Record",
    "RecordStore",

    # Consent
    "AccessConsentRequest",
    "ConsentKind",
    "ConsentRequest",
    "ConsentStatus",
    "LedgerEvent",
    "UploadConsentRequest",
    "ConsentLedger",

    # Access
    "AccessResolver",
    "combine_visible",

    # Storage
    "ExchangeRepository",
    "InMemoryExchangeRepository",
    "SQLExchangeRepository",
    "create_repository",

    # Errors
    "ExchangeError",
    "DuplicateIdentifierError",
    "InvalidCredentialsError",
    "NotFoundError",
    "UnauthorizedError",
    "InvalidStateError",
    "ValidationError",

    "ExchangeService",
]
