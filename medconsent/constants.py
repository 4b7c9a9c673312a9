"""
Constants for the medconsent record exchange

Centralized identifiers for record categories, subject keys,
audit event types and error codes.
"""

from typing import Final, Tuple

# =============================================================================
# SERVICE IDENTIFICATION
# =============================================================================

SERVICE_NAME: Final[str] = "medconsent"
SERVICE_VERSION: Final[str] = "0.1.0"

# =============================================================================
# SUBJECT KEYS
# =============================================================================

class SubjectKeyFormat:
    """Shape of the 14-character subject key"""
    LENGTH: Final[int] = 14
    DIGEST_DIGITS: Final[int] = 10
    DISAMBIGUATOR_DIGITS: Final[int] = 4


# =============================================================================
# RECORD CATEGORIES
# =============================================================================

class RecordCategories:
    """Record categories offered to uploading institutions"""
    PRESCRIPTION: Final[str] = "Prescription"
    LAB_REPORT: Final[str] = "Lab Report"
    DISCHARGE_SUMMARY: Final[str] = "Discharge Summary"
    RADIOLOGY_REPORT: Final[str] = "Radiology Report"
    CONSULTATION_NOTE: Final[str] = "Consultation Note"

    ALL: Final[Tuple[str, ...]] = (
        PRESCRIPTION, LAB_REPORT, DISCHARGE_SUMMARY,
        RADIOLOGY_REPORT, CONSULTATION_NOTE
    )

    DEFAULT: Final[str] = PRESCRIPTION


# =============================================================================
# AUDIT EVENT TYPES
# =============================================================================

class AuditEventTypes:
    """Audit event type identifiers"""
    # Identity events
    ACCOUNT_REGISTERED: Final[str] = "account_registered"
    SUBJECT_KEY_REISSUED: Final[str] = "subject_key_reissued"
    LOGIN_SUCCESS: Final[str] = "login_success"
    LOGIN_FAILURE: Final[str] = "login_failure"

    # Consent events
    CONSENT_REQUESTED: Final[str] = "consent_requested"
    CONSENT_APPROVED: Final[str] = "consent_approved"
    CONSENT_REJECTED: Final[str] = "consent_rejected"

    # Data access events
    RECORD_UPLOADED: Final[str] = "record_uploaded"
    RECORDS_VIEWED: Final[str] = "records_viewed"


# =============================================================================
# ERROR CODES
# =============================================================================

class ErrorCodes:
    """Standardized error codes for the exchange"""
    UNKNOWN_ERROR: Final[str] = "UNKNOWN_ERROR"
    VALIDATION_ERROR: Final[str] = "VALIDATION_ERROR"

    DUPLICATE_IDENTIFIER: Final[str] = "DUPLICATE_IDENTIFIER"
    INVALID_CREDENTIALS: Final[str] = "INVALID_CREDENTIALS"
    NOT_FOUND: Final[str] = "NOT_FOUND"
    UNAUTHORIZED: Final[str] = "UNAUTHORIZED"
    INVALID_STATE: Final[str] = "INVALID_STATE"
