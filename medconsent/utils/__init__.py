"""
Utility functions for medconsent
ID generation helpers
"""

from .ids import (
    generate_account_id,
    generate_record_id,
    generate_request_id,
    generate_audit_id,
)

__all__ = [
    "generate_account_id",
    "generate_record_id",
    "generate_request_id",
    "generate_audit_id",
]
