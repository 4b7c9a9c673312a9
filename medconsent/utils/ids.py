"""
ID generation utilities for medconsent
Unique identifiers for accounts, records and consent requests
"""

import uuid


def generate_account_id(kind: str) -> str:
    """Generate account ID prefixed with the account kind"""
    return f"{kind}_{uuid.uuid4().hex}"


def generate_record_id() -> str:
    """Generate medical record ID"""
    return f"record_{uuid.uuid4().hex}"


def generate_request_id() -> str:
    """Generate consent request ID"""
    return f"request_{uuid.uuid4().hex}"


def generate_audit_id() -> str:
    """Generate audit event ID"""
    return f"audit_{uuid.uuid4()}"
