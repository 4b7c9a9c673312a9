"""
Session token utilities for medconsent
JWT creation and verification for authenticated accounts
"""

import jwt
from datetime import datetime, timedelta, UTC
from typing import Dict, Any, Optional
import structlog

from ..config import get_exchange_config

logger = structlog.get_logger(__name__)

TOKEN_ISSUER = "medconsent"


class TokenError(Exception):
    """Base exception for session token errors"""
    pass


class TokenExpiredError(TokenError):
    """Raised when a session token has expired"""
    pass


class TokenInvalidError(TokenError):
    """Raised when a session token is invalid"""
    pass


def create_session_token(account_id: str, account_kind: str,
                         secret_key: Optional[str] = None,
                         expires_in_minutes: Optional[int] = None) -> str:
    """
    Create a session token for an authenticated account

    Args:
        account_id: Account identifier, stored as the subject claim
        account_kind: "institution" or "individual"
        secret_key: Signing key (default from config)
        expires_in_minutes: Token expiry (default from config)

    Returns:
        Encoded JWT string
    """
    config = get_exchange_config()
    secret_key = secret_key or config.jwt_secret
    expires_in_minutes = expires_in_minutes or config.jwt_expiry_minutes

    now = datetime.now(UTC)
    payload = {
        'sub': account_id,
        'kind': account_kind,
        'iat': now,
        'exp': now + timedelta(minutes=expires_in_minutes),
        'iss': TOKEN_ISSUER,
    }

    token = jwt.encode(payload, secret_key, algorithm=config.jwt_algorithm)
    logger.info("Created session token", subject=account_id, expires_in=expires_in_minutes)
    return token


def verify_session_token(token: str, secret_key: Optional[str] = None) -> Dict[str, Any]:
    """
    Verify a session token and return its claims

    Raises:
        TokenExpiredError: If the token has expired
        TokenInvalidError: If the token is malformed or badly signed
    """
    config = get_exchange_config()
    secret_key = secret_key or config.jwt_secret

    try:
        payload = jwt.decode(
            token,
            secret_key,
            algorithms=[config.jwt_algorithm],
            issuer=TOKEN_ISSUER,
            options={'require': ['exp', 'iat', 'sub']},
        )
    except jwt.ExpiredSignatureError:
        logger.warning("Session token expired")
        raise TokenExpiredError("Token has expired")
    except jwt.InvalidTokenError as e:
        logger.warning("Session token invalid", error=str(e))
        raise TokenInvalidError(f"Invalid token: {str(e)}")

    logger.debug("Session token verified", subject=payload.get('sub'))
    return payload


def extract_bearer_token(authorization_header: Optional[str]) -> str:
    """Extract the token from an Authorization header"""
    if not authorization_header:
        raise TokenInvalidError("No authorization header")

    if not authorization_header.startswith('Bearer '):
        raise TokenInvalidError("Invalid authorization header format")

    return authorization_header[7:]
