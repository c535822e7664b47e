"""
security.py — Identity token verification.

Every client request carries a Bearer JWT issued by the account service;
its `sub` claim is the account number. This service never issues tokens
outside of tests, it only verifies them with python-jose.

Configuration is read from autonomy.core.config.settings so the secret
lives in environment variables / .env files, never in code.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from autonomy.core.config import settings

MAX_ACCOUNT_NUMBER_LENGTH = 64


def is_valid_account_number(value: str) -> bool:
    """Opaque printable ASCII, at most 64 bytes."""
    return (
        0 < len(value) <= MAX_ACCOUNT_NUMBER_LENGTH
        and value.isascii()
        and value.isprintable()
        and not any(c.isspace() for c in value)
    )


def create_identity_token(account_number: str, expires_delta: Optional[timedelta] = None) -> str:
    """Sign a token for *account_number* (used by scripts and tests)."""
    expire = datetime.now(tz=timezone.utc) + (expires_delta or timedelta(hours=24))
    payload = {"sub": account_number, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_identity_token(token: str) -> Optional[str]:
    """
    Decode and validate an identity token.

    Returns the account number on success, or None if the token is
    expired, tampered with, or its subject is not a valid account number.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None

    sub = payload.get("sub")
    if not isinstance(sub, str) or not is_valid_account_number(sub):
        return None
    return sub
