"""
Access Token Service - HS256 JWTs for API clients.

Tokens carry {userId, email, exp}; the payment routes only need to know the
caller holds a valid token.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt
from structlog import get_logger

from app.config import settings
from app.exceptions import AuthenticationError

logger = get_logger(__name__)

ALGORITHM = "HS256"


@dataclass(frozen=True)
class TokenClaims:
    """Verified access token claims."""

    account_id: str
    email: str
    expires_at: datetime


def create_access_token(
    account_id: str,
    email: str,
    secret: str | None = None,
    expire_minutes: int | None = None,
) -> tuple[str, int]:
    """
    Sign an access token for an account.

    Returns:
        (token, lifetime in seconds)
    """
    signing_secret = secret if secret is not None else settings.jwt_secret
    if not signing_secret:
        raise AuthenticationError("JWT_SECRET is not configured")

    minutes = expire_minutes if expire_minutes is not None else settings.access_token_expire_minutes
    expires_at = datetime.now(UTC) + timedelta(minutes=minutes)
    payload = {"userId": account_id, "email": email, "exp": expires_at}

    token = jwt.encode(payload, signing_secret, algorithm=ALGORITHM)
    logger.info("access_token_issued", account_id=account_id, expires_in_minutes=minutes)
    return token, minutes * 60


def decode_access_token(token: str, secret: str | None = None) -> TokenClaims:
    """
    Verify an access token.

    Raises:
        AuthenticationError: If the token is expired, tampered with or incomplete
    """
    signing_secret = secret if secret is not None else settings.jwt_secret
    if not signing_secret:
        raise AuthenticationError("JWT_SECRET is not configured")

    try:
        payload = jwt.decode(
            token,
            signing_secret,
            algorithms=[ALGORITHM],
            options={"require": ["exp"]},
        )
    except jwt.ExpiredSignatureError as exc:
        logger.warning("jwt_token_expired")
        raise AuthenticationError("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        logger.warning("jwt_token_invalid", error=str(exc))
        raise AuthenticationError("Invalid token") from exc

    account_id = payload.get("userId")
    email = payload.get("email")
    if not isinstance(account_id, str) or not isinstance(email, str):
        logger.warning("jwt_token_missing_claims")
        raise AuthenticationError("Token is missing required claims")

    return TokenClaims(
        account_id=account_id,
        email=email,
        expires_at=datetime.fromtimestamp(payload["exp"], UTC),
    )
