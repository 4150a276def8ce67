"""
FastAPI Dependencies - Authentication and injected capabilities.

NO DICTIONARIES - All dependencies return typed objects.

Every component receives its account store and payment provider through
these dependencies; tests replace them via app.dependency_overrides.
"""

from functools import lru_cache

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.config import settings
from app.db.session import get_db
from app.exceptions import AuthenticationError
from app.services.account_store import AccountStore, SQLAlchemyAccountStore
from app.services.auth import TokenClaims, decode_access_token
from app.services.payment_provider import PaymentProvider
from app.services.reconciler import PaymentReconciler
from app.services.stripe_provider import StripeProvider

logger = get_logger(__name__)

# Bearer token scheme; a missing header is reported by get_current_user
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> TokenClaims:
    """
    FastAPI dependency to validate the access token from the Authorization header.

    Accepts: Authorization: Bearer {access_token}

    Raises:
        HTTPException 401 if no token is sent, 403 if it is invalid or expired
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required",
        )

    try:
        return decode_access_token(credentials.credentials)
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or expired token",
        ) from exc


async def get_account_store(db: AsyncSession = Depends(get_db)) -> AccountStore:
    """Account store bound to the request's database session."""
    return SQLAlchemyAccountStore(db)


async def get_reconciler(store: AccountStore = Depends(get_account_store)) -> PaymentReconciler:
    """Reconciler bound to the request's account store."""
    return PaymentReconciler(store)


@lru_cache(maxsize=1)
def _stripe_provider(api_key: str, webhook_secret: str, tolerance: int) -> StripeProvider:
    return StripeProvider(api_key=api_key, webhook_secret=webhook_secret, tolerance=tolerance)


async def get_payment_provider() -> PaymentProvider:
    """
    Configured payment provider.

    Raises:
        HTTPException 503 if Stripe credentials are not configured
    """
    if not settings.stripe_configured:
        logger.error("payment_provider_not_configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment provider not configured",
        )
    return _stripe_provider(
        settings.stripe_api_key,
        settings.stripe_webhook_secret,
        settings.stripe_webhook_tolerance_seconds,
    )
