"""
Account Routes - Signup, profile and access token endpoints.

NO DICTIONARIES - All requests/responses use Pydantic models.

Profile edits write display fields only. Entitlement fields change only
through the payment reconciler.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from structlog import get_logger

from app.api.dependencies import get_account_store
from app.exceptions import AccountExistsError
from app.models.api import (
    AccountResponse,
    CreateAccountRequest,
    MessageResponse,
    TokenRequest,
    TokenResponse,
    UpdateProfileRequest,
)
from app.services.account_store import AccountStore
from app.services.auth import create_access_token

logger = get_logger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


@router.post(
    "",
    response_model=AccountResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_account(
    body: CreateAccountRequest,
    store: AccountStore = Depends(get_account_store),
) -> AccountResponse:
    """Create an account. New accounts start without premium."""
    if not body.email or not body.display_name:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email and displayName required",
        )

    try:
        account = await store.create_account(body.email, body.display_name, body.photo_url)
    except AccountExistsError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User already exists",
        ) from exc

    return AccountResponse.from_domain(account)


@router.post("/token", response_model=TokenResponse, response_model_by_alias=True)
async def issue_token(
    body: TokenRequest,
    store: AccountStore = Depends(get_account_store),
) -> TokenResponse:
    """Issue a short-lived access token for an existing account."""
    if not body.email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email required")

    account = await store.find_by_email(body.email)
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    token, expires_in = create_access_token(account.account_id, account.email)
    return TokenResponse(access_token=token, expires_in=expires_in)


@router.get("/{account_id}", response_model=AccountResponse, response_model_by_alias=True)
async def get_account(
    account_id: str,
    store: AccountStore = Depends(get_account_store),
) -> AccountResponse:
    """Get an account including its entitlement fields."""
    account = await store.find_by_id(account_id)
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return AccountResponse.from_domain(account)


@router.put("/{account_id}", response_model=MessageResponse)
async def update_account(
    account_id: str,
    body: UpdateProfileRequest,
    store: AccountStore = Depends(get_account_store),
) -> MessageResponse:
    """
    Update display name and photo.

    Entitlement keys in the body (isPremium, paymentStatus, ...) are dropped
    by the request model and never reach the store.
    """
    try:
        account = await store.update_profile(account_id, body.display_name, body.photo_url)
    except SQLAlchemyError as exc:
        logger.error("profile_update_failed", account_id=account_id, error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database error",
        ) from exc

    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    logger.info("profile_updated", account_id=account_id)
    return MessageResponse(message="User updated successfully")
