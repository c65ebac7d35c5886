"""
Authentication router: registration, session refresh and current-user profile.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from database import get_db
from models.credit_account import CreditAccount
from models.user import User
from routers.auth_scope import AuthContext, get_auth_context
from routers.rate_limit import rate_limit
from services.credits import open_credit_account
from services.session_token import SessionTokens, decode_refresh_token, issue_session_tokens
from uow import UnitOfWork

router = APIRouter()
logger = logging.getLogger(__name__)

DUPLICATE_EMAIL_DETAIL = "An account with this email already exists."


class RegisterRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    name: Optional[str] = Field(default=None, max_length=120)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class SessionResponse(BaseModel):
    user_id: str
    session_token: str
    session_expires_at: int
    refresh_token: str
    refresh_expires_at: int


class RegisterResponse(SessionResponse):
    email: str
    name: Optional[str] = None
    credits: int


class CurrentUserResponse(BaseModel):
    user_id: str
    email: str
    name: Optional[str] = None
    credits: int = 0
    total_used: int = 0


def _session_fields(tokens: SessionTokens) -> dict:
    return {
        "session_token": tokens.access_token,
        "session_expires_at": tokens.access_expires_at,
        "refresh_token": tokens.refresh_token,
        "refresh_expires_at": tokens.refresh_expires_at,
    }


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    request: RegisterRequest,
    _rate_limit: None = Depends(rate_limit("auth_register", limit=10, window_seconds=900)),
    db: AsyncSession = Depends(get_db),
):
    """Create a user together with a credit account holding the signup grant."""
    email = request.email.strip().lower()
    existing = await db.execute(select(User.id).where(User.email == email))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail=DUPLICATE_EMAIL_DETAIL)

    user = User(id=str(uuid.uuid4()), email=email, name=(request.name or "").strip() or None)
    try:
        async with UnitOfWork(db) as uow:
            uow.add(user)
            await uow.flush()
            account = await open_credit_account(
                user.id,
                uow.session,
                initial_credits=max(int(settings.SIGNUP_FREE_CREDITS), 0),
            )
    except IntegrityError as exc:
        # A concurrent registration took the email between the check and the insert.
        logger.info("Registration for %s lost a race on the unique email index", email)
        raise HTTPException(status_code=409, detail=DUPLICATE_EMAIL_DETAIL) from exc

    logger.info("Registered user %s with %s signup credits", user.id, account.balance)
    return RegisterResponse(
        user_id=user.id,
        email=user.email,
        name=user.name,
        credits=account.balance,
        **_session_fields(issue_session_tokens(user.id, user.email)),
    )


@router.post("/refresh", response_model=SessionResponse)
async def refresh_session(
    request: RefreshRequest,
    _rate_limit: None = Depends(rate_limit("auth_refresh", limit=10, window_seconds=900)),
    db: AsyncSession = Depends(get_db),
):
    """Exchange a refresh token for a new access and refresh token pair."""
    try:
        payload = decode_refresh_token(request.refresh_token)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    result = await db.execute(select(User.id, User.email).where(User.id == str(payload["sub"])))
    user = result.one_or_none()
    if user is None:
        raise HTTPException(status_code=401, detail="Session user no longer exists.")

    return SessionResponse(user_id=user.id, **_session_fields(issue_session_tokens(user.id, user.email)))


@router.get("/me", response_model=CurrentUserResponse)
async def get_current_user(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(User).where(User.id == auth.user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    account_result = await db.execute(
        select(CreditAccount.balance, CreditAccount.total_used).where(CreditAccount.user_id == user.id)
    )
    account = account_result.one_or_none()
    return CurrentUserResponse(
        user_id=user.id,
        email=user.email,
        name=user.name,
        credits=int(account.balance) if account else 0,
        total_used=int(account.total_used) if account else 0,
    )


@router.post("/logout")
async def logout(_auth: AuthContext = Depends(get_auth_context)):
    """Frontend-managed logout acknowledgment endpoint."""
    return {"message": "Logged out successfully"}
