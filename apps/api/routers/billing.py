"""Billing and credits router."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from routers.auth_scope import AuthContext, ensure_user_scope, get_auth_context
from routers.rate_limit import rate_limit
from services.credits import CREDIT_COST, AccountNotFoundError, CreditReason, add_credits, get_credit_summary

router = APIRouter()
logger = logging.getLogger(__name__)

PLANS = [
    {
        "name": "FREE",
        "display_name": "Free",
        "monthly_credits": 5,
        "price_usd": 0.0,
        "features": ["5 AI generations/month", "Resume Generator", "PDF Download"],
    },
    {
        "name": "PRO",
        "display_name": "Pro",
        "monthly_credits": 50,
        "price_usd": 9.99,
        "features": ["50 AI generations/month", "Resume + Cover Letter", "PDF Download", "Document Storage"],
    },
    {
        "name": "ENTERPRISE",
        "display_name": "Enterprise",
        "monthly_credits": 200,
        "price_usd": 29.99,
        "features": ["200 AI generations/month", "All AI Features", "Job Analyzer", "Priority Support"],
    },
]

# Reasons a top-up may be filed under; charges and signup grants come from their own flows.
TOPUP_REASONS = {
    CreditReason.MANUAL_TOPUP,
    CreditReason.ADMIN_GRANT,
    CreditReason.SUBSCRIPTION_UPGRADE,
    CreditReason.SUBSCRIPTION_RENEWAL,
}


class CreditTopUpRequest(BaseModel):
    user_id: Optional[str] = None
    credits: int = Field(ge=1, le=10000)
    reason: CreditReason = CreditReason.MANUAL_TOPUP


@router.get("/plans")
async def list_plans():
    return {"plans": PLANS, "cost_per_generation": CREDIT_COST}


@router.get("/credits")
async def credits_summary(
    user_id: Optional[str] = Query(default=None),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    scoped_user_id = ensure_user_scope(auth.user_id, user_id)
    return await get_credit_summary(scoped_user_id, db)


@router.post("/topup")
async def manual_topup(
    request: CreditTopUpRequest,
    _rate_limit: None = Depends(rate_limit("billing_topup", limit=30, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    scoped_user_id = ensure_user_scope(auth.user_id, request.user_id)

    if not settings.ALLOW_MANUAL_TOPUP:
        raise HTTPException(status_code=403, detail="Manual credit top-ups are disabled.")
    if request.reason not in TOPUP_REASONS:
        raise HTTPException(status_code=422, detail=f"Credits cannot be granted with reason {request.reason.value}.")

    try:
        snapshot = await add_credits(scoped_user_id, request.credits, request.reason, db)
    except AccountNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Credit account not found.") from exc
    return {
        "ok": True,
        "credits_added": request.credits,
        "reason": request.reason.value,
        "balance_after": snapshot.balance,
    }
