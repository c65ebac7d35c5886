"""Credit ledger: balance reads, atomic charges and atomic grants."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.credit_account import CreditAccount
from models.credit_transaction import CreditTransaction
from uow import UnitOfWork

logger = logging.getLogger(__name__)

# Cost of every generation regardless of document type.
CREDIT_COST = 1


class CreditReason(str, Enum):
    AI_GENERATION = "AI_GENERATION"
    SIGNUP_GRANT = "SIGNUP_GRANT"
    SUBSCRIPTION_UPGRADE = "SUBSCRIPTION_UPGRADE"
    SUBSCRIPTION_RENEWAL = "SUBSCRIPTION_RENEWAL"
    ADMIN_GRANT = "ADMIN_GRANT"
    MANUAL_TOPUP = "MANUAL_TOPUP"


class InsufficientCreditsError(RuntimeError):
    code = "INSUFFICIENT_CREDITS"

    def __init__(self, required: int, available: int) -> None:
        super().__init__("Insufficient credits. Please upgrade your plan.")
        self.required = required
        self.available = available


class AccountNotFoundError(LookupError):
    code = "NOT_FOUND"

    def __init__(self, user_id: str) -> None:
        super().__init__(f"Credit account not found for user {user_id}")
        self.user_id = user_id


@dataclass(frozen=True)
class AccountSnapshot:
    user_id: str
    balance: int
    total_used: int


def _reason_value(reason: Any) -> str:
    return reason.value if isinstance(reason, CreditReason) else str(reason)


async def _lock_account(db: AsyncSession, user_id: str):
    result = await db.execute(
        select(CreditAccount.id, CreditAccount.balance)
        .where(CreditAccount.user_id == user_id)
        .with_for_update()
    )
    row = result.one_or_none()
    if row is None:
        raise AccountNotFoundError(user_id)
    return row


async def get_balance(user_id: str, db: AsyncSession) -> int:
    """Current balance, or 0 when the user has no account."""
    result = await db.execute(select(CreditAccount.balance).where(CreditAccount.user_id == user_id))
    balance = result.scalar_one_or_none()
    return int(balance or 0)


async def debit_in_session(
    db: AsyncSession,
    *,
    user_id: str,
    amount: int,
    reason: Any = CreditReason.AI_GENERATION,
    generation_id: Optional[str] = None,
) -> AccountSnapshot:
    """Charge the account inside the caller's transaction without committing.

    The row is read with a lock, and the decrement is additionally guarded by
    ``balance >= amount`` in the UPDATE itself, so a concurrent charge that
    slipped in between the read and the write cannot drive the balance below
    zero on backends without row locks.
    """
    if amount <= 0:
        raise ValueError("amount must be greater than 0")

    account_id, balance = await _lock_account(db, user_id)
    if balance < amount:
        raise InsufficientCreditsError(required=amount, available=int(balance))

    result = await db.execute(
        update(CreditAccount.__table__)
        .where(
            CreditAccount.__table__.c.id == account_id,
            CreditAccount.__table__.c.balance >= amount,
        )
        .values(
            balance=CreditAccount.__table__.c.balance - amount,
            total_used=CreditAccount.__table__.c.total_used + amount,
        )
        .returning(CreditAccount.__table__.c.balance, CreditAccount.__table__.c.total_used)
    )
    updated = result.one_or_none()
    if updated is None:
        raise InsufficientCreditsError(required=amount, available=0)

    db.add(
        CreditTransaction(
            id=str(uuid.uuid4()),
            credit_account_id=account_id,
            amount=-amount,
            reason=_reason_value(reason),
            generation_id=generation_id,
        )
    )
    await db.flush()
    return AccountSnapshot(user_id=user_id, balance=int(updated[0]), total_used=int(updated[1]))


async def credit_in_session(
    db: AsyncSession,
    *,
    user_id: str,
    amount: int,
    reason: Any,
) -> AccountSnapshot:
    """Grant credits inside the caller's transaction without committing."""
    if amount <= 0:
        raise ValueError("amount must be greater than 0")

    account_id, _balance = await _lock_account(db, user_id)
    result = await db.execute(
        update(CreditAccount.__table__)
        .where(CreditAccount.__table__.c.id == account_id)
        .values(balance=CreditAccount.__table__.c.balance + amount)
        .returning(CreditAccount.__table__.c.balance, CreditAccount.__table__.c.total_used)
    )
    updated = result.one()
    db.add(
        CreditTransaction(
            id=str(uuid.uuid4()),
            credit_account_id=account_id,
            amount=amount,
            reason=_reason_value(reason),
        )
    )
    await db.flush()
    return AccountSnapshot(user_id=user_id, balance=int(updated[0]), total_used=int(updated[1]))


async def deduct_credit(
    user_id: str,
    amount: int,
    reason: Any,
    db: AsyncSession,
    generation_id: Optional[str] = None,
) -> AccountSnapshot:
    """Atomically check the balance, charge it and append the ledger entry."""
    async with UnitOfWork(db) as uow:
        snapshot = await debit_in_session(
            uow.session,
            user_id=user_id,
            amount=amount,
            reason=reason,
            generation_id=generation_id,
        )
    logger.info("Credits deducted: user=%s amount=%s balance=%s", user_id, amount, snapshot.balance)
    return snapshot


async def add_credits(user_id: str, amount: int, reason: Any, db: AsyncSession) -> AccountSnapshot:
    """Atomically grant credits (subscription grants, renewals, top-ups)."""
    async with UnitOfWork(db) as uow:
        snapshot = await credit_in_session(uow.session, user_id=user_id, amount=amount, reason=reason)
    logger.info("Credits added: user=%s amount=%s balance=%s", user_id, amount, snapshot.balance)
    return snapshot


async def open_credit_account(user_id: str, db: AsyncSession, *, initial_credits: int = 0) -> AccountSnapshot:
    """Provision a zero-balance account and record the signup grant in the caller's transaction."""
    db.add(CreditAccount(id=str(uuid.uuid4()), user_id=user_id, balance=0, total_used=0))
    await db.flush()
    if initial_credits > 0:
        return await credit_in_session(db, user_id=user_id, amount=initial_credits, reason=CreditReason.SIGNUP_GRANT)
    return AccountSnapshot(user_id=user_id, balance=0, total_used=0)


async def get_credit_summary(user_id: str, db: AsyncSession) -> Dict[str, Any]:
    account_result = await db.execute(
        select(CreditAccount.id, CreditAccount.balance, CreditAccount.total_used).where(CreditAccount.user_id == user_id)
    )
    account = account_result.one_or_none()
    entries = []
    if account is not None:
        result = await db.execute(
            select(CreditTransaction)
            .where(CreditTransaction.credit_account_id == account.id)
            .order_by(CreditTransaction.created_at.desc())
            .limit(20)
        )
        entries = result.scalars().all()
    return {
        "balance": int(account.balance) if account else 0,
        "total_used": int(account.total_used) if account else 0,
        "cost_per_generation": CREDIT_COST,
        "recent_transactions": [
            {
                "id": entry.id,
                "amount": entry.amount,
                "reason": entry.reason,
                "generation_id": entry.generation_id,
                "created_at": entry.created_at.isoformat() if entry.created_at else None,
            }
            for entry in entries
        ],
    }
