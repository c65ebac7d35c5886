"""Generation flow: pre-flight check, provider call, artifact, record and charge."""

from __future__ import annotations

import asyncio
import json
import logging
import math
import time
import uuid
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.generation import Generation
from models.user_file import UserFile
from services.credits import (
    CREDIT_COST,
    CreditReason,
    InsufficientCreditsError,
    debit_in_session,
    get_balance,
)
from services.documents import render_text_pdf
from services.llm import FallbackOrchestrator
from services.prompts import PROMPT_BUILDERS
from services.storage import ObjectStorage
from uow import UnitOfWork

logger = logging.getLogger(__name__)


class GenerationType(str, Enum):
    RESUME = "RESUME"
    COVER_LETTER = "COVER_LETTER"
    JOB_ANALYSIS = "JOB_ANALYSIS"
    RESUME_ANALYSIS = "RESUME_ANALYSIS"


# type -> (storage folder, file name stem, file category); other types store no artifact.
ARTIFACTS: Dict[GenerationType, tuple] = {
    GenerationType.RESUME: ("resumes", "resume", "resume_pdf"),
    GenerationType.COVER_LETTER: ("cover-letters", "cover_letter", "cover_letter_pdf"),
}


def build_prompt_snapshot(fields: Mapping[str, Any]) -> str:
    return json.dumps(dict(fields), ensure_ascii=False, sort_keys=True, default=str)


async def _discard_artifact(storage: ObjectStorage, key: str) -> None:
    try:
        await storage.delete(key)
    except Exception as exc:
        logger.warning("Could not remove orphaned artifact %s: %s", key, exc)


async def run_generation(
    *,
    user_id: str,
    generation_type: GenerationType,
    fields: Mapping[str, Any],
    db: AsyncSession,
    orchestrator: FallbackOrchestrator,
    storage: ObjectStorage,
    prompt_snapshot: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """Run one paid generation.

    The user is charged only after the provider call and the artifact upload
    succeeded, in the same transaction that writes the Generation row. Any
    failure before that commit leaves the ledger untouched.
    """
    generation_type = GenerationType(generation_type)

    # Fast fail before paying for a provider call; the charge re-checks atomically.
    async with UnitOfWork(db):
        balance = await get_balance(user_id, db)
    if balance < CREDIT_COST:
        raise InsufficientCreditsError(required=CREDIT_COST, available=balance)

    spec = PROMPT_BUILDERS[generation_type.value](fields)
    ai_result = await orchestrator.generate_with_fallback(spec.prompt, spec.system_prompt, spec.max_tokens)

    s3_key: Optional[str] = None
    file_row: Optional[UserFile] = None
    artifact = ARTIFACTS.get(generation_type)
    if artifact is not None:
        folder, stem, category = artifact
        title = f"{fields.get('name') or 'Document'} {stem.replace('_', ' ').title()}"
        pdf_bytes = await asyncio.to_thread(render_text_pdf, ai_result.text, title)
        stamp = int(time.time() * 1000)
        s3_key = f"users/{user_id}/{folder}/{stamp}-{uuid.uuid4().hex[:8]}.pdf"
        await storage.upload(pdf_bytes, s3_key, "application/pdf")
        file_row = UserFile(
            id=str(uuid.uuid4()),
            user_id=user_id,
            s3_key=s3_key,
            file_name=f"{stem}_{stamp}.pdf",
            mime_type="application/pdf",
            size_bytes=len(pdf_bytes),
            category=category,
        )

    generation = Generation(
        id=str(uuid.uuid4()),
        user_id=user_id,
        type=generation_type.value,
        prompt=build_prompt_snapshot(prompt_snapshot if prompt_snapshot is not None else fields),
        response=ai_result.text,
        model=ai_result.model,
        provider=ai_result.provider,
        processing_ms=ai_result.processing_ms,
        s3_key=s3_key,
        credits_used=CREDIT_COST,
    )

    try:
        async with UnitOfWork(db) as uow:
            uow.add(generation)
            if file_row is not None:
                file_row.generation_id = generation.id
                uow.add(file_row)
            await uow.flush()
            account = await debit_in_session(
                uow.session,
                user_id=user_id,
                amount=CREDIT_COST,
                reason=CreditReason.AI_GENERATION,
                generation_id=generation.id,
            )
    except Exception:
        if s3_key:
            await _discard_artifact(storage, s3_key)
        raise

    logger.info(
        "Generation stored: user=%s type=%s provider=%s balance=%s",
        user_id,
        generation_type.value,
        ai_result.provider,
        account.balance,
    )
    return {
        "generation_id": generation.id,
        "type": generation_type.value,
        "text": ai_result.text,
        "s3_key": s3_key,
        "file_id": file_row.id if file_row is not None else None,
        "processing_ms": ai_result.processing_ms,
        "model": ai_result.model,
        "provider": ai_result.provider,
        "credits_remaining": account.balance,
    }


async def list_generations(
    user_id: str,
    db: AsyncSession,
    *,
    storage: ObjectStorage,
    page: int = 1,
    limit: int = 10,
) -> Dict[str, Any]:
    """Paginated history with signed download links; a link that cannot be signed is null."""
    page = max(int(page), 1)
    limit = max(1, min(int(limit), 100))
    total_result = await db.execute(select(func.count(Generation.id)).where(Generation.user_id == user_id))
    total = int(total_result.scalar() or 0)

    result = await db.execute(
        select(Generation)
        .where(Generation.user_id == user_id)
        .order_by(Generation.created_at.desc(), Generation.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = []
    for row in result.scalars().all():
        download_url = None
        if row.s3_key:
            try:
                download_url = await storage.get_signed_download_url(row.s3_key, settings.SIGNED_URL_TTL_SECONDS)
            except Exception as exc:
                logger.warning("Signed URL unavailable for %s: %s", row.s3_key, exc)
        items.append(
            {
                "id": row.id,
                "type": row.type,
                "model": row.model,
                "provider": row.provider,
                "credits_used": row.credits_used,
                "processing_ms": row.processing_ms,
                "s3_key": row.s3_key,
                "download_url": download_url,
                "prompt": row.prompt,
                "created_at": row.created_at.isoformat() if row.created_at else None,
            }
        )
    return {
        "items": items,
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if total else 0,
    }
