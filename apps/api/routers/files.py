"""Stored document router: listing, signed links, token downloads and deletion."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from database import get_db
from models.user_file import UserFile
from routers.auth_scope import AuthContext, get_auth_context
from routers.deps import get_storage
from services.storage import LocalObjectStorage, StorageError
from uow import UnitOfWork

router = APIRouter()
logger = logging.getLogger(__name__)


def _serialize_file(row: UserFile, download_url: Optional[str]) -> dict:
    return {
        "id": row.id,
        "generation_id": row.generation_id,
        "file_name": row.file_name,
        "mime_type": row.mime_type,
        "size_bytes": row.size_bytes,
        "category": row.category,
        "s3_key": row.s3_key,
        "download_url": download_url,
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }


async def _owned_file(db: AsyncSession, file_id: str, user_id: str) -> UserFile:
    result = await db.execute(select(UserFile).where(UserFile.id == file_id))
    row = result.scalar_one_or_none()
    if row is None:
        raise HTTPException(status_code=404, detail="File not found")
    if row.user_id != user_id:
        raise HTTPException(status_code=403, detail="Access denied")
    return row


@router.get("")
async def list_files(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
):
    result = await db.execute(
        select(UserFile).where(UserFile.user_id == auth.user_id).order_by(UserFile.created_at.desc())
    )
    items = []
    for row in result.scalars().all():
        try:
            url = await storage.get_signed_download_url(row.s3_key, settings.SIGNED_URL_TTL_SECONDS)
        except StorageError as exc:
            logger.warning("Signed URL unavailable for %s: %s", row.s3_key, exc)
            url = None
        items.append(_serialize_file(row, url))
    return {"items": items, "count": len(items)}


@router.get("/signed-url/{file_id}")
async def signed_url(
    file_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
):
    row = await _owned_file(db, file_id, auth.user_id)
    try:
        url = await storage.get_signed_download_url(row.s3_key, settings.SIGNED_URL_TTL_SECONDS)
    except StorageError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {
        "url": url,
        "file_name": row.file_name,
        "mime_type": row.mime_type,
        "expires_in": settings.SIGNED_URL_TTL_SECONDS,
    }


@router.get("/download/{token}")
async def download_file(token: str, storage: LocalObjectStorage = Depends(get_storage)):
    """The token itself is the credential; no session header is needed."""
    try:
        path = storage.resolve_download_token(token)
    except StorageError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    return FileResponse(path, media_type="application/pdf", filename=path.name)


@router.delete("/{file_id}")
async def delete_file(
    file_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
):
    row = await _owned_file(db, file_id, auth.user_id)
    s3_key = row.s3_key
    async with UnitOfWork(db) as uow:
        await uow.session.delete(row)
    try:
        await storage.delete(s3_key)
    except (StorageError, OSError) as exc:
        logger.warning("Stored object %s could not be removed: %s", s3_key, exc)
    return {"message": "File deleted successfully", "id": file_id}
