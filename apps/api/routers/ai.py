"""AI generation router: resumes, cover letters, job and resume analysis, history."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from routers.auth_scope import AuthContext, ensure_user_scope, get_auth_context
from routers.deps import get_orchestrator, get_storage
from routers.rate_limit import rate_limit
from services.credits import AccountNotFoundError, InsufficientCreditsError
from services.documents import extract_text_from_pdf
from services.generation import GenerationType, list_generations, run_generation
from services.llm import AiServiceUnavailableError, FallbackOrchestrator
from services.storage import ObjectStorage, StorageError

router = APIRouter()
logger = logging.getLogger(__name__)

AI_UNAVAILABLE_MESSAGE = "AI service is temporarily unavailable. Please try again shortly."
ai_rate_limit = rate_limit("ai_generation", limit=10, window_seconds=3600)


def _check_skills(value: Union[List[str], str, None], required: bool) -> Union[List[str], str, None]:
    if value is None:
        if required:
            raise ValueError("Skills are required")
        return value
    if isinstance(value, list):
        cleaned = [item.strip() for item in value if item and item.strip()]
        if required and not cleaned:
            raise ValueError("At least one skill required")
        return cleaned
    value = value.strip()
    if required and len(value) < 2:
        raise ValueError("Skills are required")
    if len(value) > 500:
        raise ValueError("Skills list is too long")
    return value


class ResumeRequest(BaseModel):
    user_id: Optional[str] = None
    name: str = Field(min_length=2, max_length=100)
    job_title: str = Field(min_length=2, max_length=100)
    experience: str = Field(min_length=20, max_length=3000)
    skills: Union[List[str], str]
    education: str = Field(min_length=5, max_length=500)
    summary: Optional[str] = Field(default=None, max_length=2000)
    tone: Optional[str] = Field(default=None, max_length=50)
    target_company: Optional[str] = Field(default=None, max_length=100)
    years_of_experience: Optional[str] = Field(default=None, max_length=20)
    certifications: Optional[str] = Field(default=None, max_length=500)
    languages: Optional[str] = Field(default=None, max_length=200)
    custom_instructions: Optional[str] = Field(default=None, max_length=500)

    @field_validator("skills")
    @classmethod
    def _skills_present(cls, value):
        return _check_skills(value, required=True)


class CoverLetterRequest(BaseModel):
    user_id: Optional[str] = None
    name: str = Field(min_length=2, max_length=100)
    job_title: str = Field(min_length=2, max_length=100)
    company: str = Field(min_length=2, max_length=100)
    experience: str = Field(min_length=20, max_length=2000)
    skills: Union[List[str], str]
    why_company: Optional[str] = Field(default=None, max_length=500)
    tone: Optional[str] = Field(default=None, max_length=50)
    hiring_manager: Optional[str] = Field(default=None, max_length=100)
    achievements: Optional[str] = Field(default=None, max_length=500)
    custom_instructions: Optional[str] = Field(default=None, max_length=500)

    @field_validator("skills")
    @classmethod
    def _skills_present(cls, value):
        return _check_skills(value, required=True)


class JobAnalysisRequest(BaseModel):
    user_id: Optional[str] = None
    job_description: str = Field(min_length=50, max_length=5000)
    skills: Optional[Union[List[str], str]] = None
    target_role: Optional[str] = Field(default=None, max_length=100)
    experience_level: Optional[str] = Field(default=None, max_length=50)
    industry: Optional[str] = Field(default=None, max_length=100)
    custom_instructions: Optional[str] = Field(default=None, max_length=500)

    @field_validator("skills")
    @classmethod
    def _skills_optional(cls, value):
        return _check_skills(value, required=False)


async def _generate(
    *,
    auth: AuthContext,
    generation_type: GenerationType,
    fields: Mapping[str, Any],
    db: AsyncSession,
    orchestrator: FallbackOrchestrator,
    storage: ObjectStorage,
    prompt_snapshot: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    try:
        return await run_generation(
            user_id=auth.user_id,
            generation_type=generation_type,
            fields=fields,
            db=db,
            orchestrator=orchestrator,
            storage=storage,
            prompt_snapshot=prompt_snapshot,
        )
    except InsufficientCreditsError as exc:
        raise HTTPException(status_code=402, detail={"code": exc.code, "message": str(exc)}) from exc
    except AiServiceUnavailableError as exc:
        logger.error("AI generation unavailable for user %s: %s", auth.user_id, exc.message)
        raise HTTPException(
            status_code=503,
            detail={"code": exc.code, "message": AI_UNAVAILABLE_MESSAGE},
        ) from exc
    except StorageError as exc:
        logger.exception("Artifact upload failed for user %s", auth.user_id)
        raise HTTPException(status_code=500, detail="Could not store the generated document.") from exc
    except AccountNotFoundError as exc:
        logger.exception("Credit account missing for user %s", auth.user_id)
        raise HTTPException(status_code=500, detail="Internal server error") from exc


@router.post("/resume/generate")
async def generate_resume(
    request: ResumeRequest,
    _rate_limit: None = Depends(ai_rate_limit),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
    orchestrator: FallbackOrchestrator = Depends(get_orchestrator),
    storage: ObjectStorage = Depends(get_storage),
):
    ensure_user_scope(auth.user_id, request.user_id)
    return await _generate(
        auth=auth,
        generation_type=GenerationType.RESUME,
        fields=request.model_dump(exclude={"user_id"}, exclude_none=True),
        db=db,
        orchestrator=orchestrator,
        storage=storage,
    )


@router.post("/cover-letter/generate")
async def generate_cover_letter(
    request: CoverLetterRequest,
    _rate_limit: None = Depends(ai_rate_limit),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
    orchestrator: FallbackOrchestrator = Depends(get_orchestrator),
    storage: ObjectStorage = Depends(get_storage),
):
    ensure_user_scope(auth.user_id, request.user_id)
    return await _generate(
        auth=auth,
        generation_type=GenerationType.COVER_LETTER,
        fields=request.model_dump(exclude={"user_id"}, exclude_none=True),
        db=db,
        orchestrator=orchestrator,
        storage=storage,
    )


@router.post("/job-analyzer/analyze")
async def analyze_job(
    request: JobAnalysisRequest,
    _rate_limit: None = Depends(ai_rate_limit),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
    orchestrator: FallbackOrchestrator = Depends(get_orchestrator),
    storage: ObjectStorage = Depends(get_storage),
):
    ensure_user_scope(auth.user_id, request.user_id)
    return await _generate(
        auth=auth,
        generation_type=GenerationType.JOB_ANALYSIS,
        fields=request.model_dump(exclude={"user_id"}, exclude_none=True),
        db=db,
        orchestrator=orchestrator,
        storage=storage,
    )


@router.post("/resume-analyzer/analyze")
async def analyze_resume(
    resume_file: UploadFile = File(...),
    job_description: str = Form(..., min_length=50, max_length=5000),
    target_role: Optional[str] = Form(default=None, max_length=100),
    experience_level: Optional[str] = Form(default=None, max_length=50),
    industry: Optional[str] = Form(default=None, max_length=100),
    custom_instructions: Optional[str] = Form(default=None, max_length=500),
    user_id: Optional[str] = Form(default=None),
    _rate_limit: None = Depends(ai_rate_limit),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
    orchestrator: FallbackOrchestrator = Depends(get_orchestrator),
    storage: ObjectStorage = Depends(get_storage),
):
    """Score an uploaded PDF resume against a job description."""
    ensure_user_scope(auth.user_id, user_id)

    filename = resume_file.filename or "resume.pdf"
    if resume_file.content_type != "application/pdf" and not filename.lower().endswith(".pdf"):
        raise HTTPException(status_code=422, detail="Resume must be a PDF file.")

    max_bytes = int(settings.MAX_RESUME_UPLOAD_BYTES)
    data = await resume_file.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise HTTPException(status_code=413, detail=f"Resume exceeds the {max_bytes // (1024 * 1024)}MB upload limit.")
    if not data:
        raise HTTPException(status_code=422, detail="Uploaded resume is empty.")

    try:
        resume_text = await asyncio.to_thread(extract_text_from_pdf, data)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    options = {
        "job_description": job_description,
        "target_role": target_role,
        "experience_level": experience_level,
        "industry": industry,
        "custom_instructions": custom_instructions,
    }
    options = {key: value for key, value in options.items() if value is not None}
    return await _generate(
        auth=auth,
        generation_type=GenerationType.RESUME_ANALYSIS,
        fields={**options, "resume_text": resume_text},
        db=db,
        orchestrator=orchestrator,
        storage=storage,
        prompt_snapshot={**options, "resume_file": f"<pdf upload: {filename}, {len(data)} bytes>"},
    )


@router.get("/history")
async def generation_history(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    user_id: Optional[str] = Query(default=None),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    scoped_user_id = ensure_user_scope(auth.user_id, user_id)
    return await list_generations(scoped_user_id, db, storage=storage, page=page, limit=limit)
