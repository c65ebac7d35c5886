import asyncio
import json
import uuid

import pytest
from sqlalchemy.future import select

import services.generation as generation_service
from models.credit_account import CreditAccount
from models.credit_transaction import CreditTransaction
from models.generation import Generation
from models.user import User
from models.user_file import UserFile
from services.credits import InsufficientCreditsError, open_credit_account
from services.generation import GenerationType, list_generations, run_generation
from services.llm import AiServiceUnavailableError, ProviderError
from services.storage import StorageError
from uow import UnitOfWork


RESUME_FIELDS = {
    "name": "Jane Doe",
    "job_title": "Backend Engineer",
    "experience": "Five years building payment APIs at Acme.",
    "skills": ["Python", "PostgreSQL"],
    "education": "BSc Computer Science",
}
GENERATED_RESUME = "JANE DOE\nBackend Engineer\n\nSUMMARY\nShips reliable payment systems."


async def _create_user(session_maker, credits: int) -> str:
    user_id = str(uuid.uuid4())
    async with session_maker() as db:
        async with UnitOfWork(db) as uow:
            uow.add(User(id=user_id, email=f"{user_id}@example.com"))
            await uow.flush()
            await open_credit_account(user_id, uow.session, initial_credits=credits)
    return user_id


async def _state(session_maker, user_id: str):
    async with session_maker() as db:
        account = (await db.execute(select(CreditAccount).where(CreditAccount.user_id == user_id))).scalar_one()
        transactions = (
            await db.execute(select(CreditTransaction).where(CreditTransaction.credit_account_id == account.id))
        ).scalars().all()
        generations = (await db.execute(select(Generation).where(Generation.user_id == user_id))).scalars().all()
        files = (await db.execute(select(UserFile).where(UserFile.user_id == user_id))).scalars().all()
    return account, transactions, generations, files


def _stored_objects(storage):
    return [path for path in storage.root.rglob("*") if path.is_file()] if storage.root.exists() else []


class FailingUploadStorage:
    def __init__(self, inner):
        self.inner = inner

    async def upload(self, data, key, content_type):
        raise StorageError("bucket unavailable")

    async def get_signed_download_url(self, key, ttl_seconds):
        return await self.inner.get_signed_download_url(key, ttl_seconds)

    async def open(self, key):
        return await self.inner.open(key)

    async def delete(self, key):
        await self.inner.delete(key)


@pytest.mark.asyncio
async def test_successful_resume_is_recorded_stored_and_charged_together(session_maker, storage, scripted_orchestrator):
    user_id = await _create_user(session_maker, credits=5)
    orchestrator, _ = scripted_orchestrator({"gemini": GENERATED_RESUME})

    async with session_maker() as db:
        result = await run_generation(
            user_id=user_id,
            generation_type=GenerationType.RESUME,
            fields=RESUME_FIELDS,
            db=db,
            orchestrator=orchestrator,
            storage=storage,
        )

    assert result["credits_remaining"] == 4
    assert result["provider"] == "gemini"
    assert result["model"] == "Gemini (test)"
    assert result["text"] == GENERATED_RESUME
    assert result["s3_key"].startswith(f"users/{user_id}/resumes/")
    assert storage.path_for(result["s3_key"]).read_bytes().startswith(b"%PDF")

    account, transactions, generations, files = await _state(session_maker, user_id)
    assert (account.balance, account.total_used) == (4, 1)
    assert [generation.id for generation in generations] == [result["generation_id"]]
    assert generations[0].credits_used == 1
    assert json.loads(generations[0].prompt)["job_title"] == "Backend Engineer"
    charges = [row for row in transactions if row.amount < 0]
    assert len(charges) == 1
    assert charges[0].generation_id == result["generation_id"]
    assert charges[0].reason == "AI_GENERATION"
    assert len(files) == 1
    assert files[0].generation_id == result["generation_id"]
    assert files[0].category == "resume_pdf"


@pytest.mark.asyncio
async def test_job_analysis_stores_no_artifact(session_maker, storage, scripted_orchestrator):
    user_id = await _create_user(session_maker, credits=2)
    orchestrator, _ = scripted_orchestrator({"cohere": "KEY REQUIREMENTS\n• Python"})

    async with session_maker() as db:
        result = await run_generation(
            user_id=user_id,
            generation_type="JOB_ANALYSIS",
            fields={"job_description": "Python developer wanted for a growing analytics team in Berlin."},
            db=db,
            orchestrator=orchestrator,
            storage=storage,
        )

    assert result["s3_key"] is None
    assert result["file_id"] is None
    assert result["credits_remaining"] == 1
    assert _stored_objects(storage) == []


@pytest.mark.asyncio
async def test_provider_exhaustion_charges_nothing(session_maker, storage, scripted_orchestrator):
    user_id = await _create_user(session_maker, credits=3)
    orchestrator, _ = scripted_orchestrator(
        {"groq": ProviderError("HTTP 503: down", status_code=503), "gemini": ProviderError("timed out")}
    )

    async with session_maker() as db:
        with pytest.raises(AiServiceUnavailableError):
            await run_generation(
                user_id=user_id,
                generation_type=GenerationType.COVER_LETTER,
                fields={**RESUME_FIELDS, "company": "Globex"},
                db=db,
                orchestrator=orchestrator,
                storage=storage,
            )

    account, transactions, generations, files = await _state(session_maker, user_id)
    assert (account.balance, account.total_used) == (3, 0)
    assert len(transactions) == 1
    assert generations == []
    assert files == []
    assert _stored_objects(storage) == []


@pytest.mark.asyncio
async def test_empty_balance_fails_before_calling_any_provider(session_maker, storage, scripted_orchestrator):
    user_id = await _create_user(session_maker, credits=0)
    orchestrator, adapters = scripted_orchestrator({"groq": GENERATED_RESUME})

    async with session_maker() as db:
        with pytest.raises(InsufficientCreditsError):
            await run_generation(
                user_id=user_id,
                generation_type=GenerationType.RESUME,
                fields=RESUME_FIELDS,
                db=db,
                orchestrator=orchestrator,
                storage=storage,
            )

    assert adapters["groq"].calls == []


@pytest.mark.asyncio
async def test_upload_failure_aborts_without_charge(session_maker, storage, scripted_orchestrator):
    user_id = await _create_user(session_maker, credits=2)
    orchestrator, _ = scripted_orchestrator({"groq": GENERATED_RESUME})

    async with session_maker() as db:
        with pytest.raises(StorageError):
            await run_generation(
                user_id=user_id,
                generation_type=GenerationType.RESUME,
                fields=RESUME_FIELDS,
                db=db,
                orchestrator=orchestrator,
                storage=FailingUploadStorage(storage),
            )

    account, transactions, generations, files = await _state(session_maker, user_id)
    assert account.balance == 2
    assert len(transactions) == 1
    assert generations == []
    assert files == []


@pytest.mark.asyncio
async def test_lost_race_at_charge_time_rolls_back_record_and_artifact(
    session_maker, storage, scripted_orchestrator, monkeypatch
):
    user_id = await _create_user(session_maker, credits=0)
    orchestrator, _ = scripted_orchestrator({"groq": GENERATED_RESUME})

    async def stale_balance(user_id, db):
        return 1

    # Pre-flight sees a credit that a concurrent request already spent.
    monkeypatch.setattr(generation_service, "get_balance", stale_balance)

    async with session_maker() as db:
        with pytest.raises(InsufficientCreditsError):
            await run_generation(
                user_id=user_id,
                generation_type=GenerationType.RESUME,
                fields=RESUME_FIELDS,
                db=db,
                orchestrator=orchestrator,
                storage=storage,
            )

    account, transactions, generations, files = await _state(session_maker, user_id)
    assert (account.balance, account.total_used) == (0, 0)
    assert generations == []
    assert files == []
    assert all(row.amount > 0 for row in transactions)
    assert _stored_objects(storage) == []


@pytest.mark.asyncio
async def test_history_pages_and_signs_download_links(session_maker, storage, scripted_orchestrator):
    user_id = await _create_user(session_maker, credits=5)
    orchestrator, _ = scripted_orchestrator({"groq": GENERATED_RESUME})

    async with session_maker() as db:
        await run_generation(
            user_id=user_id,
            generation_type=GenerationType.RESUME,
            fields=RESUME_FIELDS,
            db=db,
            orchestrator=orchestrator,
            storage=storage,
        )
        await run_generation(
            user_id=user_id,
            generation_type=GenerationType.JOB_ANALYSIS,
            fields={"job_description": "Python developer wanted for a growing analytics team in Berlin."},
            db=db,
            orchestrator=orchestrator,
            storage=storage,
        )

    async with session_maker() as db:
        first_page = await list_generations(user_id, db, storage=storage, page=1, limit=1)
        everything = await list_generations(user_id, db, storage=storage, page=1, limit=10)

    assert first_page["total"] == 2
    assert first_page["total_pages"] == 2
    assert len(first_page["items"]) == 1
    by_type = {item["type"]: item for item in everything["items"]}
    assert by_type["RESUME"]["download_url"].startswith("http://test/files/download/")
    assert by_type["JOB_ANALYSIS"]["download_url"] is None


@pytest.mark.asyncio
async def test_concurrent_generations_on_last_credit_persist_exactly_one(
    session_maker, storage, scripted_orchestrator
):
    user_id = await _create_user(session_maker, credits=1)
    orchestrator, _ = scripted_orchestrator({"groq": "KEY REQUIREMENTS\n• Python"})

    async def attempt():
        async with session_maker() as db:
            return await run_generation(
                user_id=user_id,
                generation_type=GenerationType.JOB_ANALYSIS,
                fields={"job_description": "Python developer wanted for a growing analytics team in Berlin."},
                db=db,
                orchestrator=orchestrator,
                storage=storage,
            )

    results = await asyncio.gather(*(attempt() for _ in range(4)), return_exceptions=True)

    succeeded = [result for result in results if isinstance(result, dict)]
    refused = [result for result in results if isinstance(result, InsufficientCreditsError)]
    assert len(succeeded) == 1
    assert len(refused) == 3
    assert succeeded[0]["credits_remaining"] == 0

    account, transactions, generations, _ = await _state(session_maker, user_id)
    assert (account.balance, account.total_used) == (0, 1)
    assert [generation.id for generation in generations] == [succeeded[0]["generation_id"]]
    charges = [row for row in transactions if row.amount < 0]
    assert [(row.amount, row.generation_id) for row in charges] == [(-1, succeeded[0]["generation_id"])]
