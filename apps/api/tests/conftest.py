import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["JWT_SECRET"] = "test-secret-for-vitacraft-suite-0123456789"
os.environ["AUTO_CREATE_DB_SCHEMA"] = "false"
for _provider_key in ("GROQ_API_KEY", "GEMINI_API_KEY", "COHERE_API_KEY", "HF_API_KEY"):
    os.environ[_provider_key] = ""

from typing import Dict, Optional, Tuple

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from config import settings
from database import Base, get_db
from main import app
from routers import rate_limit
from routers.deps import get_orchestrator, get_storage
from services.llm import FallbackOrchestrator, PROVIDER_ORDER, ProviderAdapter, ProviderRegistry, ProviderSpec
from services.storage import LocalObjectStorage


class ScriptedAdapter(ProviderAdapter):
    """Returns a canned string or raises a canned exception, recording every call."""

    def __init__(self, spec: ProviderSpec, outcome) -> None:
        super().__init__(spec, base_url="http://provider.invalid")
        self.outcome = outcome
        self.calls = []

    async def invoke(self, prompt: str, system_prompt: str, max_tokens: int) -> str:
        self.calls.append({"prompt": prompt, "system_prompt": system_prompt, "max_tokens": max_tokens})
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome


def build_scripted_orchestrator(
    outcomes: Dict[str, object],
) -> Tuple[FallbackOrchestrator, Dict[str, ScriptedAdapter]]:
    """Providers named in `outcomes` are enabled; the rest have no key."""
    providers = {
        key: ProviderSpec(
            key=key,
            display_name=f"{key.title()} (test)",
            model=f"{key}-test-model",
            api_key="test-key" if key in outcomes else "",
        )
        for key in PROVIDER_ORDER
    }
    adapters = {key: ScriptedAdapter(providers[key], outcomes.get(key, "unused")) for key in PROVIDER_ORDER}
    return FallbackOrchestrator(ProviderRegistry(providers=providers), adapters), adapters


@pytest.fixture(autouse=True)
def reset_local_rate_limit_counters():
    """Keep in-memory rate-limit state isolated between tests."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit._local_counters.clear()
    yield
    rate_limit._local_counters.clear()
    app.state.disable_rate_limits = previous


@pytest.fixture
def scripted_orchestrator():
    return build_scripted_orchestrator


@pytest.fixture
def storage(tmp_path):
    return LocalObjectStorage(
        str(tmp_path / "artifacts"),
        signing_secret=settings.JWT_SECRET,
        public_base_url="http://test",
        algorithm=settings.JWT_ALGORITHM,
    )


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    db_path = tmp_path / "vitacraft.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield maker
    await engine.dispose()


@pytest_asyncio.fixture
async def integration_client(session_maker, storage):
    """ASGI client on a temp database; Groq answers every generation by default."""
    orchestrator, _ = build_scripted_orchestrator({"groq": "JANE DOE\nSenior Engineer\n\nSUMMARY\nBuilds things."})

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_storage] = lambda: storage
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_orchestrator, None)
    app.dependency_overrides.pop(get_storage, None)


@pytest.fixture
def register(integration_client):
    """Register through the API; returns (user_id, auth headers)."""

    async def _register(email: str = "jane@example.com", name: Optional[str] = "Jane Doe"):
        response = await integration_client.post("/auth/register", json={"email": email, "name": name})
        assert response.status_code == 201, response.text
        payload = response.json()
        return payload["user_id"], {"Authorization": f"Bearer {payload['session_token']}"}

    return _register
