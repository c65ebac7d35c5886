"""Shared router dependencies for collaborators built once per process."""

from functools import lru_cache

from config import settings
from services.llm import FallbackOrchestrator, build_orchestrator
from services.storage import LocalObjectStorage, build_storage


@lru_cache(maxsize=1)
def get_orchestrator() -> FallbackOrchestrator:
    return build_orchestrator(settings)


@lru_cache(maxsize=1)
def get_storage() -> LocalObjectStorage:
    return build_storage(settings)
