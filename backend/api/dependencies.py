"""
Dependency injection for the API service.
Provides the answer service and prediction store to route handlers.
"""
from __future__ import annotations

from api.answers import AnswerService
from verifier.store.base import PredictionStore

# Module-level singletons, initialized at startup
_service: AnswerService | None = None
_store: PredictionStore | None = None


def init_dependencies(service: AnswerService, store: PredictionStore) -> None:
    """Initialize module-level singletons. Called once at startup."""
    global _service, _store
    _service = service
    _store = store


def reset_dependencies() -> None:
    global _service, _store
    _service = None
    _store = None


def get_answer_service() -> AnswerService:
    """FastAPI dependency: returns the shared AnswerService."""
    if _service is None:
        raise RuntimeError("AnswerService not initialized, call init_dependencies first")
    return _service


def get_store() -> PredictionStore:
    """FastAPI dependency: returns the shared PredictionStore."""
    if _store is None:
        raise RuntimeError("PredictionStore not initialized, call init_dependencies first")
    return _store
