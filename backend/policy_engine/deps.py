"""Dependency injection for FastAPI endpoints."""

from contextlib import asynccontextmanager
from typing import Annotated, AsyncGenerator, Optional

from fastapi import Depends, Header, HTTPException, status

from policy_engine.config import settings
from policy_engine.db.session import get_db
from policy_engine.repositories import InMemoryPolicyStore, PolicyStore, SqlAlchemyPolicyStore
from policy_engine.services import PolicyEvaluationService, PolicyLifecycleManager
from policy_engine.services.rule_engine import PolicyEvaluator

__all__ = [
    "get_author",
    "get_db",
    "get_evaluation_service",
    "get_if_match",
    "get_lifecycle_manager",
    "get_store",
    "store_scope",
]

_memory_store: Optional[InMemoryPolicyStore] = None


def get_memory_store() -> InMemoryPolicyStore:
    """Process-wide in-memory store used when POLICY_STORE=memory."""
    global _memory_store
    if _memory_store is None:
        _memory_store = InMemoryPolicyStore()
    return _memory_store


async def get_store() -> AsyncGenerator[PolicyStore, None]:
    """
    Get the configured policy store.

    The SQL store is bound to a request-scoped session that is committed
    when the request succeeds.
    """
    if settings.POLICY_STORE == "memory":
        yield get_memory_store()
        return

    async with asynccontextmanager(get_db)() as session:
        yield SqlAlchemyPolicyStore(session)


# Same store outside a request (startup hooks, scripts)
store_scope = asynccontextmanager(get_store)


def build_lifecycle_manager(store: PolicyStore) -> PolicyLifecycleManager:
    return PolicyLifecycleManager(
        store,
        code_prefix=settings.POLICY_CODE_PREFIX,
        default_priority=settings.DEFAULT_POLICY_PRIORITY,
    )


def get_lifecycle_manager(
    store: Annotated[PolicyStore, Depends(get_store)],
) -> PolicyLifecycleManager:
    return build_lifecycle_manager(store)


def get_evaluation_service(
    store: Annotated[PolicyStore, Depends(get_store)],
) -> PolicyEvaluationService:
    return PolicyEvaluationService(
        store, PolicyEvaluator(refer_on_risk_flag=settings.REFER_ON_RISK_FLAG)
    )


def get_author(x_user: Annotated[Optional[str], Header()] = None) -> str:
    """Acting user from the X-User header (authentication happens upstream)."""
    return (x_user or "").strip() or "system"


def get_if_match(if_match: Annotated[Optional[str], Header()] = None) -> Optional[int]:
    """
    Lock version from an If-Match header.

    Accepts ``3``, ``"3"`` and ``W/"3"``.
    """
    if if_match is None:
        return None
    raw = if_match.strip()
    if raw.startswith("W/"):
        raw = raw[2:]
    raw = raw.strip('"')
    try:
        return int(raw)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"If-Match must be a lock version, got {if_match!r}",
        )
