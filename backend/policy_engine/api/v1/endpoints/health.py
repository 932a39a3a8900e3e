"""Health check endpoint."""

from typing import Annotated

from fastapi import APIRouter, Depends

from policy_engine.config import settings
from policy_engine.deps import get_store
from policy_engine.repositories import PolicyStore

router = APIRouter()


@router.get("/health")
async def health_check(store: Annotated[PolicyStore, Depends(get_store)]) -> dict:
    """
    Health check endpoint.

    Verifies that the API is running and the policy store is reachable.

    Returns:
        dict: Health status with API and store status
    """
    try:
        await store.ping()
        store_status = "healthy"
    except Exception as e:
        store_status = f"unhealthy: {str(e)}"

    return {
        "status": "healthy" if store_status == "healthy" else "degraded",
        "api": "healthy",
        "store": settings.POLICY_STORE,
        "storeStatus": store_status,
    }
