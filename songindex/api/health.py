"""Health check endpoint — verifies backend, Redis and the loaded catalog."""

from fastapi import APIRouter, Request

from songindex.core import redis_client

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Check backend status and connectivity to infrastructure services."""
    redis_ok = redis_client.check_connection()
    catalog_ok = getattr(request.app.state, "catalog", None) is not None

    all_ok = redis_ok and catalog_ok

    return {
        "status": "ok" if all_ok else "degraded",
        "services": {
            "redis": "ok" if redis_ok else "error",
            "catalog": "ok" if catalog_ok else "error",
        }
    }
