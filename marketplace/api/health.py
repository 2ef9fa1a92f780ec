from fastapi import APIRouter
from sqlalchemy import text

from marketplace.database import engine
from marketplace.utils.cache import product_cache

router = APIRouter(prefix="/health", tags=["Health"])


@router.get(
    "/",
    summary="Health check",
    description="Basic health check endpoint."
)
def health_check():
    """Simple health check."""
    return {"status": "healthy"}


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if all services (DB, Redis) are ready."
)
def readiness_check():
    """
    Readiness check for all dependencies.

    Returns status of:
    - Database connection
    - Redis connection (skipped when the cache is disabled)
    """
    checks = {
        "database": False,
        "redis": False
    }

    # Check database
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            checks["database"] = True
    except Exception as e:
        checks["database_error"] = str(e)

    # Check Redis
    if not product_cache.enabled:
        checks["redis"] = True
        checks["redis_status"] = "disabled"
    else:
        try:
            product_cache.ping()
            checks["redis"] = True
        except Exception as e:
            checks["redis_error"] = str(e)

    # Determine overall status
    all_healthy = all([checks["database"], checks["redis"]])

    return {
        "status": "ready" if all_healthy else "not_ready",
        "checks": checks
    }
