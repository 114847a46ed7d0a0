from fastapi import APIRouter

from reputation.core.redis import get_redis

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "lease-reputation-api"}


@router.get("/health/redis")
async def redis_health_check():
    """Redis health check endpoint."""
    try:
        get_redis().ping()
        return {"status": "healthy", "service": "redis"}
    except Exception as e:
        return {"status": "unhealthy", "service": "redis", "error": str(e)}


@router.get("/health/database")
async def database_health_check():
    """Supabase connectivity check."""
    from reputation.core.database import get_supabase

    try:
        get_supabase().table("reviews").select("id").limit(1).execute()
        return {"status": "healthy", "service": "supabase"}
    except Exception as e:
        return {"status": "unhealthy", "service": "supabase", "error": str(e)}


@router.get("/")
async def root():
    """Root endpoint."""
    return {"message": "Welcome to the Lease Reputation API", "docs": "/docs"}
