import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from reputation.core.config import get_settings
from reputation.core.database import close_supabase, init_supabase
from reputation.core.exceptions import register_exception_handlers
from reputation.core.logging_config import setup_logging
from reputation.core.middleware import CorrelationIDMiddleware, JWTValidationMiddleware
from reputation.core.rate_limit import limiter, rate_limit_exceeded_handler
from reputation.core.redis import close_redis, init_redis
from reputation.routers import health, reviews

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    setup_logging()
    logger.info("Starting %s...", settings.app_name)
    init_supabase()
    init_redis()
    logger.info("Redis connection initialized")
    yield
    logger.info("Shutting down %s...", settings.app_name)
    close_redis()
    close_supabase()
    logger.info("Connections closed")


app = FastAPI(
    title=settings.app_name,
    description="Review and reputation engine for the lease platform",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# JWT validation middleware (runs after CORS, before routes)
app.add_middleware(JWTValidationMiddleware)

# Correlation IDs (outermost, so every log line of a request carries one)
app.add_middleware(CorrelationIDMiddleware)

# Rate limiting (slowapi + Redis)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# Global exception handlers (domain exceptions → HTTP responses)
register_exception_handlers(app)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(reviews.router, prefix=f"{settings.api_prefix}/reviews", tags=["Reviews"])
