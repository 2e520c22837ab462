from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from licitahub.middleware.audit import AuditMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from licitahub.core.config import settings
from licitahub.core.errors import ProcurementAPIError, procurement_error_handler, validation_error_handler
from licitahub.core.rate_limit import limiter
from licitahub.api.routes import router
from licitahub.database import init_db, engine
from licitahub.routers import admin, billing, saved_filters
from contextlib import asynccontextmanager
import logging

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI.
    Handles startup and shutdown events.
    """
    # ========== STARTUP ==========
    logger.info("=" * 60)
    logger.info("🚀 LicitaHub API Starting...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"API Host: {settings.API_HOST}:{settings.API_PORT}")
    logger.info(f"PNCP: {settings.PNCP_BASE_URL}")

    try:
        logger.info("Initializing database...")
        init_db()
        logger.info("✓ Database tables created/verified successfully")
    except Exception as e:
        logger.error(f"✗ Database initialization failed: {e}")
        logger.warning("API will start but database operations may fail")

    logger.info(f"Docs available at: http://{settings.API_HOST}:{settings.API_PORT}/docs")
    logger.info("=" * 60)

    yield  # Application runs here

    # ========== SHUTDOWN ==========
    logger.info("🛑 LicitaHub API shutting down...")
    try:
        engine.dispose()
        logger.info("✓ Database connections closed")
    except Exception as e:
        logger.error(f"Error closing database connections: {e}")


# CREATE APP INSTANCE
app = FastAPI(
    title="LicitaHub API",
    description="Busca agregada de licitações públicas no PNCP",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Add audit logging middleware
app.add_middleware(AuditMiddleware)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Search and detail failures keep their response envelope
app.add_exception_handler(ProcurementAPIError, procurement_error_handler)
app.add_exception_handler(RequestValidationError, validation_error_handler)

# Include all API routes
app.include_router(router)
app.include_router(saved_filters.router)
app.include_router(admin.router)
app.include_router(billing.router)

logger.info("✓ All routes registered")


@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "message": "LicitaHub API - Busca de Licitações Públicas",
        "version": "1.0.0",
        "docs": "/docs",
        "redoc": "/redoc",
        "health": "/health",
        "status": "operational"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring"""
    from sqlalchemy import text

    db_status = "healthy"
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    return {
        "status": "healthy" if db_status == "healthy" else "degraded",
        "service": "licitahub-api",
        "environment": settings.ENVIRONMENT,
        "version": "1.0.0",
        "database": db_status
    }


@app.get("/ready")
async def readiness_check():
    """Readiness check - verifies the database and the PNCP API are reachable"""
    from sqlalchemy import text
    import httpx

    services = {
        "api": "ready",
        "database": "unknown",
        "pncp": "unknown"
    }

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        services["database"] = "ready"
    except Exception as e:
        services["database"] = f"not ready: {str(e)}"
        logger.error(f"Database readiness check failed: {e}")

    # Any answer below 500 means the upstream is up, even if it rejects the bare URL
    try:
        async with httpx.AsyncClient(timeout=5.0) as client:
            response = await client.get(settings.PNCP_BASE_URL)
            services["pncp"] = "ready" if response.status_code < 500 else "not ready"
    except Exception as e:
        services["pncp"] = f"not ready: {str(e)}"
        logger.error(f"PNCP readiness check failed: {e}")

    all_ready = all(state == "ready" for state in services.values())

    return {
        "status": "ready" if all_ready else "not ready",
        "services": services
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "licitahub.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=True,
        log_level="info"
    )
