"""FastAPI application for the interview analyzer."""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from interview_analyzer.config import ServerConfig
from interview_analyzer.db_bootstrap import maybe_bootstrap_db_on_startup
from interview_analyzer.db_config import DatabaseBackend, detect_database_backend
from interview_analyzer.exceptions import InterviewAnalyzerError, OperationFailedError
from interview_analyzer.routers import router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan with proper startup and shutdown."""
    print("🚀 Application startup - lifespan function called!")

    if detect_database_backend() == DatabaseBackend.POSTGRESQL:
        print("🐘 Using PostgreSQL database backend")
    else:
        print("📁 Using SQLite database backend")

    # Safe under multi-process servers via an inter-process lock.
    maybe_bootstrap_db_on_startup()

    print("✅ Application startup complete!")
    yield

    print("🔄 Application shutting down...")
    from interview_analyzer.database import engine

    engine.dispose()


# Request timing middleware
class ProcessTimeMiddleware(BaseHTTPMiddleware):
    """Add process time header to responses for monitoring."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        return response


app = FastAPI(
    title="Interview Analyzer API",
    description="Persistence and feature-suggestion lifecycle for AI-analyzed customer interviews",
    version="0.1.0",
    lifespan=lifespan,
)

# Add middleware in order (last added is first executed)
app.add_middleware(ProcessTimeMiddleware)
app.add_middleware(GZipMiddleware, minimum_size=1000)  # Compress responses > 1KB

app.add_middleware(
    CORSMiddleware,
    allow_origins=ServerConfig.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def error_body(exc: InterviewAnalyzerError) -> dict:
    """Client-facing error payload; failed transactions never expose their cause."""
    message = exc.public_message if isinstance(exc, OperationFailedError) else str(exc)
    return {"success": False, "error": exc.public_message, "message": message}


@app.exception_handler(InterviewAnalyzerError)
async def interview_analyzer_error_handler(request: Request, exc: InterviewAnalyzerError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=error_body(exc))


app.include_router(router, tags=["api"])


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/health/detailed")
async def detailed_health():
    """Detailed health check with database and connection info."""
    from sqlalchemy import text

    from interview_analyzer.database import DATABASE_BACKEND, engine

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))

        pool = engine.pool
        pool_info = {
            "size": getattr(pool, "size", lambda: 0)(),
            "checked_in": getattr(pool, "checkedin", lambda: 0)(),
            "checked_out": getattr(pool, "checkedout", lambda: 0)(),
            "overflow": getattr(pool, "overflow", lambda: 0)(),
        }

        return {
            "status": "healthy",
            "database": "connected",
            "backend": DATABASE_BACKEND.value,
            "connection_pool": pool_info,
            "timestamp": time.time(),
        }
    except Exception as e:
        logger.warning("Database health check failed: %s", e)
        return {"status": "unhealthy", "database": "disconnected", "error": str(e), "timestamp": time.time()}


if __name__ == "__main__":
    import uvicorn

    options = ServerConfig.get_uvicorn_config() if ServerConfig.is_production() else ServerConfig.get_development_config()
    uvicorn.run("interview_analyzer.app:app", **options)
