"""
Pediatric Triage Review API - Main Application

Backend of the provider dashboard that reviews AI triage conversations
between parents and the Clara assistant.

ROUTERS:
- stats_router.py        - Dashboard stats, badge counts, analytics
- patients_router.py     - Patients, children, child medical record
- interactions_router.py - AI interactions and provider reviews
- escalations_router.py  - Escalations and message threads
- assistant_router.py    - Clara chat assistant
"""

import time
from datetime import datetime

import psutil
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import CORS_ORIGINS, CORS_ALLOW_CREDENTIALS, HOST, PORT, get_config_summary
from database import create_tables, SessionLocal
from middleware import RequestLoggingMiddleware
from structured_logging import get_logger

# =============================================================================
# IMPORT ROUTERS
# =============================================================================

# Dashboard Stats, Badges & Analytics
from routers.stats_router import router as stats_router

# Patients, Children & Medical Record
from routers.patients_router import router as patients_router

# AI Interactions & Provider Reviews
from routers.interactions_router import router as interactions_router

# Escalations & Messages
from routers.escalations_router import router as escalations_router

# Clara Assistant (LLM Integration)
from routers.assistant_router import router as assistant_router

logger = get_logger("api")

# =============================================================================
# APPLICATION SETUP
# =============================================================================

app = FastAPI(
    title="Pediatric Triage Review API",
    description="Provider dashboard backend for reviewing AI pediatric triage interactions, "
                "escalating concerns and messaging parents.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Create database tables on startup
create_tables()

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add request logging middleware (logs all API calls)
app.add_middleware(RequestLoggingMiddleware, log_headers=False)

# =============================================================================
# ERROR RESPONSES
# =============================================================================

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Field-level details stay in the log; bodies may contain PHI
    logger.warning(
        "Request validation failed",
        extra={"http_path": request.url.path, "error_count": len(exc.errors()),
               "fields": [".".join(str(part) for part in err.get("loc", ())) for err in exc.errors()]},
    )
    return JSONResponse(status_code=400, content={"error": "Invalid request data"})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception",
        extra={"http_path": request.url.path, "error_type": type(exc).__name__},
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# =============================================================================
# REGISTER ROUTERS
# =============================================================================

app.include_router(stats_router)
app.include_router(patients_router)
app.include_router(interactions_router)
app.include_router(escalations_router)
app.include_router(assistant_router)

# =============================================================================
# HEALTH CHECK ENDPOINTS
# =============================================================================

@app.get("/")
def read_root():
    return {
        "message": "Pediatric Triage Review API v1.0",
        "status": "healthy",
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    """
    Basic health check endpoint.
    Returns database connectivity plus process memory, CPU and uptime.
    """
    db_status = "healthy"
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Health check database probe failed", extra={"error_type": type(e).__name__})
        db_status = f"unhealthy: {type(e).__name__}"
    finally:
        db.close()

    memory = psutil.virtual_memory()
    process = psutil.Process()
    uptime_seconds = time.time() - process.create_time()

    return {
        "status": "healthy" if db_status == "healthy" else "degraded",
        "timestamp": datetime.utcnow().isoformat(),
        "database": db_status,
        "memory": {
            "total_gb": round(memory.total / (1024**3), 2),
            "available_gb": round(memory.available / (1024**3), 2),
            "used_percent": memory.percent,
        },
        "process_memory_mb": round(process.memory_info().rss / (1024**2), 1),
        "cpu": {
            "cores": psutil.cpu_count(),
        },
        "uptime": _format_uptime(uptime_seconds),
        "uptime_seconds": round(uptime_seconds),
        "config": get_config_summary(),
    }


def _format_uptime(seconds: float) -> str:
    """Format uptime seconds to human readable string."""
    days, remainder = divmod(int(seconds), 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, secs = divmod(remainder, 60)

    parts = []
    if days > 0:
        parts.append(f"{days}d")
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    parts.append(f"{secs}s")

    return " ".join(parts)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=HOST, port=PORT)
