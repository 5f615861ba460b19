"""
Campus Placement Drive Service - Main Application

FastAPI backend with:
- PostgreSQL for drives, students, applications and phases
- MongoDB for in-app notifications
- JWT role gating (student / coordinator / advisor)

Run: uvicorn app.main:app --reload
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from app.api.routes import api_router
from app.core.config import get_settings
from app.core.exceptions import (
    AuthorizationException, ConflictException, DomainException,
    ExternalServiceException, ResourceNotFoundException, UnresolvedEmails,
    ValidationException
)
from app.core.logging_config import configure_logging
from app.db.mongodb import init_mongo_indexes
from app.db.postgres import engine
from app.db.tables import create_tables
from app.services.notification_service import get_dispatcher

settings = get_settings()

# Create FastAPI app
app = FastAPI(
    title="Campus Placement Drive Service",
    description="""
    Drive lifecycle and eligibility engine for campus placements.

    ## Features
    - **Drives**: Coordinators create drives with branch, CGPA, backlog and semester criteria
    - **Eligibility**: Every student's eligible drives are kept up to date
    - **Applications**: Students apply to drives they qualify for
    - **Phases**: Shortlist files narrow the pool phase by phase until final selection
    - **Students**: Advisors onboard students one by one or from a spreadsheet
    - **Notifications**: Students are told about new drives, shortlists and results
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware (allow all for development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(api_router, prefix="/api")


# ============================================================
# ERROR HANDLING
# ============================================================

STATUS_BY_EXCEPTION = [
    (ValidationException, 400),
    (AuthorizationException, 403),
    (ResourceNotFoundException, 404),
    (ConflictException, 409),
    (ExternalServiceException, 502),
]


@app.exception_handler(DomainException)
async def domain_exception_handler(request: Request, exc: DomainException):
    status_code = next((code for cls, code in STATUS_BY_EXCEPTION if isinstance(exc, cls)), 500)
    body = {"detail": str(exc)}
    if isinstance(exc, UnresolvedEmails):
        body["invalid_emails"] = exc.emails

    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {status_code}: {exc}")
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# ============================================================
# LIFECYCLE
# ============================================================

@app.on_event("startup")
async def startup_event():
    """Configure logging, create tables and MongoDB indexes."""
    configure_logging()
    create_tables(engine)
    logger.info("Database tables ready")

    if settings.notifications_enabled:
        try:
            init_mongo_indexes()
        except Exception as e:
            logger.warning(f"MongoDB index initialization failed: {e}")


@app.on_event("shutdown")
async def shutdown_event():
    """Let queued notifications go out before the process exits."""
    get_dispatcher().stop()


@app.get("/", tags=["Health"])
async def root():
    return {"status": "healthy", "app": "Campus Placement Drive Service"}


@app.get("/health", tags=["Health"])
def health_check():
    """Detailed health check."""
    from app.db.postgres import test_postgres_connection
    from app.db.mongodb import test_mongo_connection

    postgres_ok = test_postgres_connection()
    return {
        "status": "healthy" if postgres_ok else "degraded",
        "postgres": "connected" if postgres_ok else "disconnected",
        "mongodb": (
            ("connected" if test_mongo_connection() else "disconnected")
            if settings.notifications_enabled else "disabled"
        ),
    }
