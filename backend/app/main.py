"""
FruFresco Ops - Main FastAPI Application
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime

from app.api.v1 import router as api_v1_router
from app.core.settings import settings
from app.exceptions import FruFrescoException
from app.logging_config import setup_logging, get_logger

# Setup structured logging
setup_logging()
logger = get_logger(__name__)


def init_database():
    """Initialize database tables on startup (idempotent)."""
    from app.db.session import engine
    from app.db.base import Base
    import app.models  # noqa: F401
    logger.info("Checking database tables...")
    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        logger.error("Database initialization failed", extra={"error": str(e)})
        return
    logger.info("Database tables ready")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info(
        "Starting FruFresco Ops API",
        extra={
            "version": settings.VERSION,
            "environment": settings.ENVIRONMENT,
            "debug": settings.DEBUG,
        }
    )
    init_database()
    yield
    logger.info("Shutting down FruFresco Ops API")


# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Procurement consolidation and purchase tracking for the distribution center",
    version=settings.VERSION,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "Origin", "X-Requested-With"],
)


# ===================
# Exception Handlers
# ===================

def _timestamp() -> str:
    return datetime.utcnow().isoformat() + "Z"


@app.exception_handler(FruFrescoException)
async def frufresco_exception_handler(request: Request, exc: FruFrescoException):
    logger.warning(
        f"FruFresco Exception: {exc.error_code} - {exc.message}",
        extra={"error_code": exc.error_code, "details": exc.details, "path": request.url.path}
    )
    error_dict = exc.to_dict()
    error_dict["timestamp"] = _timestamp()
    return JSONResponse(status_code=exc.status_code, content=error_dict)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"] if loc != "body")
        errors.append({"field": field, "message": error["msg"], "type": error["type"]})
    logger.warning("Validation error on %s", request.url.path, extra={"errors": errors})
    return JSONResponse(
        status_code=422,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": {"errors": errors},
            "timestamp": _timestamp(),
        },
    )


@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.url.path}: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "DATABASE_ERROR",
            "message": "A database error occurred. Please try again.",
            "timestamp": _timestamp(),
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error on {request.url.path}: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again later.",
            "timestamp": _timestamp(),
        },
    )


# Include API routes
app.include_router(api_v1_router, prefix=settings.API_V1_STR)


@app.get("/")
async def root():
    return {"message": "FruFresco Ops API", "version": settings.VERSION, "status": "online"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=8001, reload=True)
