"""
Exam Portal - FastAPI Application
Main application entry point with middleware and route configuration
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm.exc import StaleDataError

from exam_portal.api.v1 import api_router
from exam_portal.core.config import settings
from exam_portal.core.database import init_db
from exam_portal.services.errors import (
    IncompleteExamError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    await init_db()
    print("[Startup] Database tables initialized")

    yield

    # Shutdown
    pass


def _error_response(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})
    return handler


async def _stale_submission_handler(request: Request, exc: StaleDataError) -> JSONResponse:
    logger.warning(f"Concurrent update rejected on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": "Submission was modified by another request; reload and retry"},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="IELTS-style exam taking, scoring and grading",
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_url="/openapi.json" if settings.DEBUG else None,
        lifespan=lifespan,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Submission errors -> HTTP status codes
    app.add_exception_handler(NotFoundError, _error_response(status.HTTP_404_NOT_FOUND))
    app.add_exception_handler(InvalidStateError, _error_response(status.HTTP_400_BAD_REQUEST))
    app.add_exception_handler(IncompleteExamError, _error_response(status.HTTP_400_BAD_REQUEST))
    app.add_exception_handler(ValidationError, _error_response(status.HTTP_400_BAD_REQUEST))
    app.add_exception_handler(StaleDataError, _stale_submission_handler)

    # Include API routes
    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    # Health check endpoint
    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "exam_portal.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
