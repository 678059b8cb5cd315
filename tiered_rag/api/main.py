"""FastAPI application for the Tiered RAG Assistant."""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tiered_rag import __version__
from tiered_rag.config import get_settings
from tiered_rag.api.routers import chat_router, knowledge_router, queue_router
from tiered_rag.api.schemas import HealthResponse

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting Tiered RAG Assistant...")
    settings = get_settings()
    logger.info(f"Debug mode: {settings.debug}")
    logger.info(
        f"Retrieval threshold {settings.retrieval.match_threshold:.2f}, "
        f"queue dedup threshold {settings.queue.dedup_threshold:.2f}"
    )
    yield
    # Shutdown
    logger.info("Shutting down Tiered RAG Assistant...")
    from tiered_rag.services.queue_service import get_queue_writer
    await get_queue_writer().drain()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Tiered RAG Assistant",
        description="Knowledge base answers with web search fallback and a review queue",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if isinstance(exc.detail, dict) and "message" in exc.detail:
            content = dict(exc.detail)
        else:
            content = {"message": str(exc.detail)}
        return JSONResponse(
            status_code=exc.status_code,
            content=content,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        problems = []
        for error in exc.errors():
            field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
            problems.append(f"{field}: {error.get('msg')}" if field else error.get("msg", ""))
        logger.info(f"Rejected invalid request to {request.url.path}: {problems}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": "Invalid request: " + "; ".join(problems)},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "message": "Internal server error",
                "detail": str(exc) if settings.debug else "An unexpected error occurred",
            },
        )

    # Health check endpoint
    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check():
        """Check system health."""
        return HealthResponse(
            status="healthy",
            version=__version__,
            services={"api": True},
        )

    # Root endpoint
    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "name": settings.app_name,
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    # Include routers
    api_prefix = settings.api_prefix
    app.include_router(chat_router, prefix=api_prefix)
    app.include_router(knowledge_router, prefix=api_prefix)
    app.include_router(queue_router, prefix=api_prefix)

    return app


# Create app instance
app = create_app()
