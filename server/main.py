"""
FastAPI backend for the media/LLM workflow engine.

Validates editor graphs, runs them level by level and streams node status.
"""

from datetime import datetime
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.container import container
from core.logging import configure_logging, get_logger
from routers import workflow, llm, websocket

# Initialize settings and logging
settings = container.settings()
configure_logging(settings)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    # Startup
    pool = container.provider_pool()
    logger.info("Starting Mediaflow services",
                credentials=len(pool.credentials),
                simulation_mode=pool.simulation_mode)
    yield

    # Shutdown
    await container.provider_client().aclose()
    logger.info("Services shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Mediaflow Services",
    version="1.0.0",
    description="Media and LLM workflow execution engine",
    lifespan=lifespan,
    default_response_class=ORJSONResponse
)


class CatchAllExceptionsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error("Unhandled exception", error_type=type(e).__name__,
                         error=str(e), exc_info=True)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "success": False,
                    "error": f"{type(e).__name__}: {str(e)}",
                    "detail": "Internal server error"
                }
            )


app.add_middleware(CatchAllExceptionsMiddleware)

# Add CORS middleware (must be AFTER exception middleware)
logger.info("Configuring CORS middleware",
            origins_count=len(settings.cors_origins),
            origins=settings.cors_origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(workflow.router)
app.include_router(llm.router)
app.include_router(websocket.router)


@app.get("/health")
async def health_check():
    """Detailed health check."""
    pool = container.provider_pool()
    executor = container.workflow_executor()

    return {
        "status": "OK",
        "service": "mediaflow",
        "version": "1.0.0",
        "environment": "development" if settings.is_development else "production",
        "providers": {
            "total_keys": len(pool.credentials),
            "simulation_mode": pool.simulation_mode,
        },
        "active_executions": len(executor.get_active_executions()),
        "status_subscribers": container.status_broadcaster().subscriber_count,
        "timestamp": datetime.now().isoformat()
    }


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting Mediaflow services",
                host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        reload_dirs=["."] if settings.debug else None,
        reload_excludes=["*.pyc", "__pycache__", "*.log"] if settings.debug else None,
    )
