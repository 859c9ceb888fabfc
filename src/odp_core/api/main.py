"""ODP Core FastAPI application."""
import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import get_settings
from ..context import build_store_context
from ..errors import (
    ConflictError,
    ImmutableEntityError,
    NotFoundError,
    ODPError,
    StoreFault,
    ValidationError,
)
from .routers import baselines, changes, documents, editions, requirements, taxonomy, waves

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("odp-core")

logger.info("Starting ODP Core API")

# Create FastAPI app
app = FastAPI(
    title="ODP Core API",
    description="Versioned operational requirements, changes, baselines and editions",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Stores are built once and shared by every request
app.state.stores = build_store_context()


def status_for(exc: ODPError) -> int:
    """HTTP status code for an ODP error kind."""
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, ConflictError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, ImmutableEntityError):
        return status.HTTP_405_METHOD_NOT_ALLOWED
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(ODPError)
async def odp_error_handler(request: Request, exc: ODPError) -> JSONResponse:
    """Map store errors to HTTP responses."""
    status_code = status_for(exc)
    if isinstance(exc, StoreFault):
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected ({status_code}): {exc.message}")
    content = {"detail": exc.message, "error": type(exc).__name__}
    if isinstance(exc, ConflictError) and exc.current_version_id is not None:
        content["current_version_id"] = exc.current_version_id
    return JSONResponse(status_code=status_code, content=content)


# Include all routers with /api/v1 prefix
app.include_router(requirements.router, prefix="/api/v1/requirements")
app.include_router(changes.router, prefix="/api/v1/changes")
app.include_router(baselines.router, prefix="/api/v1/baselines")
app.include_router(editions.router, prefix="/api/v1/editions")
app.include_router(waves.router, prefix="/api/v1/waves")
app.include_router(documents.router, prefix="/api/v1/documents")
app.include_router(taxonomy.stakeholder_categories, prefix="/api/v1/stakeholder-categories")
app.include_router(taxonomy.data_categories, prefix="/api/v1/data-categories")
app.include_router(taxonomy.services, prefix="/api/v1/services")
app.include_router(taxonomy.regulatory_aspects, prefix="/api/v1/regulatory-aspects")


@app.get("/")
def root():
    """Root endpoint with server info."""
    return {
        "name": "ODP Core API",
        "version": "1.0.0",
        "docs": "/docs",
        "description": "Versioned operational requirements, changes, baselines and editions",
    }


def run() -> None:
    """Serve the API with uvicorn (``odp-core-api`` console script)."""
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
