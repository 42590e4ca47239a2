"""
FastAPI application initialization and configuration.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import settings
from database.engine import init_db, close_db
from api.routes import health
from api.routes.v1 import applications, placements, relationships
from api.services.engine import RepresentationEngine
from core.middleware import (
    ErrorHandlingMiddleware,
    setup_error_handlers,
    StructuredLoggingMiddleware,
    setup_logging,
)

# Logging first, before anything else logs
setup_logging(
    log_level=settings.log_level,
    json_logs=settings.json_logs,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, build the engine, and release locks and pools on shutdown."""
    logger.info(f"Starting {settings.app_name} in {settings.app_env} environment")
    await init_db()
    if getattr(app.state, "engine", None) is None:
        app.state.engine = RepresentationEngine.from_settings()

    yield

    logger.info(f"Shutting down {settings.app_name}")
    await app.state.engine.close()
    await close_db()


app = FastAPI(
    title=settings.app_name,
    description="Application pipeline, recruiter representation rights and placement fee splits",
    version="0.1.0",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan,
)

# Exception handlers first, then middleware (executed in reverse order of adding)
setup_error_handlers(app)

app.add_middleware(
    ErrorHandlingMiddleware,
    debug=settings.debug,
)

app.add_middleware(
    StructuredLoggingMiddleware,
    log_request_body=settings.log_request_body,
    log_response_body=settings.log_response_body,
    max_body_size=settings.log_max_body_size,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["Health"])

app.include_router(applications.router, prefix=settings.api_v1_prefix)
app.include_router(relationships.router, prefix=settings.api_v1_prefix)
app.include_router(placements.router, prefix=settings.api_v1_prefix)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
