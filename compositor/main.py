"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from compositor.api.v1.router import api_router
from compositor.config import get_settings
from compositor.core.errors import CompositorError, TemplateValidationError
from compositor.database import engine
from compositor.services.bulk_generation import bulk_generation_service

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))

    yield

    # Let batches that fell back to in-process execution finish
    await bulk_generation_service.wait_local()
    await engine.dispose()


app = FastAPI(
    title="Document Compositor",
    description="Template-based document compositing and bulk generation API",
    version="0.1.0",
    lifespan=lifespan,
    debug=settings.debug,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure properly in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TemplateValidationError)
async def template_validation_handler(request: Request, exc: TemplateValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "labels": exc.labels},
    )


@app.exception_handler(CompositorError)
async def compositor_error_handler(request: Request, exc: CompositorError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc), "type": type(exc).__name__},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler."""
    logging.getLogger(__name__).exception(f"Unhandled error on {request.url.path}")
    if settings.debug:
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc), "type": type(exc).__name__},
        )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# Include API router
app.include_router(api_router, prefix="/api/v1")


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}
