"""API v1 router aggregating all endpoints."""

from fastapi import APIRouter

from compositor.api.v1 import bulk_generation, documents, templates

api_router = APIRouter()

api_router.include_router(templates.router, prefix="/templates", tags=["templates"])
api_router.include_router(bulk_generation.router, prefix="/bulk-generation", tags=["bulk-generation"])
api_router.include_router(documents.router, prefix="/documents", tags=["documents"])
