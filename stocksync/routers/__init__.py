"""API routers for the stocksync service."""
from fastapi import APIRouter

from . import health, internal, shopify


def get_api_router() -> APIRouter:
    """Return the root API router."""

    api_router = APIRouter()
    api_router.include_router(health.router)
    api_router.include_router(shopify.router)
    api_router.include_router(internal.router)
    return api_router
