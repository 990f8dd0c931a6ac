"""Routers that aggregate the route modules."""

from fastapi import APIRouter

from imaginghub.api import auth, callback, health

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])

# Magic links point at the site root, not the JSON API prefix
callback_router = APIRouter()
callback_router.include_router(callback.router, prefix="/auth", tags=["auth"])
