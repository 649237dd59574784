"""
API router configuration.
"""
from fastapi import APIRouter
from .routes import admin, health, publish, websocket

# Create main API router
router = APIRouter()

# Include sub-routers
router.include_router(health.router)
router.include_router(publish.router)
router.include_router(admin.router)
router.include_router(websocket.router)
