"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from rsvp_engine.api.routes import admin, rsvp, waitlist

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(rsvp.router)
api_router.include_router(waitlist.router)
api_router.include_router(admin.router)
