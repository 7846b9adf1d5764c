"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter

from webinar_api.api.routes import auth, payments, registrations, webinars

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router)
api_router.include_router(webinars.router)
api_router.include_router(registrations.router)
api_router.include_router(payments.router)
