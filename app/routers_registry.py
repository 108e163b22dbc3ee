"""
Router registry for the scheduling backend.

Centralizes all API router registrations for cleaner main.py.
Routers are grouped by audience.
"""
import logging
from fastapi import FastAPI

logger = logging.getLogger(__name__)


def register_admin_routers(app: FastAPI):
    """Register admin back-office routers."""
    from app.api import admin_organizations_api
    from app.api import admin_contracts_api
    from app.api import admin_supervision_api
    from app.api import admin_bookability_api

    app.include_router(admin_organizations_api.router)
    app.include_router(admin_contracts_api.router)
    app.include_router(admin_supervision_api.router)
    app.include_router(admin_bookability_api.router)


def register_patient_routers(app: FastAPI):
    """Register patient booking routers."""
    from app.api import patient_booking_api
    from app.api import booking_sessions_api

    app.include_router(patient_booking_api.router)
    app.include_router(booking_sessions_api.router)


def register_observability_routers(app: FastAPI):
    from app.api import metrics_endpoint

    app.include_router(metrics_endpoint.router)


def register_all_routers(app: FastAPI):
    """Register all routers with the application."""
    register_admin_routers(app)
    register_patient_routers(app)
    register_observability_routers(app)

    logger.info("✅ All routers registered")
