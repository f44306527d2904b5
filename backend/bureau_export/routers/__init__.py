"""Bureau Export Engine - API Routers"""
from .reporting import router as reporting_router
from .consents import router as consents_router
from .scheduler import router as scheduler_router

__all__ = [
    "reporting_router",
    "consents_router",
    "scheduler_router",
]
