"""Core module for configuration and utilities."""

from app.core.celery_app import celery_app
from app.core.config import settings
from app.core.database import Base, async_session_maker, get_session

__all__ = [
    "celery_app",
    "settings",
    "Base",
    "async_session_maker",
    "get_session",
]
