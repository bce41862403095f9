"""Shared FastAPI dependencies."""
from __future__ import annotations

from datetime import datetime

from app.config import Settings, get_settings
from app.core.clock import utcnow
from app.storage import LocalObjectStorage


def get_app_settings() -> Settings:
    return get_settings()


def get_now() -> datetime:
    """Current instant for a request; tests override this to pin the clock."""
    return utcnow()


def get_storage() -> LocalObjectStorage:
    return LocalObjectStorage(get_settings().storage_root)
