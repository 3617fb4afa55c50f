"""Core module exports."""

from gencache.core.config import Settings, get_settings
from gencache.core.exceptions import (
    AppException,
    BackendError,
    EphemeralTierError,
    MalformedOutputError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from gencache.core.logging import get_logger, log_context, setup_logging
from gencache.core.tasks import cancel_tasks, create_background_task

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Logging
    "get_logger",
    "setup_logging",
    "log_context",
    # Tasks
    "create_background_task",
    "cancel_tasks",
    # Exceptions
    "AppException",
    "BackendError",
    "EphemeralTierError",
    "MalformedOutputError",
    "NotFoundError",
    "StoreError",
    "ValidationError",
]
