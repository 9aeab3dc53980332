"""Core utilities and configuration."""

from app.core.config import Settings, get_settings
from app.core.database import Base, db_manager, get_session, transaction
from app.core.logging import db_logger, get_logger, pipeline_logger, setup_logging

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Database
    "Base",
    "db_manager",
    "get_session",
    "transaction",
    # Logging
    "db_logger",
    "get_logger",
    "pipeline_logger",
    "setup_logging",
]
