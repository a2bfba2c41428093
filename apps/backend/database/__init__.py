"""
Database Package
================
SQLAlchemy models and engine helpers for the metadata-first persistence layer.
"""

from .models import (
    Base,
    ChatMessageModel,
    ChatThreadModel,
    CompanyModel,
    DocumentModel,
    DocumentStatus,
)
from .session import create_session_factory, init_models

__all__ = [
    "Base",
    "ChatMessageModel",
    "ChatThreadModel",
    "CompanyModel",
    "DocumentModel",
    "DocumentStatus",
    "create_session_factory",
    "init_models",
]
