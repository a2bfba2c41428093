"""
API Routers
===========
FastAPI routers for the LexFill backend.
"""

from .chat import router as chat_router
from .companies import router as companies_router
from .documents import router as documents_router

__all__ = ["chat_router", "companies_router", "documents_router"]
