"""
Routes package.
"""

from .stores import router as stores_router
from .export import router as export_router
from .imports import router as imports_router
from .usage import router as usage_router
from .webhooks import router as webhooks_router

__all__ = [
    "stores_router",
    "export_router",
    "imports_router",
    "usage_router",
    "webhooks_router",
]
