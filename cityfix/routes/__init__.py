"""API route modules for FastAPI endpoints."""

from cityfix.routes.generate import router as generate_router
from cityfix.routes.issues import router as issues_router

__all__ = ["generate_router", "issues_router"]
