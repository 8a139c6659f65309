"""REST API for the workflow automation engine."""

from .endpoints import router

__all__ = ["router"]
