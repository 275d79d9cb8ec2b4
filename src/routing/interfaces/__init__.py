"""
Routing Interfaces Layer
========================

Interface adapters (controllers) for ticket routing.

Contains:
- Controllers: FastAPI route handlers
"""

from src.routing.interfaces.controllers import router as routing_router

__all__ = ["routing_router"]
