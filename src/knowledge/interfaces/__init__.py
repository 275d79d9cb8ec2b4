"""
Knowledge Interfaces Layer
==========================

Interface adapters (controllers) for question answering.

Contains:
- Controllers: FastAPI route handlers
"""

from src.knowledge.interfaces.controllers import router as knowledge_router

__all__ = ["knowledge_router"]
