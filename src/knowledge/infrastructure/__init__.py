"""
Knowledge Infrastructure Layer
==============================

Infrastructure implementations for question answering.

Contains:
- Models: SQLAlchemy ORM models
- Repositories: Data access implementations
- External: Lexicon hot reload, embedding refresh scheduler, text extraction
"""

from src.knowledge.infrastructure.models import (
    DepartmentModel,
    DocumentModel,
    DocumentChunkModel,
    QAHistoryModel,
)
from src.knowledge.infrastructure.repositories import (
    SQLAlchemyKnowledgeRepository,
    SQLAlchemyQAHistoryRepository,
)
from src.knowledge.infrastructure.external import (
    LexiconConfigManager,
    EmbeddingRefreshScheduler,
    extract_text,
    extract_pdf_text,
)

__all__ = [
    "DepartmentModel",
    "DocumentModel",
    "DocumentChunkModel",
    "QAHistoryModel",
    "SQLAlchemyKnowledgeRepository",
    "SQLAlchemyQAHistoryRepository",
    "LexiconConfigManager",
    "EmbeddingRefreshScheduler",
    "extract_text",
    "extract_pdf_text",
]
