"""
Knowledge Application Layer
===========================

Application layer for document question answering.

Contains:
- Services: Retrieval ladder, answer composition, ingestion
- DTOs: Data transfer objects for API serialization
"""

from src.knowledge.application.dto import (
    AskRequest,
    AskResponse,
    SourceInfo,
    QAHistoryInfo,
    FAQInfo,
    FAQResponse,
    UploadResponse,
    DocumentInfo,
)
from src.knowledge.application.services import (
    IKnowledgeRepository,
    IQAHistoryRepository,
    ILexiconProvider,
    StaticLexiconProvider,
    EmbeddingBatch,
    EmbeddingService,
    AnswerComposer,
    QAService,
    IngestionResult,
    DocumentIngestionService,
    SEED_CHUNK,
    APOLOGY_ANSWER,
)

__all__ = [
    # DTOs
    "AskRequest",
    "AskResponse",
    "SourceInfo",
    "QAHistoryInfo",
    "FAQInfo",
    "FAQResponse",
    "UploadResponse",
    "DocumentInfo",
    # Services
    "EmbeddingBatch",
    "EmbeddingService",
    "AnswerComposer",
    "QAService",
    "IngestionResult",
    "DocumentIngestionService",
    "SEED_CHUNK",
    "APOLOGY_ANSWER",
    # Interfaces
    "IKnowledgeRepository",
    "IQAHistoryRepository",
    "ILexiconProvider",
    "StaticLexiconProvider",
]
