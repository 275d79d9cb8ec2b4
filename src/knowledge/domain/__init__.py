"""
Knowledge Domain Layer
======================

Domain layer for document question answering.

Contains:
- Entities: Document, Chunk, RetrievalOutcome, QAResult, QAHistoryRecord
- Value Objects: TextChunker, SimilarityCalculator, LexiconConfig, KeywordMatcher

This layer is framework-agnostic and contains pure business logic.
"""

from src.knowledge.domain.entities import (
    clamp_confidence,
    clamp_response_time,
    Department,
    Document,
    Chunk,
    ScoredChunk,
    RetrievalOutcome,
    QASource,
    QAResult,
    QAHistoryRecord,
    FAQItem,
    AnswerPromptBuilder,
    FAQPromptBuilder,
)
from src.knowledge.domain.value_objects import (
    ChunkWindow,
    TextChunker,
    SimilarityCalculator,
    CannedTopic,
    ExtractiveTopic,
    DepartmentHeuristic,
    LexiconConfig,
    KeywordMatcher,
    fold_diacritics,
    extract_relevant_sentences,
)

__all__ = [
    "clamp_confidence",
    "clamp_response_time",
    "Department",
    "Document",
    "Chunk",
    "ScoredChunk",
    "RetrievalOutcome",
    "QASource",
    "QAResult",
    "QAHistoryRecord",
    "FAQItem",
    "AnswerPromptBuilder",
    "FAQPromptBuilder",
    "ChunkWindow",
    "TextChunker",
    "SimilarityCalculator",
    "CannedTopic",
    "ExtractiveTopic",
    "DepartmentHeuristic",
    "LexiconConfig",
    "KeywordMatcher",
    "fold_diacritics",
    "extract_relevant_sentences",
]
