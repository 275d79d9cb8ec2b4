"""
Knowledge Application DTOs
==========================

Data Transfer Objects for the question answering and document API.

Pydantic models for request/response validation. Field aliases keep the
camelCase wire format the dashboard consumes.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.knowledge.domain import QAResult, QAHistoryRecord, Document


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ========== Request DTOs ==========

class AskRequest(_CamelModel):
    """Request model for asking a question."""
    question: str = Field(..., description="Question in natural language")
    department: Optional[str] = Field(None, description="Department name to scope the search")
    user_id: Optional[str] = Field(None, alias="userId", description="Asking user")

    @field_validator("question")
    @classmethod
    def validate_question(cls, v: str) -> str:
        """Questions must carry text and stay within prompt budget."""
        v = v.strip()
        if not v:
            raise ValueError("Question is required")
        if len(v) > 2000:
            raise ValueError("Question too long (max 2000 characters)")
        return v

    @field_validator("department", "user_id")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        """Whitespace-only values mean not given."""
        if v is None:
            return None
        v = v.strip()
        return v or None


# ========== Response DTOs ==========

class SourceInfo(_CamelModel):
    """A cited document excerpt."""
    document_id: str = Field(..., alias="documentId")
    document_title: str = Field(..., alias="documentTitle")
    chunk: str
    similarity: float
    match_type: str = Field(..., alias="matchType")


class AskResponse(_CamelModel):
    """Response model for an answered question."""
    answer: str
    confidence: int = Field(..., ge=0, le=100)
    sources: List[SourceInfo]
    response_time: int = Field(..., alias="responseTime")

    @classmethod
    def from_result(cls, result: QAResult) -> "AskResponse":
        return cls(
            answer=result.answer,
            confidence=result.confidence,
            sources=[
                SourceInfo(
                    document_id=source.document_id,
                    document_title=source.document_title,
                    chunk=source.chunk_excerpt,
                    similarity=source.similarity,
                    match_type=source.match_type,
                )
                for source in result.sources
            ],
            response_time=result.response_time_ms,
        )


class QAHistoryInfo(_CamelModel):
    """One entry of the recent questions feed."""
    id: Optional[str]
    user_id: Optional[str] = Field(None, alias="userId")
    question: str
    answer: str
    confidence: int
    response_time: int = Field(..., alias="responseTime")
    department: str
    sources: List[str]
    retrieval_strategy: str = Field(..., alias="retrievalStrategy")
    created_at: datetime = Field(..., alias="createdAt")

    @classmethod
    def from_record(cls, record: QAHistoryRecord) -> "QAHistoryInfo":
        return cls(
            id=record.id,
            user_id=record.user_id,
            question=record.question,
            answer=record.answer,
            confidence=record.confidence,
            response_time=record.response_time_ms,
            department=record.department,
            sources=record.source_document_ids,
            retrieval_strategy=record.retrieval_strategy,
            created_at=record.created_at,
        )


class FAQInfo(BaseModel):
    question: str
    answer: str


class FAQResponse(BaseModel):
    faqs: List[FAQInfo]


class UploadResponse(_CamelModel):
    """Response model for document upload."""
    success: bool
    document_id: str = Field(..., alias="documentId")
    chunks_created: int = Field(..., alias="chunksCreated")
    total_tokens: int = Field(..., alias="totalTokens")
    degraded_embeddings: bool = Field(False, alias="degradedEmbeddings")


class DocumentInfo(_CamelModel):
    id: str
    title: str
    department_id: Optional[str] = Field(None, alias="departmentId")
    access_role: Optional[str] = Field(None, alias="accessRole")
    version: int

    @classmethod
    def from_domain(cls, document: Document) -> "DocumentInfo":
        return cls(
            id=document.id,
            title=document.title,
            department_id=document.department_id,
            access_role=document.access_role,
            version=document.version,
        )
