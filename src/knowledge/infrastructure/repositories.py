"""
Knowledge Infrastructure Repositories
=====================================

SQLAlchemy implementations of the knowledge repositories.
"""

import json
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core import RepositoryException
from src.knowledge.application import IKnowledgeRepository, IQAHistoryRepository
from src.knowledge.domain import Chunk, Department, Document, QAHistoryRecord
from src.knowledge.infrastructure.models import (
    DepartmentModel, DocumentModel, DocumentChunkModel, QAHistoryModel
)


def _to_document(model: DocumentModel) -> Document:
    return Document(
        id=model.id,
        title=model.title,
        department_id=model.dept_id,
        access_role=model.access_role,
        version=model.version
    )


def _to_chunk(model: DocumentChunkModel) -> Chunk:
    return Chunk(
        id=model.id,
        document_id=model.document_id,
        text=model.chunk_text,
        embedding=Chunk.parse_embedding(model.embedding_vector),
        embedding_is_fallback=model.embedding_is_fallback
    )


def _parse_sources(raw: Optional[str]) -> List[str]:
    try:
        values = json.loads(raw or "[]")
    except ValueError:
        return []
    return [str(v) for v in values] if isinstance(values, list) else []


class SQLAlchemyKnowledgeRepository(IKnowledgeRepository):
    """SQLAlchemy implementation for departments, documents and chunks."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def list_departments(self) -> List[Department]:
        result = await self._session.execute(select(DepartmentModel).order_by(DepartmentModel.name))
        return [Department(id=m.id, name=m.name) for m in result.scalars().all()]

    async def create_department(self, name: str, description: Optional[str] = None) -> Department:
        model = DepartmentModel(id=str(uuid4()), name=name, description=description)
        self._session.add(model)
        await self._session.flush()
        return Department(id=model.id, name=model.name)

    async def list_documents(self, department_id: Optional[str] = None) -> List[Document]:
        stmt = select(DocumentModel).order_by(DocumentModel.created_at)
        if department_id is not None:
            stmt = stmt.where(DocumentModel.dept_id == department_id)
        result = await self._session.execute(stmt)
        return [_to_document(m) for m in result.scalars().all()]

    async def get_document(self, document_id: str) -> Optional[Document]:
        model = await self._session.get(DocumentModel, document_id)
        return _to_document(model) if model else None

    async def get_chunks(self, document_id: str) -> List[Chunk]:
        stmt = (
            select(DocumentChunkModel)
            .where(DocumentChunkModel.document_id == document_id)
            .order_by(DocumentChunkModel.position)
        )
        result = await self._session.execute(stmt)
        return [_to_chunk(m) for m in result.scalars().all()]

    async def create_document(
        self,
        title: str,
        department_id: Optional[str] = None,
        access_role: Optional[str] = None
    ) -> Document:
        model = DocumentModel(
            id=str(uuid4()),
            title=title,
            dept_id=department_id,
            access_role=access_role,
            version=1
        )
        self._session.add(model)
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to store document: {e}")
        return _to_document(model)

    async def add_chunks(
        self,
        document_id: str,
        texts: List[str],
        embeddings: List[List[float]],
        embedding_is_fallback: bool = False
    ) -> List[Chunk]:
        if len(texts) != len(embeddings):
            raise RepositoryException(
                f"Chunk/embedding count mismatch: {len(texts)} texts, {len(embeddings)} embeddings"
            )

        models = [
            DocumentChunkModel(
                id=str(uuid4()),
                document_id=document_id,
                position=position,
                chunk_text=text,
                embedding_vector=json.dumps(vector),
                embedding_is_fallback=embedding_is_fallback
            )
            for position, (text, vector) in enumerate(zip(texts, embeddings))
        ]
        self._session.add_all(models)
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to store chunks: {e}")
        return [_to_chunk(m) for m in models]

    async def list_fallback_chunks(self, limit: int) -> List[Chunk]:
        stmt = (
            select(DocumentChunkModel)
            .where(DocumentChunkModel.embedding_is_fallback.is_(True))
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [_to_chunk(m) for m in result.scalars().all()]

    async def update_chunk_embedding(self, chunk_id: str, embedding: List[float]) -> None:
        stmt = (
            update(DocumentChunkModel)
            .where(DocumentChunkModel.id == chunk_id)
            .values(embedding_vector=json.dumps(embedding), embedding_is_fallback=False)
        )
        await self._session.execute(stmt)


class SQLAlchemyQAHistoryRepository(IQAHistoryRepository):
    """SQLAlchemy implementation for QA history."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, record: QAHistoryRecord) -> QAHistoryRecord:
        model = QAHistoryModel(
            id=record.id or str(uuid4()),
            user_id=record.user_id,
            question=record.question,
            answer=record.answer,
            response_time=record.response_time_ms,
            confidence=record.confidence,
            department=record.department,
            sources=record.sources_json,
            retrieval_strategy=record.retrieval_strategy,
            created_at=record.created_at
        )
        self._session.add(model)
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to store QA history: {e}")

        record.id = model.id
        return record

    async def list_recent(self, limit: int = 20, department: Optional[str] = None) -> List[QAHistoryRecord]:
        stmt = select(QAHistoryModel).order_by(QAHistoryModel.created_at.desc()).limit(limit)
        if department:
            stmt = stmt.where(QAHistoryModel.department == department)
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load QA history: {e}")

        return [
            QAHistoryRecord(
                id=m.id,
                user_id=m.user_id,
                question=m.question,
                answer=m.answer,
                response_time_ms=m.response_time,
                confidence=m.confidence,
                department=m.department,
                source_document_ids=_parse_sources(m.sources),
                retrieval_strategy=m.retrieval_strategy,
                created_at=m.created_at
            )
            for m in result.scalars().all()
        ]
