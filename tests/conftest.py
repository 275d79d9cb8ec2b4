"""
Pytest configuration and fixtures.

In-memory repositories stand in for the database so application services
can be exercised without PostgreSQL. LLM providers are AsyncMocks.
"""

import json
import os
from typing import Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

# Keep tests offline and deterministic
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LLM_PROVIDER", "mock")
os.environ.setdefault("EMBEDDING_REFRESH_INTERVAL", "0")

from src.core import RepositoryException
from src.infrastructure.llm import ChatCompletionResult, EmbeddingResult
from src.knowledge.application import (
    IKnowledgeRepository, IQAHistoryRepository, StaticLexiconProvider,
)
from src.knowledge.domain import Chunk, Department, Document, QAHistoryRecord
from src.routing.application import IRoutingRuleRepository, ITicketRepository
from src.routing.domain import RoutingRule, Ticket


class FakeKnowledgeRepository(IKnowledgeRepository):
    """Dict-backed knowledge store."""

    def __init__(self):
        self.departments: List[Department] = []
        self.documents: Dict[str, Document] = {}
        self.chunks: Dict[str, List[Chunk]] = {}
        self.fail_with: Optional[Exception] = None

    # ----- helpers for arranging tests -----

    def add_department(self, name: str) -> Department:
        department = Department(id=f"dept-{len(self.departments) + 1}", name=name)
        self.departments.append(department)
        return department

    def add_document(
        self,
        title: str,
        texts: List[str],
        embeddings: Optional[List[List[float]]] = None,
        department_id: Optional[str] = None
    ) -> Document:
        document = Document(id=f"doc-{len(self.documents) + 1}", title=title, department_id=department_id)
        self.documents[document.id] = document
        embeddings = embeddings or [[] for _ in texts]
        self.chunks[document.id] = [
            Chunk(id=f"{document.id}-chunk-{i}", document_id=document.id, text=text, embedding=vector)
            for i, (text, vector) in enumerate(zip(texts, embeddings))
        ]
        return document

    def _check(self):
        if self.fail_with is not None:
            raise self.fail_with

    # ----- interface -----

    async def list_departments(self) -> List[Department]:
        self._check()
        return list(self.departments)

    async def list_documents(self, department_id: Optional[str] = None) -> List[Document]:
        self._check()
        return [
            document for document in self.documents.values()
            if department_id is None or document.department_id == department_id
        ]

    async def get_document(self, document_id: str) -> Optional[Document]:
        self._check()
        return self.documents.get(document_id)

    async def get_chunks(self, document_id: str) -> List[Chunk]:
        self._check()
        return list(self.chunks.get(document_id, []))

    async def create_document(self, title, department_id=None, access_role=None) -> Document:
        self._check()
        document = Document(
            id=f"doc-{len(self.documents) + 1}",
            title=title,
            department_id=department_id,
            access_role=access_role
        )
        self.documents[document.id] = document
        self.chunks[document.id] = []
        return document

    async def add_chunks(self, document_id, texts, embeddings, embedding_is_fallback=False) -> List[Chunk]:
        self._check()
        if len(texts) != len(embeddings):
            raise RepositoryException("Chunk/embedding count mismatch")
        created = [
            Chunk(
                id=f"{document_id}-chunk-{i}",
                document_id=document_id,
                text=text,
                embedding=list(vector),
                embedding_is_fallback=embedding_is_fallback
            )
            for i, (text, vector) in enumerate(zip(texts, embeddings))
        ]
        self.chunks.setdefault(document_id, []).extend(created)
        return created

    async def list_fallback_chunks(self, limit: int) -> List[Chunk]:
        self._check()
        pending = [c for chunks in self.chunks.values() for c in chunks if c.embedding_is_fallback]
        return pending[:limit]

    async def update_chunk_embedding(self, chunk_id: str, embedding: List[float]) -> None:
        self._check()
        for document_id, chunks in self.chunks.items():
            self.chunks[document_id] = [
                Chunk(id=c.id, document_id=c.document_id, text=c.text, embedding=list(embedding))
                if c.id == chunk_id else c
                for c in chunks
            ]


class FakeQAHistoryRepository(IQAHistoryRepository):
    def __init__(self):
        self.records: List[QAHistoryRecord] = []
        self.fail_with: Optional[Exception] = None

    async def create(self, record: QAHistoryRecord) -> QAHistoryRecord:
        if self.fail_with is not None:
            raise self.fail_with
        record.id = f"qa-{len(self.records) + 1}"
        self.records.append(record)
        return record

    async def list_recent(self, limit: int = 20, department: Optional[str] = None) -> List[QAHistoryRecord]:
        if self.fail_with is not None:
            raise self.fail_with
        records = [r for r in reversed(self.records) if department is None or r.department == department]
        return records[:limit]


class FakeRoutingRuleRepository(IRoutingRuleRepository):
    def __init__(self, rules: Optional[List[RoutingRule]] = None):
        self.rules: List[RoutingRule] = []
        self.fail_with: Optional[Exception] = None
        for rule in rules or []:
            self._store(rule)

    def _store(self, rule: RoutingRule) -> RoutingRule:
        rule.id = rule.id or f"rule-{len(self.rules) + 1}"
        self.rules.append(rule)
        return rule

    async def list_rules(self) -> List[RoutingRule]:
        if self.fail_with is not None:
            raise self.fail_with
        return list(self.rules)

    async def get_rule(self, rule_id: str) -> Optional[RoutingRule]:
        return next((rule for rule in self.rules if rule.id == rule_id), None)

    async def create_rule(self, rule: RoutingRule) -> RoutingRule:
        return self._store(rule)

    async def update_accuracy(self, rule_id: str, accuracy: int) -> None:
        for rule in self.rules:
            if rule.id == rule_id:
                rule.accuracy = accuracy


class FakeTicketRepository(ITicketRepository):
    def __init__(self):
        self.tickets: Dict[str, Ticket] = {}

    async def create(self, ticket: Ticket) -> Ticket:
        ticket.id = ticket.id or f"ticket-{len(self.tickets) + 1}"
        self.tickets[ticket.id] = ticket
        return ticket

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        return self.tickets.get(ticket_id)


def completion(content) -> ChatCompletionResult:
    """Chat completion wrapping ``content``; dicts and lists are JSON-encoded."""
    if not isinstance(content, str):
        content = json.dumps(content)
    return ChatCompletionResult(
        content=content, model="test-model", prompt_tokens=10, completion_tokens=10, latency_ms=1
    )


def embeddings(*vectors) -> EmbeddingResult:
    return EmbeddingResult(embeddings=[list(v) for v in vectors], model="test-embedding")


@pytest.fixture
def knowledge_repository():
    return FakeKnowledgeRepository()


@pytest.fixture
def history_repository():
    return FakeQAHistoryRepository()


@pytest.fixture
def rule_repository():
    return FakeRoutingRuleRepository()


@pytest.fixture
def ticket_repository():
    return FakeTicketRepository()


@pytest.fixture
def lexicon():
    return StaticLexiconProvider()


@pytest.fixture
def chat():
    """LLM chat mock; set ``chat.chat_completion.return_value`` or ``side_effect`` per test."""
    mock = AsyncMock()
    mock.chat_completion.return_value = completion("Mocked answer")
    return mock


@pytest.fixture
def embedding_provider():
    mock = AsyncMock()
    mock.generate_embeddings.side_effect = RuntimeError("provider down")
    return mock
