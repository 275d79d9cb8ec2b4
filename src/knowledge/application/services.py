"""
Knowledge Application Services
==============================

Application services for document question answering.

Orchestrates chunk scoping, retrieval, answer composition and history
between domain objects, repositories and the LLM provider. Every stage
degrades instead of failing: embeddings fall back to placeholder vectors,
semantic search falls back to keyword search, keyword search falls back to
canned topic answers, and LLM composition falls back to extractive text.
"""

import asyncio
import dataclasses
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from src.config import settings, RetrievalStrategy
from src.core import RepositoryException
from src.infrastructure.llm import IEmbeddingProvider, IChatCompleter, parse_json_content
from src.knowledge.domain import (
    Chunk, Department, Document, ScoredChunk, RetrievalOutcome,
    QASource, QAResult, QAHistoryRecord, FAQItem,
    AnswerPromptBuilder, FAQPromptBuilder,
    TextChunker, SimilarityCalculator, KeywordMatcher, LexiconConfig,
    clamp_confidence, extract_relevant_sentences,
)
from src.shared.infrastructure.grafana import get_grafana_exporter
from src.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)


SEED_CHUNK = Chunk(
    id="fallback-1",
    document_id="it-policies-fallback",
    text=(
        "Hardware Requests: New hardware requests (monitor, keyboard, mouse) must be approved "
        "by the direct manager. Use the \"Hardware Request\" workflow. The request will be "
        "approved by the IT Manager and Finance department before fulfillment."
    ),
)

APOLOGY_ANSWER = (
    "I apologize, but I encountered an error while processing your question. "
    "Please try again or contact support."
)


# ========== Repository Interfaces ==========

class IKnowledgeRepository(ABC):
    """Interface for departments, documents and chunks."""

    @abstractmethod
    async def list_departments(self) -> List[Department]:
        """All departments."""

    @abstractmethod
    async def list_documents(self, department_id: Optional[str] = None) -> List[Document]:
        """Documents, optionally only those of one department."""

    @abstractmethod
    async def get_document(self, document_id: str) -> Optional[Document]:
        """Document by ID."""

    @abstractmethod
    async def get_chunks(self, document_id: str) -> List[Chunk]:
        """Chunks of one document in order."""

    @abstractmethod
    async def create_document(
        self,
        title: str,
        department_id: Optional[str] = None,
        access_role: Optional[str] = None
    ) -> Document:
        """Store a new document."""

    @abstractmethod
    async def add_chunks(
        self,
        document_id: str,
        texts: List[str],
        embeddings: List[List[float]],
        embedding_is_fallback: bool = False
    ) -> List[Chunk]:
        """Store chunks with their embeddings."""

    @abstractmethod
    async def list_fallback_chunks(self, limit: int) -> List[Chunk]:
        """Chunks whose stored embedding is a placeholder."""

    @abstractmethod
    async def update_chunk_embedding(self, chunk_id: str, embedding: List[float]) -> None:
        """Replace a placeholder embedding with a real one."""


class IQAHistoryRepository(ABC):
    """Interface for question/answer history storage."""

    @abstractmethod
    async def create(self, record: QAHistoryRecord) -> QAHistoryRecord:
        """Persist one answered question."""

    @abstractmethod
    async def list_recent(self, limit: int = 20, department: Optional[str] = None) -> List[QAHistoryRecord]:
        """Most recent records first."""


class ILexiconProvider(ABC):
    """Source of the current lexicon; implementations may hot-reload it."""

    @property
    @abstractmethod
    def config(self) -> LexiconConfig:
        """Current lexicon."""


class StaticLexiconProvider(ILexiconProvider):
    """Lexicon that never changes."""

    def __init__(self, lexicon: Optional[LexiconConfig] = None):
        self._lexicon = lexicon or LexiconConfig()

    @property
    def config(self) -> LexiconConfig:
        return self._lexicon


# ========== Embeddings ==========

@dataclass
class EmbeddingBatch:
    """
    Vectors for a batch of texts.

    ``degraded`` marks placeholder vectors produced without the provider;
    they keep storage shape valid but carry no meaning.
    """
    vectors: List[List[float]] = field(default_factory=list)
    degraded: bool = False


class EmbeddingService:
    """
    Embeds texts through the provider, degrading to placeholder vectors.

    Never raises: a missing provider, a timeout or any provider error yields
    one small pseudo-random vector per text. Nothing is cached, so the next
    call tries the provider again.
    """

    def __init__(
        self,
        provider: Optional[IEmbeddingProvider],
        dimension: Optional[int] = None,
        rng: Optional[random.Random] = None
    ):
        self._provider = provider
        self._dimension = dimension or settings.embedding_dimension
        self._rng = rng or random.Random()

    @property
    def available(self) -> bool:
        return self._provider is not None

    def placeholder_vectors(self, count: int) -> List[List[float]]:
        """``count`` vectors with components in [-0.005, 0.005)."""
        return [
            [(self._rng.random() - 0.5) * 0.01 for _ in range(self._dimension)]
            for _ in range(count)
        ]

    async def embed(self, texts: Sequence[str]) -> EmbeddingBatch:
        texts = list(texts)
        if not texts:
            return EmbeddingBatch()

        if self._provider is None:
            logger.warning("No embedding provider configured, using placeholder vectors",
                           extra={"texts": len(texts)})
            return EmbeddingBatch(self.placeholder_vectors(len(texts)), degraded=True)

        try:
            with log_latency(logger, "embedding", texts=len(texts)):
                result = await self._provider.generate_embeddings(texts)
        except Exception as e:
            logger.warning(
                "Embedding provider failed, using placeholder vectors",
                extra={"error": str(e), "error_type": type(e).__name__, "texts": len(texts)}
            )
            return EmbeddingBatch(self.placeholder_vectors(len(texts)), degraded=True)

        if len(result.embeddings) != len(texts):
            logger.warning(
                "Embedding provider returned wrong number of vectors",
                extra={"expected": len(texts), "received": len(result.embeddings)}
            )
            return EmbeddingBatch(self.placeholder_vectors(len(texts)), degraded=True)

        return EmbeddingBatch([list(vector) for vector in result.embeddings])


# ========== Answer composition ==========

class AnswerComposer:
    """
    Turns ranked chunks into an answer.

    Asks the LLM for a grounded answer; when the LLM is unavailable, builds
    an extractive answer from the chunk text instead. Never raises.
    """

    SCOPE_SUMMARY = (
        "Based on our company documentation: {text}... "
        "For more specific information, please contact your department."
    )
    NO_CONTEXT = (
        "I understand you're asking about \"{question}\". While I don't have specific "
        "documentation to reference right now, I recommend contacting your HR or IT "
        "department for assistance with this question."
    )

    def __init__(
        self,
        chat: Optional[IChatCompleter],
        lexicon: ILexiconProvider,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ):
        self._chat = chat
        self._lexicon = lexicon
        self._temperature = settings.llm_temperature if temperature is None else temperature
        self._max_tokens = max_tokens or settings.llm_max_tokens

    async def compose(
        self,
        question: str,
        ranked: Sequence[ScoredChunk],
        scope_chunks: Sequence[Chunk] = ()
    ) -> str:
        if ranked and self._chat is not None:
            try:
                completion = await self._chat.chat_completion(
                    messages=AnswerPromptBuilder.build_messages(question, list(ranked)),
                    temperature=self._temperature,
                    max_tokens=self._max_tokens,
                    operation="qa_answer"
                )
                return completion.content
            except Exception as e:
                logger.warning(
                    "LLM unavailable, composing extractive answer",
                    extra={"error": str(e), "chunks": len(ranked)}
                )

        return self.extractive_answer(question, ranked, scope_chunks)

    def extractive_answer(
        self,
        question: str,
        ranked: Sequence[ScoredChunk],
        scope_chunks: Sequence[Chunk] = ()
    ) -> str:
        lexicon = self._lexicon.config

        if ranked:
            context_text = " ".join(scored.chunk.text for scored in ranked)
            topic = lexicon.find_extractive_topic(question)
            if topic is None:
                return f"{lexicon.extractive_default_lead}{context_text[:500]}..."

            relevant = extract_relevant_sentences(context_text, topic.keywords)
            if relevant:
                return f"{topic.lead}{relevant}"
            return f"{topic.fallback_lead}{context_text[:400]}..."

        if scope_chunks:
            all_text = " ".join(chunk.text for chunk in scope_chunks)
            return self.SCOPE_SUMMARY.format(text=all_text[:500])

        return self.NO_CONTEXT.format(question=question)


# ========== Question answering ==========

class QAService:
    """
    Answers questions from company documents.

    Retrieval ladder: semantic search over the scoped chunks, then keyword
    search, then a canned topic answer. Each question is recorded in the QA
    history whatever path produced its answer.
    """

    def __init__(
        self,
        knowledge_repository: IKnowledgeRepository,
        history_repository: IQAHistoryRepository,
        embedding_service: EmbeddingService,
        composer: AnswerComposer,
        lexicon: ILexiconProvider,
        chat: Optional[IChatCompleter] = None
    ):
        self._knowledge = knowledge_repository
        self._history = history_repository
        self._embeddings = embedding_service
        self._composer = composer
        self._lexicon = lexicon
        self._chat = chat

    async def answer_question(
        self,
        question: str,
        user_id: Optional[str] = None,
        department: Optional[str] = None
    ) -> QAResult:
        """
        Answer ``question``, optionally scoped to a department.

        Always returns a result with a non-empty answer; storage failures
        produce a zero-confidence apology instead of an exception.
        """
        start_time = time.perf_counter()
        department = (department or "").strip() or None

        try:
            scope, seeded = await self._scope_chunks(department)

            outcome = await self._semantic_search(question, scope)
            if not outcome.found:
                logger.warning(
                    "Semantic search found no chunks, switching to keyword search",
                    extra={"reason": outcome.error or "no match", "chunks": len(scope)}
                )
                outcome = self._keyword_search(question, scope)

            if outcome.found:
                ranked = self._mark_seed(outcome.chunks) if seeded else outcome.chunks
                answer = await self._composer.compose(question, ranked, scope)
                mean_similarity = sum(item.similarity for item in ranked) / len(ranked)
                confidence = clamp_confidence(mean_similarity * 100)
                sources = await self._build_sources(ranked)
                strategy = RetrievalStrategy.SEED if seeded else outcome.strategy
            else:
                logger.warning("No keyword matches found, using canned answer",
                               extra={"chunks": len(scope)})
                answer, confidence = self._canned_answer(question)
                sources = []
                strategy = RetrievalStrategy.CANNED

        except Exception as e:
            logger.error(
                "Question answering failed",
                extra={"error": str(e), "error_type": type(e).__name__, "department": department}
            )
            return QAResult(
                answer=APOLOGY_ANSWER,
                confidence=0,
                sources=[],
                response_time_ms=self._elapsed_ms(start_time),
                strategy=RetrievalStrategy.ERROR
            )

        result = QAResult(
            answer=answer,
            confidence=confidence,
            sources=sources,
            response_time_ms=self._elapsed_ms(start_time),
            strategy=strategy
        )

        await self._record_history(question, result, user_id, department)
        await get_grafana_exporter().export_qa_metrics(
            confidence=result.confidence,
            response_time_ms=result.response_time_ms,
            strategy=result.strategy,
            department=department
        )

        logger.info(
            "Question answered",
            extra={
                "strategy": result.strategy,
                "confidence": result.confidence,
                "sources": len(result.sources),
                "response_time_ms": result.response_time_ms,
            }
        )
        return result

    async def generate_faqs(self, department: Optional[str] = None) -> List[FAQItem]:
        """
        FAQ items distilled from the 20 most recent questions.

        Returns [] with fewer than five questions or when the LLM fails.
        """
        try:
            recent = await self._history.list_recent(limit=20)
        except RepositoryException as e:
            logger.error("Failed to load QA history for FAQs", extra={"error": str(e)})
            return []

        if len(recent) < 5 or self._chat is None:
            return []

        try:
            completion = await self._chat.chat_completion(
                messages=FAQPromptBuilder.build_messages([r.question for r in recent], department),
                temperature=0.5,
                max_tokens=1000,
                operation="faq_generation",
                json_mode=True
            )
            payload = parse_json_content(completion.content)
        except Exception as e:
            logger.warning("FAQ generation failed", extra={"error": str(e)})
            return []

        items = payload.get("faqs", []) if isinstance(payload, dict) else payload
        if not isinstance(items, list):
            return []

        return [
            FAQItem(question=str(item["question"]), answer=str(item["answer"]))
            for item in items
            if isinstance(item, dict) and item.get("question") and item.get("answer")
        ]

    async def get_recent_history(self, limit: int = 20) -> List[QAHistoryRecord]:
        return await self._history.list_recent(limit=limit)

    # ----- scoping -----

    async def _scope_chunks(self, department: Optional[str]) -> Tuple[List[Chunk], bool]:
        """
        Chunks to search for a question and whether the seed chunk was used.

        A department narrows the search to its documents. When that yields
        nothing, the widening policy may pull in policy-like documents, and an
        IT question gets the built-in hardware policy chunk as last resort.
        """
        department = (department or "").strip()
        if not department:
            documents = await self._knowledge.list_documents()
            return await self._load_chunks(documents), False

        match = self._match_department(await self._knowledge.list_departments(), department)
        chunks: List[Chunk] = []
        if match is not None:
            chunks = await self._load_chunks(await self._knowledge.list_documents(match.id))
        else:
            logger.info("Unknown department, widening search", extra={"department": department})

        if not chunks and settings.qa_corpus_widening == "title_keywords":
            terms = [term.lower() for term in settings.qa_widening_title_terms]
            documents = [
                doc for doc in await self._knowledge.list_documents()
                if any(term in doc.title.lower() for term in terms)
            ]
            chunks = await self._load_chunks(documents)
            logger.info("Widened search to policy documents",
                        extra={"documents": len(documents), "chunks": len(chunks)})

        if not chunks and department.lower() == "it":
            return [SEED_CHUNK], True

        return chunks, False

    @staticmethod
    def _match_department(departments: Sequence[Department], name: str) -> Optional[Department]:
        needle = name.strip().lower()
        if not needle:
            return None
        for candidate in departments:
            candidate_name = candidate.name.lower()
            if candidate_name == needle or needle in candidate_name:
                return candidate
        return None

    async def _load_chunks(self, documents: Sequence[Document]) -> List[Chunk]:
        if not documents:
            return []
        per_document = await asyncio.gather(
            *(self._knowledge.get_chunks(document.id) for document in documents)
        )
        return [chunk for chunks in per_document for chunk in chunks]

    # ----- retrieval stages -----

    async def _semantic_search(self, question: str, scope: Sequence[Chunk]) -> RetrievalOutcome:
        if not scope:
            return RetrievalOutcome.failure(RetrievalStrategy.SEMANTIC, "no chunks in scope")
        if not any(chunk.has_embedding for chunk in scope):
            return RetrievalOutcome.failure(RetrievalStrategy.SEMANTIC, "no stored embeddings")

        batch = await self._embeddings.embed([question])
        if batch.degraded:
            return RetrievalOutcome.failure(RetrievalStrategy.SEMANTIC, "question embedding unavailable")

        with log_latency(logger, "semantic_search", chunks=len(scope)):
            ranked = SimilarityCalculator.rank(
                batch.vectors[0],
                scope,
                limit=settings.qa_top_k,
                threshold=settings.qa_similarity_threshold
            )
        return RetrievalOutcome(strategy=RetrievalStrategy.SEMANTIC, chunks=ranked)

    def _keyword_search(self, question: str, scope: Sequence[Chunk]) -> RetrievalOutcome:
        matcher = KeywordMatcher(self._lexicon.config)
        with log_latency(logger, "keyword_search", chunks=len(scope)):
            ranked = matcher.rank(
                question,
                scope,
                limit=settings.qa_top_k,
                min_score=settings.keyword_min_score,
                similarity_floor=settings.keyword_similarity_floor
            )
        return RetrievalOutcome(strategy=RetrievalStrategy.KEYWORD, chunks=ranked)

    def _canned_answer(self, question: str) -> Tuple[str, int]:
        lexicon = self._lexicon.config
        topic = lexicon.find_canned_topic(question)
        if topic is None:
            return lexicon.canned_default_answer, lexicon.canned_default_confidence
        return topic.answer, topic.confidence

    @staticmethod
    def _mark_seed(ranked: Sequence[ScoredChunk]) -> List[ScoredChunk]:
        return [dataclasses.replace(item, match_type=RetrievalStrategy.SEED) for item in ranked]

    # ----- results -----

    async def _build_sources(self, ranked: Sequence[ScoredChunk]) -> List[QASource]:
        titles: Dict[str, str] = {}
        for document_id in {item.chunk.document_id for item in ranked}:
            document = None
            if document_id != SEED_CHUNK.document_id:
                document = await self._knowledge.get_document(document_id)
            titles[document_id] = document.title if document else "Unknown Document"

        return [
            QASource(
                document_id=item.chunk.document_id,
                document_title=titles[item.chunk.document_id],
                chunk_excerpt=item.chunk.text[:200] + "...",
                similarity=item.similarity,
                match_type=item.match_type
            )
            for item in ranked
        ]

    async def _record_history(
        self,
        question: str,
        result: QAResult,
        user_id: Optional[str],
        department: Optional[str]
    ) -> None:
        record = QAHistoryRecord(
            question=question,
            answer=result.answer,
            response_time_ms=result.response_time_ms,
            confidence=result.confidence,
            department=department or "general",
            source_document_ids=[source.document_id for source in result.sources],
            retrieval_strategy=result.strategy,
            user_id=user_id
        )
        try:
            await self._history.create(record)
        except Exception as e:
            logger.error("Failed to save QA history",
                         extra={"error": str(e), "error_type": type(e).__name__})

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return max(1, int((time.perf_counter() - start_time) * 1000))


# ========== Document ingestion ==========

@dataclass
class IngestionResult:
    document: Document
    chunks_created: int
    total_tokens: int
    degraded: bool


class DocumentIngestionService:
    """
    Chunks and embeds uploaded document text.

    Chunks embedded with placeholder vectors are flagged so the refresh job
    can re-embed them once the provider is reachable.
    """

    def __init__(
        self,
        knowledge_repository: IKnowledgeRepository,
        embedding_service: EmbeddingService,
        chunker: Optional[TextChunker] = None
    ):
        self._knowledge = knowledge_repository
        self._embeddings = embedding_service
        self._chunker = chunker or TextChunker(
            max_chunk_size=settings.chunk_size,
            overlap_sentences=settings.chunk_overlap_sentences
        )

    async def ingest(
        self,
        title: str,
        text: str,
        department_id: Optional[str] = None,
        access_role: Optional[str] = None
    ) -> IngestionResult:
        texts = self._chunker.chunk(text)
        batch = await self._embeddings.embed(texts)

        document = await self._knowledge.create_document(title, department_id, access_role)
        if texts:
            await self._knowledge.add_chunks(
                document.id, texts, batch.vectors, embedding_is_fallback=batch.degraded
            )

        logger.info(
            "Document ingested",
            extra={
                "document_id": document.id,
                "chunks": len(texts),
                "degraded_embeddings": batch.degraded,
            }
        )
        return IngestionResult(
            document=document,
            chunks_created=len(texts),
            total_tokens=len(text) // 4,
            degraded=batch.degraded
        )

    async def list_documents(self, department_id: Optional[str] = None) -> List[Document]:
        return await self._knowledge.list_documents(department_id)

    async def refresh_fallback_embeddings(self, batch_size: Optional[int] = None) -> int:
        """
        Re-embed chunks stored with placeholder vectors.

        Returns how many chunks got real embeddings; 0 while the provider is
        still unavailable.
        """
        if not self._embeddings.available:
            return 0

        chunks = await self._knowledge.list_fallback_chunks(batch_size or settings.embedding_refresh_batch_size)
        if not chunks:
            return 0

        batch = await self._embeddings.embed([chunk.text for chunk in chunks])
        if batch.degraded:
            logger.info("Embedding provider still unavailable, refresh postponed",
                        extra={"pending": len(chunks)})
            return 0

        for chunk, vector in zip(chunks, batch.vectors):
            await self._knowledge.update_chunk_embedding(chunk.id, vector)

        logger.info("Refreshed placeholder embeddings", extra={"chunks": len(chunks)})
        return len(chunks)
