"""
Knowledge Domain Entities
=========================

Domain entities for document-grounded question answering.

Contains pure Python business objects for document chunks, retrieval
outcomes and answers, plus the prompt builders used to ask an LLM for a
grounded answer.
"""

import json
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List, Any

from src.config import RetrievalStrategy


def clamp_confidence(value: Any) -> int:
    """Round to an int in [0, 100]; NaN, None and garbage become 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number):
        return 0
    if math.isinf(number):
        return 100 if number > 0 else 0
    return max(0, min(100, math.floor(number + 0.5)))


def clamp_response_time(value: Any) -> int:
    """Response times are stored as whole milliseconds, never below 1."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 1
    if not math.isfinite(number):
        return 1
    return max(1, math.floor(number + 0.5))


@dataclass(frozen=True)
class Department:
    """Organisational unit that owns documents and receives tickets."""
    id: str
    name: str


@dataclass(frozen=True)
class Document:
    """
    Uploaded document.

    The scoping unit for retrieval: a question tagged with a department only
    searches chunks of that department's documents.
    """
    id: str
    title: str
    department_id: Optional[str] = None
    access_role: Optional[str] = None
    version: int = 1


@dataclass(frozen=True)
class Chunk:
    """
    A bounded text segment of a document with its embedding.

    ``embedding`` may be empty when the vector could not be stored or
    parsed; such chunks simply never match semantically.
    """
    id: str
    document_id: str
    text: str
    embedding: List[float] = field(default_factory=list)
    embedding_is_fallback: bool = False

    @property
    def has_embedding(self) -> bool:
        return len(self.embedding) > 0

    @staticmethod
    def parse_embedding(raw: Optional[str]) -> List[float]:
        """Decode a stored JSON vector; anything unusable becomes []."""
        if not raw:
            return []
        try:
            values = json.loads(raw)
        except (TypeError, ValueError):
            return []
        if not isinstance(values, list):
            return []
        try:
            vector = [float(v) for v in values]
        except (TypeError, ValueError):
            return []
        if not all(math.isfinite(v) for v in vector):
            return []
        return vector


@dataclass(frozen=True)
class ScoredChunk:
    """
    A chunk together with how well it matched a question.

    ``match_type`` records where the score came from: cosine similarity for
    semantic hits, the floored keyword score for keyword hits.
    """
    chunk: Chunk
    similarity: float
    match_type: str = RetrievalStrategy.SEMANTIC


@dataclass
class RetrievalOutcome:
    """
    Result of one retrieval stage.

    A stage never raises: it either found chunks, found nothing, or failed
    with an error message. The orchestrator moves to the next stage whenever
    ``found`` is False, regardless of which of the last two happened.
    """
    strategy: str
    chunks: List[ScoredChunk] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.error is None and len(self.chunks) > 0

    @classmethod
    def failure(cls, strategy: str, error: str) -> "RetrievalOutcome":
        return cls(strategy=strategy, chunks=[], error=error)


@dataclass
class QASource:
    """Citation for an answer."""
    document_id: str
    document_title: str
    chunk_excerpt: str
    similarity: float
    match_type: str


@dataclass
class QAResult:
    """
    Answer returned to the caller.

    ``confidence`` is always an int in [0, 100]; below 50 the UI suggests
    contacting support.
    """
    answer: str
    confidence: int
    sources: List[QASource]
    response_time_ms: int
    strategy: str = RetrievalStrategy.SEMANTIC

    def __post_init__(self):
        self.confidence = clamp_confidence(self.confidence)


@dataclass
class QAHistoryRecord:
    """
    A question/answer pair as persisted.

    Values are clamped on construction so a record can never carry NaN or
    out-of-range numbers into storage.
    """
    question: str
    answer: str
    response_time_ms: int
    confidence: int
    department: str
    source_document_ids: List[str]
    retrieval_strategy: str
    user_id: Optional[str] = None
    id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        self.confidence = clamp_confidence(self.confidence)
        self.response_time_ms = clamp_response_time(self.response_time_ms)

    @property
    def sources_json(self) -> str:
        return json.dumps(self.source_document_ids)


@dataclass
class FAQItem:
    """Frequently asked question distilled from recent history."""
    question: str
    answer: str


class AnswerPromptBuilder:
    """
    Builds prompts for grounded answers.

    System prompt plus the numbered source excerpts for one question.
    """

    SYSTEM_PROMPT = """You are FlowMindAI, a helpful workplace assistant. Answer questions based on the provided company documents.

Guidelines:
- Use ONLY information from the provided sources
- If the sources do not contain the answer, say clearly that the documentation does not cover it
- Provide specific, actionable answers
- Include source references when possible
- Keep responses professional and concise

Context from company documents:
{context}"""

    @classmethod
    def build_context(cls, chunks: List[ScoredChunk]) -> str:
        """Join ranked chunks into the context block."""
        return "\n\n---\n\n".join(
            f"Source: {scored.chunk.document_id}\n{scored.chunk.text}"
            for scored in chunks
        )

    @classmethod
    def build_messages(cls, question: str, chunks: List[ScoredChunk]) -> List[dict]:
        return [
            {"role": "system", "content": cls.SYSTEM_PROMPT.format(context=cls.build_context(chunks))},
            {"role": "user", "content": question},
        ]


class FAQPromptBuilder:
    """Builds the prompt that turns recent questions into FAQ items."""

    SYSTEM_PROMPT = (
        "Based on these recent employee questions, generate 5 FAQ items that would be "
        "most helpful. Respond with a JSON object of the form "
        '{"faqs": [{"question": "...", "answer": "..."}]}.'
    )

    @classmethod
    def build_messages(cls, questions: List[str], department: Optional[str] = None) -> List[dict]:
        header = f"Department: {department}\n\n" if department else ""
        return [
            {"role": "system", "content": cls.SYSTEM_PROMPT},
            {"role": "user", "content": header + "\n".join(questions)},
        ]
