"""
Knowledge Value Objects
=======================

Stateless text and vector utilities behind retrieval, plus the lexicon
that drives multilingual keyword matching.

The lexicon is data. Stop words, synonym groups, canned topic answers,
extractive answer topics and ticket department heuristics can be extended
(new languages, new terms) from a YAML file without touching the code.
"""

import math
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, Field, field_validator, model_validator

from src.config import RetrievalStrategy
from src.knowledge.domain.entities import Chunk, ScoredChunk


_SENTENCE_BOUNDARY = re.compile(r"[.!?]+")
_PUNCTUATION = re.compile(r"[^\w\s]", re.UNICODE)
_WHITESPACE = re.compile(r"\s+")


# ========== Chunking ==========

@dataclass(frozen=True)
class ChunkWindow:
    """
    Sentences making up one chunk.

    The first ``carried`` sentences repeat the tail of the previous chunk.
    """
    sentences: tuple
    carried: int = 0

    @property
    def text(self) -> str:
        return TextChunker.join(self.sentences)


class TextChunker:
    """
    Splits document text into bounded, overlapping chunks.

    Sentences are accumulated greedily up to ``max_chunk_size`` characters.
    Each new chunk starts with the last ``overlap_sentences`` sentences of
    the previous one, as far as they fit next to the incoming sentence. A
    sentence longer than the budget becomes a chunk of its own and is never
    cut.
    """

    def __init__(self, max_chunk_size: int = 1000, overlap_sentences: int = 2):
        if max_chunk_size < 1:
            raise ValueError("max_chunk_size must be positive")
        if overlap_sentences < 0:
            raise ValueError("overlap_sentences cannot be negative")
        self.max_chunk_size = max_chunk_size
        self.overlap_sentences = overlap_sentences

    @staticmethod
    def split_sentences(text: str) -> List[str]:
        return [s.strip() for s in _SENTENCE_BOUNDARY.split(text) if s.strip()]

    @staticmethod
    def join(sentences: Sequence[str]) -> str:
        return ". ".join(sentences) + "." if sentences else ""

    def windows(self, text: str) -> List[ChunkWindow]:
        windows: List[ChunkWindow] = []
        current: List[str] = []
        carried = 0

        for sentence in self.split_sentences(text):
            if current and len(self.join(current + [sentence])) > self.max_chunk_size:
                windows.append(ChunkWindow(tuple(current), carried))

                seed = current[-self.overlap_sentences:] if self.overlap_sentences else []
                while seed and len(self.join(seed + [sentence])) > self.max_chunk_size:
                    seed = seed[1:]
                current = seed + [sentence]
                carried = len(seed)
            else:
                current.append(sentence)

        if current:
            windows.append(ChunkWindow(tuple(current), carried))

        return windows

    def chunk(self, text: str) -> List[str]:
        """Split ``text`` into ordered, non-empty chunk strings."""
        return [window.text for window in self.windows(text)]


# ========== Similarity ==========

class SimilarityCalculator:
    """
    Pure functions for vector similarity.

    Stateless utility class - all cosine logic in one place.
    """

    @staticmethod
    def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
        """
        Cosine similarity of two vectors.

        Empty vectors, vectors of different length, zero-magnitude vectors
        and non-finite values all yield 0.0 instead of raising or NaN.
        """
        if not a or not b or len(a) != len(b):
            return 0.0

        dot = 0.0
        norm_a = 0.0
        norm_b = 0.0
        for x, y in zip(a, b):
            dot += x * y
            norm_a += x * x
            norm_b += y * y

        if norm_a == 0.0 or norm_b == 0.0:
            return 0.0

        value = dot / (math.sqrt(norm_a) * math.sqrt(norm_b))
        if not math.isfinite(value):
            return 0.0
        return max(-1.0, min(1.0, value))

    @classmethod
    def rank(
        cls,
        query_vector: Sequence[float],
        chunks: Sequence[Chunk],
        limit: int = 5,
        threshold: float = 0.7
    ) -> List[ScoredChunk]:
        """
        Chunks whose similarity clears ``threshold``, best first.

        Ties keep the input order. Returns [] when nothing qualifies.
        """
        scored = [
            ScoredChunk(chunk=chunk, similarity=cls.cosine_similarity(query_vector, chunk.embedding))
            for chunk in chunks
        ]
        hits = [item for item in scored if item.similarity >= threshold]
        hits.sort(key=lambda item: item.similarity, reverse=True)
        return hits[:limit]


# ========== Lexicon ==========

DEFAULT_DIACRITIC_FOLDS: Dict[str, str] = {
    "ə": "e", "ö": "o", "ü": "u", "ı": "i",
    "ç": "c", "ş": "s", "ğ": "g",
}

DEFAULT_STOP_WORDS: List[str] = [
    # English
    "the", "is", "at", "which", "on", "a", "an", "and", "or", "but", "in", "with",
    "to", "for", "of", "as", "by", "what", "how", "why", "when", "where", "who",
    "does", "did", "can", "could", "should", "would", "are", "was", "were", "have",
    "has", "had", "this", "that", "these", "those", "from", "about", "your", "our",
    "their", "will", "there", "here", "you", "any",
    # Azerbaijani / Turkish
    "ve", "bir", "bu", "o", "ki", "da", "de", "ile", "ucun", "den", "dan", "ya",
    "ye", "na", "ne", "olan", "olur", "edir", "etmək", "olmaq", "var", "yox",
    "həm", "amma", "lakin", "çünki", "necə", "niyə", "harada", "kim", "kimi",
    "hansı", "mən", "mənim", "sən", "biz", "siz",
]

DEFAULT_SYNONYMS: Dict[str, List[str]] = {
    "monitor": ["screen", "display", "ekran"],
    "request": ["tələb", "teleb", "sorgu", "ask"],
    "manager": ["rəhbər", "rehber", "menager", "boss"],
    "approve": ["təsdiq", "tesdiq", "approval"],
    "hardware": ["avadanlıq", "avadanliq", "equipment"],
    "problem": ["məsələ", "mesele", "issue"],
    "vpn": ["network", "şəbəkə", "sebeke"],
    "complete": ["tamamla", "bitir", "tamam"],
    "password": ["parol", "şifrə", "sifre"],
    "leave": ["vacation", "məzuniyyət", "izin"],
}


class CannedTopic(BaseModel):
    """Hand-authored answer used when no document matches at all."""
    name: str
    triggers: List[str] = Field(default_factory=list)
    answer: str
    confidence: int = Field(ge=0, le=100)


class ExtractiveTopic(BaseModel):
    """How to phrase an extractive answer when the LLM is unavailable."""
    name: str
    triggers: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    lead: str
    fallback_lead: str


DEFAULT_CANNED_TOPICS: List[dict] = [
    {
        "name": "leave",
        "triggers": ["leave", "vacation", "izin", "məzuniyyət", "tələbi", "talebi"],
        "answer": (
            "To submit a leave request, please use the Workflows section in the admin panel "
            "or contact your HR representative. Leave requests typically require advance "
            "notice and manager approval."
        ),
        "confidence": 60,
    },
    {
        "name": "password",
        "triggers": ["password", "reset", "şifre", "parol"],
        "answer": (
            "For password reset requests, please contact the IT support team through the "
            "ticketing system or reach out to your IT administrator directly."
        ),
        "confidence": 60,
    },
    {
        "name": "technical",
        "triggers": [
            "komputer", "computer", "problem", "issue", "bildir",
            "report", "problemi", "teknik",
        ],
        "answer": (
            "To report computer or technical problems, please create a ticket in the "
            "ticketing system or contact IT support. Provide details about the issue "
            "including error messages and when it occurred."
        ),
        "confidence": 65,
    },
    {
        "name": "policy",
        "triggers": ["policy", "procedure", "prosedur", "qaydalar"],
        "answer": (
            "Company policies and procedures can be found in the Documents section. If you "
            "need access to specific policies, please contact your manager or HR department."
        ),
        "confidence": 50,
    },
]

DEFAULT_EXTRACTIVE_TOPICS: List[dict] = [
    {
        "name": "hardware",
        "triggers": ["monitor", "hardware"],
        "keywords": ["hardware", "equipment", "monitor", "request", "approval", "manager"],
        "lead": "Based on our IT policies: ",
        "fallback_lead": (
            "Based on our IT policies, hardware requests typically require approval. "
            "Here's what I found in the documentation: "
        ),
    },
    {
        "name": "network",
        "triggers": ["vpn", "internet", "connection"],
        "keywords": ["vpn", "connection", "internet", "network", "globalprotect", "problem"],
        "lead": "Based on our IT policies: ",
        "fallback_lead": "Based on our IT documentation: ",
    },
    {
        "name": "security",
        "triggers": ["password", "login"],
        "keywords": ["password", "login", "security", "account", "reset"],
        "lead": "Based on our security policies: ",
        "fallback_lead": "Based on our security documentation: ",
    },
]


class DepartmentHeuristic(BaseModel):
    """Substring terms that send a ticket to a department without the LLM."""
    department: str
    terms: List[str] = Field(default_factory=list)
    confidence: int = Field(default=75, ge=0, le=100)
    reasoning: str


DEFAULT_DEPARTMENT_HEURISTICS: List[dict] = [
    {
        "department": "IT",
        "terms": ["password", "login", "access", "software", "computer", "network"],
        "reasoning": "Keyword-based: IT-related terms detected",
    },
    {
        "department": "HR",
        "terms": ["leave", "vacation", "payroll", "benefit", "hr"],
        "reasoning": "Keyword-based: HR-related terms detected",
    },
    {
        "department": "Finance",
        "terms": ["expense", "payment", "invoice", "budget", "finance"],
        "reasoning": "Keyword-based: Finance-related terms detected",
    },
]


def fold_diacritics(text: str, folds: Optional[Dict[str, str]] = None) -> str:
    """Lowercase and map language-specific letters to base Latin."""
    folds = DEFAULT_DIACRITIC_FOLDS if folds is None else folds
    lowered = text.lower()
    return "".join(folds.get(char, char) for char in lowered)


class LexiconConfig(BaseModel):
    """
    Multilingual lexicon loaded from YAML.

    Every table falls back to the built-in defaults when the file leaves it
    out. Terms are stored diacritic-folded so they compare directly against
    folded question and chunk text.

    Loaded once and swapped whole on reload, never edited in place.
    """
    diacritic_folds: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_DIACRITIC_FOLDS))
    stop_words: List[str] = Field(default_factory=lambda: list(DEFAULT_STOP_WORDS))
    synonyms: Dict[str, List[str]] = Field(default_factory=lambda: {k: list(v) for k, v in DEFAULT_SYNONYMS.items()})
    canned_topics: List[CannedTopic] = Field(
        default_factory=lambda: [CannedTopic(**topic) for topic in DEFAULT_CANNED_TOPICS]
    )
    canned_default_answer: str = (
        "I'm sorry, I couldn't find specific information about your question in our "
        "knowledge base. Please try rephrasing your question or contact the appropriate "
        "department directly."
    )
    canned_default_confidence: int = Field(default=20, ge=0, le=100)
    extractive_topics: List[ExtractiveTopic] = Field(
        default_factory=lambda: [ExtractiveTopic(**topic) for topic in DEFAULT_EXTRACTIVE_TOPICS]
    )
    extractive_default_lead: str = (
        "Based on our company documentation, here's what I found regarding your question: "
    )
    max_keywords: int = Field(default=10, ge=1)
    min_keyword_length: int = Field(default=3, ge=1)
    direct_match_weight: float = Field(default=2.0, gt=0)
    synonym_match_weight: float = Field(default=1.5, gt=0)
    department_heuristics: List[DepartmentHeuristic] = Field(
        default_factory=lambda: [DepartmentHeuristic(**rule) for rule in DEFAULT_DEPARTMENT_HEURISTICS]
    )
    heuristic_default_department: str = "General"
    heuristic_default_confidence: int = Field(default=40, ge=0, le=100)
    heuristic_default_reasoning: str = "Keyword-based: No specific department keywords found"

    @field_validator("diacritic_folds")
    @classmethod
    def validate_folds(cls, v: Dict[str, str]) -> Dict[str, str]:
        """Folds map single characters."""
        for source in v:
            if len(source) != 1:
                raise ValueError(f"diacritic fold keys must be single characters, got {source!r}")
        return v

    @model_validator(mode="after")
    def fold_terms(self) -> "LexiconConfig":
        """Store every term in folded form."""
        fold = self.fold
        self.stop_words = sorted({fold(word) for word in self.stop_words})
        self.synonyms = {
            fold(base): [fold(term) for term in terms]
            for base, terms in self.synonyms.items()
        }
        for topic in self.canned_topics:
            topic.triggers = [fold(t) for t in topic.triggers]
        for topic in self.extractive_topics:
            topic.triggers = [fold(t) for t in topic.triggers]
            topic.keywords = [fold(k) for k in topic.keywords]
        for heuristic in self.department_heuristics:
            heuristic.terms = [fold(t) for t in heuristic.terms]
        return self

    def fold(self, text: str) -> str:
        return fold_diacritics(text, self.diacritic_folds)

    def find_canned_topic(self, question: str) -> Optional[CannedTopic]:
        """First topic, in priority order, with a trigger inside the question."""
        folded = self.fold(question)
        for topic in self.canned_topics:
            if any(trigger in folded for trigger in topic.triggers):
                return topic
        return None

    def find_extractive_topic(self, question: str) -> Optional[ExtractiveTopic]:
        folded = self.fold(question)
        for topic in self.extractive_topics:
            if any(trigger in folded for trigger in topic.triggers):
                return topic
        return None

    def find_department_heuristic(self, text: str) -> Optional[DepartmentHeuristic]:
        """First department, in priority order, whose terms occur in ``text``."""
        folded = self.fold(text)
        for heuristic in self.department_heuristics:
            if any(term in folded for term in heuristic.terms):
                return heuristic
        return None


# ========== Keyword matching ==========

class KeywordMatcher:
    """
    Multilingual keyword scoring used when semantic search finds nothing.

    Scores are a weighted recall: a keyword found verbatim weighs 2, a
    keyword found through its synonym group weighs 1.5, a keyword not found
    adds 1 to the denominator only.
    """

    def __init__(self, lexicon: Optional[LexiconConfig] = None):
        self._lexicon = lexicon or LexiconConfig()
        self._stop_words = frozenset(self._lexicon.stop_words)

    @property
    def lexicon(self) -> LexiconConfig:
        return self._lexicon

    def extract_keywords(self, text: str) -> List[str]:
        """Folded, punctuation-free tokens in input order, at most ``max_keywords``."""
        normalized = _PUNCTUATION.sub(" ", self._lexicon.fold(text))
        tokens = _WHITESPACE.split(normalized.strip()) if normalized.strip() else []
        keywords = [
            token for token in tokens
            if len(token) >= self._lexicon.min_keyword_length and token not in self._stop_words
        ]
        return keywords[:self._lexicon.max_keywords]

    def _synonym_terms(self, keyword: str) -> List[str]:
        terms: List[str] = []
        for base, synonyms in self._lexicon.synonyms.items():
            if keyword == base or keyword in synonyms:
                terms.append(base)
                terms.extend(synonyms)
        return terms

    def calculate_keyword_similarity(self, keywords: Sequence[str], text: str) -> float:
        """Weighted share of ``keywords`` present in ``text``, in [0, 1]."""
        lowered = text.lower()
        folded = self._lexicon.fold(text)

        def contains(term: str) -> bool:
            return term in lowered or term in folded

        matched = 0.0
        total = 0.0
        for keyword in keywords:
            weight = 1.0
            found = False

            if contains(keyword):
                found = True
                weight = self._lexicon.direct_match_weight

            synonym_terms = self._synonym_terms(keyword)
            if synonym_terms and any(contains(term) for term in synonym_terms):
                found = True
                weight = max(weight, self._lexicon.synonym_match_weight)

            if found:
                matched += weight
            total += weight

        return matched / total if total > 0 else 0.0

    def rank(
        self,
        question: str,
        chunks: Sequence[Chunk],
        limit: int = 5,
        min_score: float = 0.05,
        similarity_floor: float = 0.6
    ) -> List[ScoredChunk]:
        """
        Keyword hits for ``question``, best first.

        Reported similarity is floored at ``similarity_floor``: a keyword hit
        means "match found", not a measured semantic distance.
        """
        keywords = self.extract_keywords(question)
        if not keywords:
            return []

        scored = [
            (chunk, self.calculate_keyword_similarity(keywords, chunk.text))
            for chunk in chunks
        ]
        hits = [(chunk, score) for chunk, score in scored if score > min_score]
        hits.sort(key=lambda item: item[1], reverse=True)

        return [
            ScoredChunk(
                chunk=chunk,
                similarity=max(score, similarity_floor),
                match_type=RetrievalStrategy.KEYWORD
            )
            for chunk, score in hits[:limit]
        ]


def extract_relevant_sentences(text: str, keywords: Sequence[str], max_sentences: int = 3) -> Optional[str]:
    """
    Up to ``max_sentences`` sentences of ``text`` mentioning any keyword.

    Returns None when no sentence qualifies.
    """
    sentences = [s.strip() for s in _SENTENCE_BOUNDARY.split(text) if len(s.strip()) > 10]
    relevant = [
        sentence for sentence in sentences
        if any(keyword.lower() in fold_diacritics(sentence) for keyword in keywords)
    ]
    if not relevant:
        return None
    return ". ".join(relevant[:max_sentences]) + "."
