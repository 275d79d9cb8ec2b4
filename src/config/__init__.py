"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="flowmind-assist", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root logging level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/flowmind",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== LLM Provider ==========
    llm_provider: str = Field(
        default="openai",
        description="LLM provider: openai, groq, zai or mock"
    )
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    groq_api_key: Optional[str] = Field(default=None, description="Groq API key")
    zai_api_key: Optional[str] = Field(default=None, description="Z.AI API key")
    llm_model: str = Field(
        default="gpt-4o",
        description="Chat model for answers, routing and reply suggestions"
    )
    embedding_model: str = Field(
        default="text-embedding-3-small",
        description="Embedding model for document chunks and questions"
    )
    embedding_dimension: int = Field(
        default=1536,
        description="Embedding vector dimension",
        ge=8
    )
    llm_temperature: float = Field(
        default=0.7,
        description="Temperature for answer generation",
        ge=0.0,
        le=1.0
    )
    llm_max_tokens: int = Field(
        default=500,
        description="Max tokens for answer generation",
        ge=1,
        le=8000
    )
    provider_timeout_seconds: float = Field(
        default=15.0,
        description="Upper bound for a single embedding or chat call",
        gt=0,
        le=120
    )

    # ========== Question Answering ==========
    qa_top_k: int = Field(
        default=5,
        description="Number of chunks used to compose an answer",
        ge=1,
        le=20
    )
    qa_similarity_threshold: float = Field(
        default=0.7,
        description="Minimum cosine similarity for a semantic hit",
        ge=0.0,
        le=1.0
    )
    keyword_min_score: float = Field(
        default=0.05,
        description="Keyword scores must exceed this to count as a match",
        ge=0.0,
        le=1.0
    )
    keyword_similarity_floor: float = Field(
        default=0.6,
        description="Similarity reported for keyword matches below this value",
        ge=0.0,
        le=1.0
    )
    chunk_size: int = Field(
        default=1000,
        description="Character budget for document chunks",
        ge=100
    )
    chunk_overlap_sentences: int = Field(
        default=2,
        description="Sentences carried over between consecutive chunks",
        ge=0
    )
    qa_corpus_widening: str = Field(
        default="title_keywords",
        description="What to search when a department has no chunks: title_keywords or none"
    )
    qa_widening_title_terms: List[str] = Field(
        default=["it", "policy", "procedure"],
        description="Title fragments that qualify a document for widened search"
    )
    lexicon_config_path: Path = Field(
        default=Path("lexicon.yaml"),
        description="Optional YAML file overriding stop words, synonyms and topics"
    )
    embedding_refresh_interval: int = Field(
        default=300,
        description="Seconds between re-embedding passes over fallback chunks (0 disables)",
        ge=0
    )
    embedding_refresh_batch_size: int = Field(
        default=50,
        description="Chunks re-embedded per refresh pass",
        ge=1
    )
    seed_routing_rules: bool = Field(
        default=True,
        description="Install the stock routing rules when none exist"
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins"
    )

    # ========== Grafana OTLP Metrics ==========
    grafana_host: Optional[str] = Field(
        default=None,
        description="Grafana OTLP gateway URL (e.g., https://otlp-gateway-prod-eu-west-2.grafana.net)"
    )
    grafana_api_key: Optional[str] = Field(
        default=None,
        description="Grafana API key for OTLP authentication"
    )
    grafana_instance_id: Optional[str] = Field(
        default=None,
        description="Grafana instance ID for OTLP authentication"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production", "test"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("llm_provider")
    @classmethod
    def validate_llm_provider(cls, v: str) -> str:
        """Ensure the provider is one we have a client for."""
        v = v.lower()
        allowed = {"openai", "groq", "zai", "mock"}
        if v not in allowed:
            raise ValueError(f"llm_provider must be one of {allowed}")
        return v

    @field_validator("qa_corpus_widening")
    @classmethod
    def validate_corpus_widening(cls, v: str) -> str:
        """Ensure the widening policy is known."""
        v = v.lower()
        allowed = {"title_keywords", "none"}
        if v not in allowed:
            raise ValueError(f"qa_corpus_widening must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class Department(str):
    """Departments a ticket can be routed to."""
    HR = "HR"
    IT = "IT"
    FINANCE = "Finance"
    GENERAL = "General"


class ReplyTone(str):
    """Tones of suggested ticket replies."""
    PROFESSIONAL = "professional"
    EMPATHETIC = "empathetic"
    TECHNICAL = "technical"


class RetrievalStrategy(str):
    """How the chunks behind an answer were found."""
    SEMANTIC = "semantic"
    KEYWORD = "keyword"
    SEED = "seed"
    CANNED = "canned"
    ERROR = "error"


class RoutingStrategy(str):
    """Which routing stage produced a department."""
    RULE = "rule"
    AI = "ai"
    HEURISTIC = "heuristic"
    DEFAULT = "default"


class TicketStatus(str):
    """Ticket lifecycle statuses."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class Priority(str):
    """Ticket and routing rule priority levels."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# ========== Lists for validation ==========

VALID_DEPARTMENTS = [
    Department.HR, Department.IT,
    Department.FINANCE, Department.GENERAL
]
VALID_REPLY_TONES = [
    ReplyTone.PROFESSIONAL, ReplyTone.EMPATHETIC, ReplyTone.TECHNICAL
]
VALID_PRIORITIES = [
    Priority.CRITICAL, Priority.HIGH,
    Priority.MEDIUM, Priority.LOW
]
VALID_STATUSES = [
    TicketStatus.OPEN, TicketStatus.IN_PROGRESS,
    TicketStatus.RESOLVED, TicketStatus.CLOSED
]

# Confidence below this is shown to users as "low confidence"
LOW_CONFIDENCE_THRESHOLD = 50
