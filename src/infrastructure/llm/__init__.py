"""
LLM Client Infrastructure
==========================

Wrapper for LLM providers (OpenAI, Groq, Z.AI) providing a clean interface
for embedding and chat completion calls.

This module abstracts the LLM client implementation following the
Dependency Inversion Principle - the application layer depends on
abstractions, not concrete implementations. Every provider call is bounded
by ``settings.provider_timeout_seconds``; a timeout is reported exactly like
any other provider failure.
"""

import asyncio
import hashlib
import json
import math
import re
import time
from typing import Any, List, Optional, Awaitable, TypeVar
from abc import ABC, abstractmethod

from openai import AsyncOpenAI
from zai import ZaiClient

from src.config import settings
from src.core import LLMException, EmbeddingException, ConfigurationException
from src.shared.infrastructure.grafana import get_grafana_exporter

T = TypeVar("T")


class EmbeddingResult:
    """Result of a batch embedding call."""

    def __init__(self, embeddings: List[List[float]], model: str):
        self.embeddings = embeddings
        self.model = model
        self.dimension = len(embeddings[0]) if embeddings else 0


class ChatCompletionResult:
    """Result of a chat completion."""

    def __init__(
        self,
        content: str,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        latency_ms: int
    ):
        self.content = content
        self.model = model
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.total_tokens = prompt_tokens + completion_tokens
        self.latency_ms = latency_ms


class IEmbeddingProvider(ABC):
    """Anything that can turn texts into vectors."""

    @abstractmethod
    async def generate_embeddings(self, texts: List[str]) -> EmbeddingResult:
        """Generate one embedding per text, preserving order."""


class IChatCompleter(ABC):
    """Anything that can complete a chat conversation."""

    @abstractmethod
    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 1000,
        operation: str = "chat_completion",
        json_mode: bool = False
    ) -> ChatCompletionResult:
        """Generate chat completion."""


class ILLMClient(IEmbeddingProvider, IChatCompleter):
    """
    Interface for LLM client operations.

    Services depend on IEmbeddingProvider or IChatCompleter only;
    provider clients implement both.
    """


async def _bounded(call: Awaitable[T], timeout: Optional[float] = None) -> T:
    """Await a provider call, raising asyncio.TimeoutError past the budget."""
    return await asyncio.wait_for(call, timeout=timeout or settings.provider_timeout_seconds)


async def _export_usage(result: ChatCompletionResult, operation: str) -> None:
    exporter = get_grafana_exporter()
    if exporter.is_enabled():
        await exporter.export_llm_metrics(
            model=result.model,
            prompt_tokens=result.prompt_tokens,
            completion_tokens=result.completion_tokens,
            latency_ms=result.latency_ms,
            operation=operation
        )


class OpenAILLMClient(ILLMClient):
    """
    OpenAI client implementation for GPT and text-embedding models.

    Provides async wrapper around OpenAI SDK operations.
    """

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        self._api_key = api_key or settings.openai_api_key
        if not self._api_key:
            raise ConfigurationException("OpenAI API key not configured")

        self._client = AsyncOpenAI(
            api_key=self._api_key,
            base_url=base_url,
            timeout=settings.provider_timeout_seconds,
            max_retries=1
        )
        self._model = settings.llm_model
        self._embedding_model = settings.embedding_model

    async def generate_embeddings(self, texts: List[str]) -> EmbeddingResult:
        """
        Generate embeddings for a batch of texts in a single request.

        Raises:
            EmbeddingException: If the provider fails or times out
        """
        try:
            response = await _bounded(
                self._client.embeddings.create(model=self._embedding_model, input=texts)
            )
        except asyncio.TimeoutError:
            raise EmbeddingException("Embedding request timed out")
        except Exception as e:
            raise EmbeddingException(f"Embedding generation failed: {str(e)}")

        ordered = sorted(response.data, key=lambda item: item.index)
        return EmbeddingResult(
            embeddings=[item.embedding for item in ordered],
            model=self._embedding_model
        )

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 1000,
        operation: str = "chat_completion",
        json_mode: bool = False
    ) -> ChatCompletionResult:
        """
        Generate chat completion.

        Args:
            messages: List of message dicts with 'role' and 'content'
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum tokens to generate
            operation: Operation type for metrics (qa_answer, routing, ...)
            json_mode: Ask the model for a JSON object response

        Raises:
            LLMException: If completion fails or times out
        """
        start_time = time.perf_counter()
        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await _bounded(
                self._client.chat.completions.create(
                    model=self._model,
                    messages=messages,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    **kwargs
                )
            )
        except asyncio.TimeoutError:
            raise LLMException("Chat completion timed out")
        except Exception as e:
            raise LLMException(f"Chat completion failed: {str(e)}")

        content = response.choices[0].message.content
        if not content:
            raise LLMException("Chat completion returned no content")

        usage = response.usage
        result = ChatCompletionResult(
            content=content,
            model=self._model,
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
            latency_ms=int((time.perf_counter() - start_time) * 1000)
        )
        await _export_usage(result, operation)
        return result


class GroqLLMClient(OpenAILLMClient):
    """
    Groq client implementation for Llama models.

    Groq is OpenAI-compatible for chat but has no embedding API, so
    embedding calls fail and callers take their degraded path.
    """

    def __init__(self, api_key: Optional[str] = None):
        key = api_key or settings.groq_api_key
        if not key:
            raise ConfigurationException("Groq API key not configured")
        super().__init__(api_key=key, base_url="https://api.groq.com/openai/v1")

    async def generate_embeddings(self, texts: List[str]) -> EmbeddingResult:
        raise EmbeddingException("Groq does not provide an embedding API")


class ZAIILLMClient(ILLMClient):
    """
    Z.AI SDK client implementation for GLM models.

    The SDK is synchronous; calls run in a worker thread so the event loop
    stays free while the provider answers.
    """

    def __init__(self, api_key: Optional[str] = None):
        self._api_key = api_key or settings.zai_api_key
        if not self._api_key:
            raise ConfigurationException("Z.AI API key not configured")

        self._client = ZaiClient(api_key=self._api_key)
        self._model = settings.llm_model
        self._embedding_model = settings.embedding_model

    async def generate_embeddings(self, texts: List[str]) -> EmbeddingResult:
        try:
            response = await _bounded(asyncio.to_thread(
                self._client.embeddings.create,
                model=self._embedding_model,
                input=texts
            ))
        except asyncio.TimeoutError:
            raise EmbeddingException("Embedding request timed out")
        except Exception as e:
            raise EmbeddingException(f"Embedding generation failed: {str(e)}")

        return EmbeddingResult(
            embeddings=[item.embedding for item in response.data],
            model=self._embedding_model
        )

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 1000,
        operation: str = "chat_completion",
        json_mode: bool = False
    ) -> ChatCompletionResult:
        start_time = time.perf_counter()
        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await _bounded(asyncio.to_thread(
                self._client.chat.completions.create,
                model=self._model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs
            ))
        except asyncio.TimeoutError:
            raise LLMException("Chat completion timed out")
        except Exception as e:
            raise LLMException(f"Chat completion failed: {str(e)}")

        content = response.choices[0].message.content
        if not content:
            raise LLMException("Chat completion returned no content")

        # Z.AI doesn't return token usage, so we estimate
        result = ChatCompletionResult(
            content=content,
            model=self._model,
            prompt_tokens=len(str(messages)) // 4,
            completion_tokens=len(content) // 4,
            latency_ms=int((time.perf_counter() - start_time) * 1000)
        )
        await _export_usage(result, operation)
        return result


class MockLLMClient(ILLMClient):
    """
    Mock LLM client for local runs without provider credentials.

    Embeddings are hashed bag-of-words vectors, so texts sharing words are
    genuinely similar and the semantic path can be exercised offline.
    """

    _TOKEN_RE = re.compile(r"\w+", re.UNICODE)

    def __init__(self, dimension: Optional[int] = None):
        self._dimension = dimension or settings.embedding_dimension

    def _embed(self, text: str) -> List[float]:
        vector = [0.0] * self._dimension
        for token in self._TOKEN_RE.findall(text.lower()):
            digest = hashlib.sha256(token.encode()).digest()
            vector[int.from_bytes(digest[:4], "big") % self._dimension] += 1.0
        norm = math.sqrt(sum(v * v for v in vector))
        return [v / norm for v in vector] if norm else vector

    async def generate_embeddings(self, texts: List[str]) -> EmbeddingResult:
        return EmbeddingResult(
            embeddings=[self._embed(text) for text in texts],
            model="mock-embedding"
        )

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 1000,
        operation: str = "chat_completion",
        json_mode: bool = False
    ) -> ChatCompletionResult:
        """Return a canned response shaped for the calling operation."""
        if operation == "routing":
            content = json.dumps({
                "department": "General",
                "confidence": 50,
                "reasoning": "Mock: no provider configured"
            })
        elif operation == "reply_suggestions":
            content = json.dumps({"replies": []})
        elif operation == "faq_generation":
            content = json.dumps({"faqs": []})
        else:
            system = str(messages[0].get("content", "")) if messages else ""
            context = system.split("Context from company documents:", 1)[-1].strip()
            content = f"Based on the provided documents: {context[:300]}"

        return ChatCompletionResult(
            content=content,
            model="mock-model",
            prompt_tokens=100,
            completion_tokens=len(content.split()),
            latency_ms=1
        )


def parse_json_content(content: str) -> Any:
    """
    Decode a JSON completion, tolerating markdown code fences.

    Raises:
        LLMException: If the content is not valid JSON
    """
    text = content.strip()
    if "```json" in text:
        text = text.split("```json")[1].split("```")[0].strip()
    elif "```" in text:
        text = text.split("```")[1].split("```")[0].strip()

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise LLMException(f"Failed to parse JSON response: {e}")


def create_llm_client(provider: Optional[str] = None) -> ILLMClient:
    """
    Build the configured provider client.

    Raises:
        ConfigurationException: If the provider's API key is missing
    """
    provider = (provider or settings.llm_provider).lower()
    if provider == "openai":
        return OpenAILLMClient()
    if provider == "groq":
        return GroqLLMClient()
    if provider == "zai":
        return ZAIILLMClient()
    if provider == "mock":
        return MockLLMClient()
    raise ConfigurationException(f"Unknown LLM provider: {provider}")
