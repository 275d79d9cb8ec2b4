"""
Core Exceptions
================

Error hierarchy shared by the knowledge and routing modules.

Only client errors (validation, unknown resources) reach API callers.
Provider errors are caught inside the services and turned into the next
fallback stage: placeholder embeddings, keyword search, extractive
answers, heuristic routing or template replies.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class RepositoryException(ApplicationException):
    """Storage failure: the database is unreachable or rejected a write."""


class ValidationException(ApplicationException):
    """Client input that cannot be processed (HTTP 400)."""


class DocumentExtractionException(ValidationException):
    """Uploaded file is of an unsupported type, unreadable or empty."""

    def __init__(self, filename: str, reason: str, details: Optional[dict] = None):
        self.filename = filename
        super().__init__(reason, details or {"filename": filename})


class ResourceNotFoundException(ApplicationException):
    """Unknown ticket, routing rule or document (HTTP 404)."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = resource_type
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Missing credentials or an unknown provider name."""


class ProviderException(ApplicationException):
    """An AI provider call failed, timed out or returned unusable data."""

    def __init__(self, provider: str, message: str, details: Optional[dict] = None):
        self.provider = provider
        super().__init__(f"{provider}: {message}", details)


class LLMException(ProviderException):
    """Chat completion failed or produced unparseable output."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("LLM Service", message, details)


class EmbeddingException(ProviderException):
    """Embedding generation failed."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Embedding Service", message, details)
