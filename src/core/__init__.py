"""
Core Module
============

Framework-agnostic building blocks shared by the knowledge and routing
modules. Currently the exception hierarchy.
"""

from src.core.exceptions import (
    ApplicationException,
    RepositoryException,
    ValidationException,
    DocumentExtractionException,
    ResourceNotFoundException,
    ConfigurationException,
    ProviderException,
    LLMException,
    EmbeddingException,
)

__all__ = [
    "ApplicationException",
    "RepositoryException",
    "ValidationException",
    "DocumentExtractionException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "ProviderException",
    "LLMException",
    "EmbeddingException",
]
