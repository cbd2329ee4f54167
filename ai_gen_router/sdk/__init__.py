"""
SDK for AI Gen Router.

Provides programmatic access to routed, tracked generation.
"""

from .generator import GenerationClient
from .openai_client import OpenAIBackend

__all__ = ["GenerationClient", "OpenAIBackend"]
