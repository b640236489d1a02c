"""LLM client infrastructure."""

from .client import GeminiRestClient, LLMRequestError, extract_json

__all__ = ["GeminiRestClient", "LLMRequestError", "extract_json"]
