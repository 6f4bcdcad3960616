"""
Models module for LLM client abstraction.

Provides a unified interface for interacting with Ollama locally.
"""

from mock_interview.models.llm_client import (
    DEFAULT_OLLAMA_MODEL,
    JsonDecodeResult,
    LLMClient,
    LLMClientBase,
    LLMResponse,
    Message,
    OllamaError,
    decode_json_payload,
)

__all__ = [
    "LLMClient",
    "LLMClientBase",
    "LLMResponse",
    "Message",
    "OllamaError",
    "JsonDecodeResult",
    "DEFAULT_OLLAMA_MODEL",
    "decode_json_payload",
]
