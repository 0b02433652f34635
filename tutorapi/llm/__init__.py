"""
LLM module - Language model integration.

This module handles all LLM interactions:
- Prompt construction
- Provider cascade (Groq, Google Gemini)
- Token usage reporting for metering
"""
from tutorapi.llm.client import LLMClient, LLMResult, get_llm_client

__all__ = [
    "LLMClient",
    "LLMResult",
    "get_llm_client",
]
