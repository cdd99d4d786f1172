"""LLM adapter layer - abstracts over LLM providers."""

from coach_gateway.adapters.llm.base import AbstractLLMClient, LLMCompletion
from coach_gateway.adapters.llm.factory import create_llm_client
from coach_gateway.adapters.llm.openai_client import OpenAIClient

__all__ = [
    "AbstractLLMClient",
    "LLMCompletion",
    "OpenAIClient",
    "create_llm_client",
]
