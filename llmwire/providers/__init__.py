from .base import BaseProviderAdapter, ContinuationMode
from .openai import OpenAIAdapter
from .anthropic import AnthropicAdapter
from .gemini import GeminiAdapter
from .grok import GrokAdapter
from .openrouter import OpenRouterAdapter

__all__ = [
    "BaseProviderAdapter",
    "ContinuationMode",
    "OpenAIAdapter",
    "AnthropicAdapter",
    "GeminiAdapter",
    "GrokAdapter",
    "OpenRouterAdapter",
]
