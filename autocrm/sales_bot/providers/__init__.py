"""
Sales Bot LLM Providers

Multi-provider abstraction for the conversation model.
"""

from .base_provider import BaseProvider
from .claude_provider import ClaudeProvider
from .openai_provider import OpenAIProvider
from .gemini_provider import GeminiProvider

__all__ = [
    'BaseProvider',
    'ClaudeProvider',
    'OpenAIProvider',
    'GeminiProvider',
]
