"""
Base Provider

Abstract base class for LLM providers.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Dict, Optional

from ..models import LLMResponse

logger = logging.getLogger('autocrm.sales_bot.providers.base')


class BaseProvider(ABC):
    """Abstract base class for LLM providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name (e.g., 'gemini', 'openai')."""
        pass

    @abstractmethod
    def generate(
        self,
        model_name: str,
        messages: List[Dict[str, str]],
        max_tokens: int = 1024,
        temperature: float = 0.9,
        api_key: Optional[str] = None,
        **kwargs,
    ) -> LLMResponse:
        """
        Generate a response from the LLM.

        Args:
            model_name: Model identifier (e.g., 'gemini-2.0-flash-001')
            messages: Role-tagged turns ('user' / 'assistant'), oldest first.
                The last entry is the new user turn.
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature
            api_key: API key (optional, falls back to environment)
            **kwargs: top_p, top_k and other provider-specific options

        Returns:
            LLMResponse with content and token counts
        """
        pass

    def format_messages(
        self,
        messages: List[Dict[str, str]],
    ) -> List[Dict[str, str]]:
        """Format messages for this provider. Default returns a copy as-is."""
        return [dict(m) for m in messages]
