"""
OpenAI Provider

OpenAI GPT LLM provider implementation.
"""

import os
from typing import List, Dict, Optional

import openai

from core.utils.logging_config import get_logger
from ..models import LLMResponse
from ..exceptions import LLMProviderError, LLMRateLimitError, LLMAuthenticationError
from .base_provider import BaseProvider

logger = get_logger('autocrm.sales_bot.providers.openai')


class OpenAIProvider(BaseProvider):
    """OpenAI GPT LLM provider."""

    @property
    def name(self) -> str:
        return "openai"

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
        Generate a response using OpenAI chat completions.

        top_p is forwarded; top_k has no OpenAI equivalent and is ignored.

        Raises:
            LLMProviderError: If API call fails
            LLMRateLimitError: If rate limited
            LLMAuthenticationError: If API key invalid
        """
        key = api_key or os.environ.get('OPENAI_API_KEY')
        if not key:
            raise LLMAuthenticationError(self.name, "OPENAI_API_KEY not found")

        formatted_messages = self.format_messages(messages)

        temperature = max(0.0, min(2.0, temperature))

        request_params = {
            'model': model_name,
            'messages': formatted_messages,
            'max_tokens': max_tokens,
            'temperature': temperature,
        }
        if kwargs.get('top_p') is not None:
            request_params['top_p'] = kwargs['top_p']

        try:
            client = openai.OpenAI(api_key=key)

            logger.debug(f"OpenAI API request: model={model_name}, messages={len(formatted_messages)}")

            response = client.chat.completions.create(**request_params)

            content = ""
            if response.choices:
                content = response.choices[0].message.content or ""

            input_tokens = response.usage.prompt_tokens if response.usage else 0
            output_tokens = response.usage.completion_tokens if response.usage else 0
            finish_reason = response.choices[0].finish_reason if response.choices else None

            logger.debug(f"OpenAI API response: tokens_in={input_tokens}, tokens_out={output_tokens}")

            return LLMResponse(
                content=content,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                model=model_name,
                finish_reason=finish_reason,
            )

        except openai.RateLimitError as e:
            logger.warning(f"OpenAI rate limit exceeded: {e}")
            raise LLMRateLimitError(self.name)

        except openai.AuthenticationError as e:
            logger.error(f"OpenAI authentication failed: {e}")
            raise LLMAuthenticationError(self.name, f"Authentication failed: {e}")

        except openai.APIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise LLMProviderError(self.name, f"OpenAI API error: {e}")

        except Exception as e:
            logger.error(f"Unexpected error calling OpenAI: {e}")
            raise LLMProviderError(self.name, f"Failed to call OpenAI API: {e}")
