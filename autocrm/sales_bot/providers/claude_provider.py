"""
Claude Provider

Anthropic Claude LLM provider implementation.
"""

import os
from typing import List, Dict, Optional

import anthropic

from core.utils.logging_config import get_logger
from ..models import LLMResponse
from ..exceptions import LLMProviderError, LLMRateLimitError, LLMAuthenticationError
from .base_provider import BaseProvider

logger = get_logger('autocrm.sales_bot.providers.claude')


class ClaudeProvider(BaseProvider):
    """Anthropic Claude LLM provider."""

    @property
    def name(self) -> str:
        return "claude"

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
        Generate a response using Claude.

        Raises:
            LLMProviderError: If API call fails
            LLMRateLimitError: If rate limited
            LLMAuthenticationError: If API key invalid
        """
        key = api_key or os.environ.get('ANTHROPIC_API_KEY')
        if not key:
            raise LLMAuthenticationError(self.name, "ANTHROPIC_API_KEY not found")

        formatted_messages = self.format_messages(messages)

        temperature = max(0.0, min(1.0, temperature))

        request_params = {
            'model': model_name,
            'max_tokens': max_tokens,
            'temperature': temperature,
            'messages': formatted_messages,
        }
        if kwargs.get('top_k') is not None:
            request_params['top_k'] = kwargs['top_k']

        try:
            client = anthropic.Anthropic(api_key=key)

            logger.debug(f"Claude API request: model={model_name}, messages={len(formatted_messages)}")

            response = client.messages.create(**request_params)

            content = ""
            if response.content:
                content = response.content[0].text

            input_tokens = response.usage.input_tokens if response.usage else 0
            output_tokens = response.usage.output_tokens if response.usage else 0

            logger.debug(f"Claude API response: tokens_in={input_tokens}, tokens_out={output_tokens}")

            return LLMResponse(
                content=content,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                model=model_name,
                finish_reason=response.stop_reason,
            )

        except anthropic.RateLimitError as e:
            logger.warning(f"Claude rate limit exceeded: {e}")
            raise LLMRateLimitError(self.name)

        except anthropic.AuthenticationError as e:
            logger.error(f"Claude authentication failed: {e}")
            raise LLMAuthenticationError(self.name, f"Authentication failed: {e}")

        except anthropic.APIError as e:
            logger.error(f"Claude API error: {e}")
            raise LLMProviderError(self.name, f"Claude API error: {e}")

        except Exception as e:
            logger.error(f"Unexpected error calling Claude: {e}")
            raise LLMProviderError(self.name, f"Failed to call Claude API: {e}")

    def format_messages(
        self,
        messages: List[Dict[str, str]],
    ) -> List[Dict[str, str]]:
        """
        Claude requires alternating user/assistant turns starting with user.

        Consecutive turns of the same role (e.g. two inbound WhatsApp
        messages in a row) are merged.
        """
        formatted = []
        prev_role = None

        for msg in messages:
            role = msg.get('role', 'user')
            content = msg.get('content', '')

            if role not in ('user', 'assistant'):
                role = 'user'

            if role == prev_role and formatted:
                formatted[-1]['content'] += f"\n\n{content}"
            else:
                formatted.append({'role': role, 'content': content})
                prev_role = role

        if formatted and formatted[0]['role'] != 'user':
            formatted.insert(0, {
                'role': 'user',
                'content': '[Conversation context]'
            })

        return formatted
