"""
Gemini Provider

Google Gemini LLM provider implementation (default for the sales bot).
"""

import os
from typing import List, Dict, Any, Optional

from core.utils.logging_config import get_logger
from ..models import LLMResponse
from ..exceptions import LLMProviderError, LLMRateLimitError, LLMAuthenticationError
from .base_provider import BaseProvider

logger = get_logger('autocrm.sales_bot.providers.gemini')


class GeminiProvider(BaseProvider):
    """Google Gemini LLM provider."""

    @property
    def name(self) -> str:
        return "gemini"

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
        Generate a response using a Gemini chat session.

        All but the last message become the chat history; the last one is
        sent with send_message().

        Raises:
            LLMProviderError: If API call fails
            LLMRateLimitError: If rate limited
            LLMAuthenticationError: If API key invalid
        """
        try:
            import google.generativeai as genai
        except ImportError:
            raise LLMProviderError(self.name, "google-generativeai package not installed. Run: pip install google-generativeai")

        key = api_key or os.environ.get('GOOGLE_AI_API_KEY')
        if not key:
            raise LLMAuthenticationError(self.name, "GOOGLE_AI_API_KEY not found")

        genai.configure(api_key=key)

        formatted_messages = self._format_for_gemini(messages)
        if not formatted_messages:
            raise LLMProviderError(self.name, "No messages to send")

        # Gemini accepts 0.0-1.0
        temperature = max(0.0, min(1.0, temperature))

        generation_config = {
            'temperature': temperature,
            'max_output_tokens': max_tokens,
        }
        if kwargs.get('top_p') is not None:
            generation_config['top_p'] = kwargs['top_p']
        if kwargs.get('top_k') is not None:
            generation_config['top_k'] = kwargs['top_k']

        try:
            model = genai.GenerativeModel(model_name=model_name)
            chat = model.start_chat(history=formatted_messages[:-1])
            last_message = formatted_messages[-1]['parts'][0]

            logger.debug(f"Gemini API request: model={model_name}, turns={len(formatted_messages)}")

            response = chat.send_message(last_message, generation_config=generation_config)
            content = response.text or ""

            input_tokens = self._estimate_input_tokens(formatted_messages)
            output_tokens = len(content) // 4
            if getattr(response, 'usage_metadata', None):
                input_tokens = getattr(response.usage_metadata, 'prompt_token_count', input_tokens)
                output_tokens = getattr(response.usage_metadata, 'candidates_token_count', output_tokens)

            logger.debug(f"Gemini API response: tokens_in={input_tokens}, tokens_out={output_tokens}")

            return LLMResponse(
                content=content,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                model=model_name,
                finish_reason='stop',
            )

        except Exception as e:
            error_str = str(e).lower()
            if 'quota' in error_str or 'rate' in error_str:
                logger.warning(f"Gemini rate limit exceeded: {e}")
                raise LLMRateLimitError(self.name)
            elif 'api key' in error_str or 'auth' in error_str:
                logger.error(f"Gemini authentication failed: {e}")
                raise LLMAuthenticationError(self.name, f"Authentication failed: {e}")
            else:
                logger.error(f"Gemini API error: {e}")
                raise LLMProviderError(self.name, f"Gemini API error: {e}")

    def _format_for_gemini(
        self,
        messages: List[Dict[str, str]],
    ) -> List[Dict[str, Any]]:
        """Map to Gemini 'user'/'model' roles with 'parts' content."""
        formatted = []
        for msg in messages:
            role = msg.get('role', 'user')
            formatted.append({
                'role': 'model' if role == 'assistant' else 'user',
                'parts': [msg.get('content', '')],
            })

        # Chat history must open with a user turn
        if formatted and formatted[0]['role'] != 'user':
            formatted.insert(0, {
                'role': 'user',
                'parts': ['[Conversation context]'],
            })

        return formatted

    @staticmethod
    def _estimate_input_tokens(formatted_messages: list) -> int:
        total_chars = sum(len(str(p)) for m in formatted_messages for p in m.get('parts', []))
        return max(1, total_chars // 4)
