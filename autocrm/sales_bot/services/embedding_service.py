"""
Embedding Service

Generates query embeddings for inventory and knowledge-base search.
Gemini is preferred since car_stock and bot_documents were indexed with
text-embedding-004 (768 dims); OpenAI is used at the same width when only
an OpenAI key is configured.
"""

import os
import time
import hashlib
from typing import List, Optional, Tuple
from collections import OrderedDict

from core.utils.logging_config import get_logger
from migrations.init_schema import EMBEDDING_DIMENSIONS
from ..exceptions import EmbeddingError, ConfigurationError

logger = get_logger('autocrm.sales_bot.services.embedding')

# Module-level query embedding cache (shared across service instances).
_QUERY_CACHE: OrderedDict[str, Tuple[List[float], float]] = OrderedDict()
_QUERY_CACHE_MAX = 256
_QUERY_CACHE_TTL = 600  # 10 minutes

# Provider definitions in priority order (first match wins)
_EMBEDDING_PROVIDERS = [
    {
        'name': 'gemini',
        'env_key': 'GOOGLE_AI_API_KEY',
        'model': 'models/text-embedding-004',
    },
    {
        'name': 'openai',
        'env_key': 'OPENAI_API_KEY',
        'model': 'text-embedding-3-small',
    },
]


def clear_query_cache():
    _QUERY_CACHE.clear()


class EmbeddingService:
    """
    Query embedding service.

    Auto-detects the provider from the environment:
      1. Gemini  (text-embedding-004)
      2. OpenAI  (text-embedding-3-small, truncated to the index width)
    """

    def __init__(self):
        self._provider_name: Optional[str] = None
        self._api_key: Optional[str] = None
        self._model: Optional[str] = None
        self._client = None
        self._detected = False

    def _detect_provider(self) -> None:
        """Auto-detect embedding provider (cached)."""
        if self._detected:
            return
        self._detected = True

        for prov in _EMBEDDING_PROVIDERS:
            key = os.environ.get(prov['env_key'])
            if key:
                self._provider_name = prov['name']
                self._api_key = key
                self._model = prov['model']
                logger.info(
                    f"Embedding provider: {prov['name']} "
                    f"(model={prov['model']}, dims={EMBEDDING_DIMENSIONS})"
                )
                return

        logger.warning("No embedding provider available, vector search disabled")

    @property
    def provider_name(self) -> Optional[str]:
        self._detect_provider()
        return self._provider_name

    def is_available(self) -> bool:
        self._detect_provider()
        return self._provider_name is not None

    def generate_embedding(self, text: str, use_cache: bool = True) -> List[float]:
        """
        Generate embedding for a search query.

        Raises:
            EmbeddingError: If embedding generation fails
            ConfigurationError: If no provider available
        """
        self._detect_provider()
        if not self._provider_name:
            raise ConfigurationError(
                "No embedding provider available. Set GOOGLE_AI_API_KEY or OPENAI_API_KEY."
            )

        if not text or not text.strip():
            raise EmbeddingError("Cannot generate embedding for empty text")

        cache_key = None
        if use_cache:
            cache_key = hashlib.md5(text.encode('utf-8')).hexdigest()
            cached = _QUERY_CACHE.get(cache_key)
            if cached:
                embedding, ts = cached
                if (time.time() - ts) < _QUERY_CACHE_TTL:
                    _QUERY_CACHE.move_to_end(cache_key)
                    return embedding
                else:
                    del _QUERY_CACHE[cache_key]

        try:
            if self._provider_name == 'gemini':
                embedding = self._embed_gemini(text)
            elif self._provider_name == 'openai':
                embedding = self._embed_openai(text)
            else:
                raise ConfigurationError(f"Unknown provider: {self._provider_name}")

            if len(embedding) != EMBEDDING_DIMENSIONS:
                raise EmbeddingError(
                    f"Expected {EMBEDDING_DIMENSIONS} dims, got {len(embedding)}"
                )

            logger.debug(f"Generated embedding: {len(embedding)} dims via {self._provider_name}")

            if use_cache and cache_key:
                _QUERY_CACHE[cache_key] = (embedding, time.time())
                while len(_QUERY_CACHE) > _QUERY_CACHE_MAX:
                    _QUERY_CACHE.popitem(last=False)

            return embedding

        except (EmbeddingError, ConfigurationError):
            raise
        except Exception as e:
            logger.error(f"Embedding failed ({self._provider_name}): {e}")
            raise EmbeddingError(f"Embedding generation failed: {e}")

    # ── Gemini backend ──────────────────────────────────────────

    def _embed_gemini(self, text: str) -> List[float]:
        try:
            import google.generativeai as genai
        except ImportError:
            raise ConfigurationError("google-generativeai not installed")

        genai.configure(api_key=self._api_key)
        result = genai.embed_content(
            model=self._model,
            content=text,
            task_type='retrieval_query',
        )
        return result['embedding']

    # ── OpenAI backend ──────────────────────────────────────────

    def _get_openai_client(self):
        if self._client is None:
            import openai
            self._client = openai.OpenAI(api_key=self._api_key)
        return self._client

    def _embed_openai(self, text: str) -> List[float]:
        import openai as openai_mod
        try:
            client = self._get_openai_client()
            response = client.embeddings.create(
                model=self._model, input=text, dimensions=EMBEDDING_DIMENSIONS,
            )
            return response.data[0].embedding
        except openai_mod.RateLimitError as e:
            raise EmbeddingError(f"OpenAI rate limit: {e}")
        except openai_mod.AuthenticationError as e:
            raise ConfigurationError(f"Invalid OpenAI API key: {e}")
