"""
Sales Bot Custom Exceptions

Custom exception classes for the sales assistant.
"""


class SalesBotError(Exception):
    """Base exception for the sales assistant."""
    pass


class LLMProviderError(SalesBotError):
    """Base exception for LLM provider errors."""
    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


class LLMAuthenticationError(LLMProviderError):
    """Raised when LLM provider authentication fails."""
    def __init__(self, provider: str, message: str = "Authentication failed - check API key"):
        super().__init__(provider, message)


class LLMRateLimitError(LLMProviderError):
    """Raised when LLM provider rate limit is exceeded."""
    def __init__(self, provider: str, retry_after: int = None):
        self.retry_after = retry_after
        msg = "Rate limit exceeded"
        if retry_after:
            msg += f" - retry after {retry_after} seconds"
        super().__init__(provider, msg)


class LLMTimeoutError(LLMProviderError):
    """Raised when the model call exceeds the caller's timeout."""
    def __init__(self, provider: str, timeout: int):
        self.timeout = timeout
        super().__init__(provider, f"Request timed out after {timeout} seconds")


class RAGError(SalesBotError):
    """Base exception for retrieval errors."""
    pass


class EmbeddingError(RAGError):
    """Raised when embedding generation fails."""
    def __init__(self, message: str):
        super().__init__(f"Embedding error: {message}")


class ConfigurationError(SalesBotError):
    """Raised when configuration is invalid or missing."""
    def __init__(self, message: str):
        super().__init__(f"Configuration error: {message}")


class FollowUpDivergenceError(SalesBotError):
    """Raised when a follow-up was sent but the lead row was not updated."""
    def __init__(self, lead_id: str, message_id: str, reason: str):
        self.lead_id = lead_id
        self.message_id = message_id
        super().__init__(f"Follow-up {message_id} sent to lead {lead_id} but not recorded: {reason}")
