"""WhatsApp Cloud API client exceptions."""


class TransportError(Exception):
    """Base exception for all WhatsApp API errors."""

    def __init__(self, message, code=None, details=None, is_retryable=False):
        super().__init__(message)
        self.code = code
        self.details = details or {}
        self.is_retryable = is_retryable


class TransportConfigurationError(TransportError):
    """Missing or invalid credentials, detected when the client is built."""

    def __init__(self, message='WhatsApp API credentials are missing', **kwargs):
        super().__init__(message, is_retryable=False, **kwargs)


class NetworkError(TransportError):
    """Connection refused, timeout, or network issue."""

    def __init__(self, message='Network error', **kwargs):
        super().__init__(message, is_retryable=True, **kwargs)


class RequestTimeoutError(NetworkError):
    """Request timed out."""

    def __init__(self, message='Request timed out', **kwargs):
        super().__init__(message, **kwargs)


class APIError(TransportError):
    """Non-success response from the Graph API."""

    def __init__(self, message='API error', status_code=None, **kwargs):
        is_retryable = bool(status_code and (status_code >= 500 or status_code == 429))
        super().__init__(message, is_retryable=is_retryable, **kwargs)
        self.status_code = status_code


class ParseError(TransportError):
    """Failed to parse API response."""

    def __init__(self, message='Failed to parse response', **kwargs):
        super().__init__(message, is_retryable=False, **kwargs)
