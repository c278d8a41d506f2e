"""
Typed failures raised by model adapters.

Callers never assume partial success: any of these means the call
produced no usable answer and the caller's fallback policy applies.
"""


class ModelAdapterError(Exception):
    """Base exception for model adapter errors."""

    def __init__(self, message: str, model_id: str = "") -> None:
        super().__init__(message)
        self.model_id = model_id


class AdapterUnavailableError(ModelAdapterError):
    """Raised when the backend cannot be reached or refuses the request."""


class AdapterRateLimitError(ModelAdapterError):
    """Raised when the backend rejects the request for rate limiting."""


class AdapterTimeoutError(ModelAdapterError):
    """Raised when the call does not complete within its budget."""


class AdapterMalformedOutputError(ModelAdapterError):
    """Raised when the backend answers with unusable output."""
