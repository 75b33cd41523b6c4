"""Custom exception hierarchy for the failscope package."""


class FailscopeError(Exception):
    """Base exception for all failscope errors."""


class ConfigurationError(FailscopeError):
    """Missing or invalid configuration."""


class DimensionMismatchError(FailscopeError, ValueError):
    """Vectors of different length passed to a similarity/distance function."""

    def __init__(self, left_dim: int, right_dim: int) -> None:
        self.left_dim = left_dim
        self.right_dim = right_dim
        super().__init__(
            f"Vectors must have the same length: {left_dim} != {right_dim}"
        )


class EmbeddingProviderError(FailscopeError):
    """Embedding provider failed or returned an unusable vector."""


class GeminiApiError(FailscopeError):
    """HTTP error from the Google Generative Language API."""

    def __init__(self, status_code: int, message: str, endpoint: str) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(f"HTTP {status_code} from {endpoint}: {message}")
