"""Custom exception types for the GitHub metrics exporter."""


class ExporterError(Exception):
    """Base exception for all recoverable exporter errors."""


class ConfigurationError(ExporterError):
    """Raised when runtime configuration values are missing or invalid."""


class TransportError(ExporterError):
    """Raised when a GitHub API request fails or returns an unexpected response."""


class AuthenticationError(TransportError):
    """Raised when GitHub credentials are unavailable or rejected."""


class RateLimitError(TransportError):
    """Raised when GitHub refuses a request because a rate limit was hit."""


class PaginationLimitError(TransportError):
    """Raised when a paginated fetch exceeds the configured page ceiling."""


class DataValidationError(ExporterError):
    """Raised when API payloads do not contain the fields the exporter needs."""
