"""Custom exception types for the TeamCity queue exporter."""


class ExporterError(Exception):
    """Base exception for all recoverable exporter errors."""


class ConfigurationError(ExporterError):
    """Raised when runtime configuration values are missing or invalid."""


class AuthenticationError(ExporterError):
    """Raised when TeamCity API credentials are unavailable."""


class ApiError(ExporterError):
    """Raised when a TeamCity request fails, times out, returns a status other than 200
    or an undecodable body.

    The message carries the request URL and, for HTTP failures, the status text.
    """


class DataValidationError(ExporterError):
    """Raised when API payloads do not carry the fields the aggregation needs."""
