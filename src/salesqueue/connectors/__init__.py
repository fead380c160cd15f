"""Connector layer: token auth, request policy, errors and HTTP transport."""

from .base import (
    DEFAULT_POLICY,
    RETRYABLE_STATUSES,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    ConnectionError,
    ConnectorError,
    RateLimitError,
    RequestPolicy,
    ResourceNotFoundError,
    ServiceUnavailableError,
    TimeoutError,
    TokenAuth,
    ValidationError,
)
from .http_client import AsyncHTTPClient, HTTPResponse, map_http_error

__all__ = [
    "TokenAuth",
    "RequestPolicy",
    "DEFAULT_POLICY",
    "RETRYABLE_STATUSES",
    # Errors
    "ConnectorError",
    "ConnectionError",
    "TimeoutError",
    "AuthenticationError",
    "AuthorizationError",
    "RateLimitError",
    "ValidationError",
    "ResourceNotFoundError",
    "ConflictError",
    "ServiceUnavailableError",
    # HTTP client
    "AsyncHTTPClient",
    "HTTPResponse",
    "map_http_error",
]
