"""Transport-level abstractions shared by every upstream call.

- TokenAuth: attaches the API token to outgoing requests
- RequestPolicy: timeouts, retries, backoff
- ConnectorError hierarchy: typed exceptions raised by the HTTP layer

The Pipedrive client builds on these; nothing here knows about CRM entities.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Generator, Optional

import httpx

# =============================================================================
# Authentication
# =============================================================================


class TokenAuth(httpx.Auth):
    """API token sent as `Authorization: <scheme> <token>`.

    Pipedrive accepts a bearer token on both API versions. An empty token
    sends no header, which the upstream answers with 401.
    """

    def __init__(self, token: str = "", scheme: str = "Bearer"):
        self.token = token
        self.scheme = scheme

    @property
    def is_configured(self) -> bool:
        return bool(self.token)

    def headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        value = f"{self.scheme} {self.token}" if self.scheme else self.token
        return {"Authorization": value}

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers.update(self.headers())
        yield request


# =============================================================================
# Request Policy
# =============================================================================

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


@dataclass(frozen=True)
class RequestPolicy:
    """Timeouts, retry budget and backoff for one upstream."""

    connect_timeout: float = 10.0
    read_timeout: float = 30.0
    pool_timeout: float = 60.0

    # Retries happen on transport failures and on `retry_on_status`
    max_retries: int = 3
    retry_delay: float = 1.0
    retry_backoff: float = 2.0
    retry_on_status: FrozenSet[int] = RETRYABLE_STATUSES

    user_agent: str = "salesqueue/0.2"
    default_headers: Dict[str, str] = field(
        default_factory=lambda: {"Accept": "application/json"}
    )

    def timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self.connect_timeout,
            read=self.read_timeout,
            write=self.read_timeout,
            pool=self.pool_timeout,
        )

    def should_retry(self, status_code: int) -> bool:
        return status_code in self.retry_on_status

    def retry_delay_for(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Delay before retry number `attempt` (0-based); `retry_after` wins."""
        if retry_after is not None:
            return retry_after
        return self.retry_delay * (self.retry_backoff ** attempt)


DEFAULT_POLICY = RequestPolicy()


# =============================================================================
# Connector Error Hierarchy
# =============================================================================


class ConnectorError(Exception):
    """Base exception for upstream transport errors.

    Attributes:
        connector_name: Upstream that raised it (e.g. "pipedrive_legacy")
        status_code: HTTP status, when the upstream answered at all
        details: Structured extras for diagnostics
    """

    default_message = "Upstream request failed"

    def __init__(
        self,
        message: Optional[str] = None,
        connector_name: str = "",
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.connector_name = connector_name
        self.details = details or {}
        self.status_code = status_code
        super().__init__(message or self.default_message)


class ConnectionError(ConnectorError):
    default_message = "Could not connect"


class TimeoutError(ConnectorError):
    default_message = "Request timed out"

    def __init__(self, message: Optional[str] = None, timeout_seconds: Optional[float] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.timeout_seconds = timeout_seconds
        self.details["timeout_seconds"] = timeout_seconds


class AuthenticationError(ConnectorError):
    """Invalid or revoked API token (401)."""

    default_message = "Authentication failed"


class AuthorizationError(ConnectorError):
    """Token is valid but lacks permission (403)."""

    default_message = "Permission denied"


class RateLimitError(ConnectorError):
    default_message = "Rate limit exceeded"

    def __init__(self, message: Optional[str] = None, retry_after: Optional[float] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after
        self.details["retry_after"] = retry_after


class ValidationError(ConnectorError):
    """The upstream rejected the request as malformed (400/422).

    Never absorbed by bulk fetches: a malformed request fails every batch.
    """

    default_message = "Validation failed"


class ResourceNotFoundError(ConnectorError):
    """Entity or endpoint not found (404/410); triggers the legacy fallback."""

    default_message = "Resource not found"

    def __init__(
        self,
        message: Optional[str] = None,
        resource_type: str = "",
        resource_id: str = "",
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.details.update(resource_type=resource_type, resource_id=resource_id)


class ConflictError(ConnectorError):
    default_message = "Resource conflict"


class ServiceUnavailableError(ConnectorError):
    """Upstream failure (5xx)."""

    default_message = "Service unavailable"
