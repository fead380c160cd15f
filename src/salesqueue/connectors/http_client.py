"""Retrying async HTTP transport over httpx.

Every request follows a RequestPolicy (timeouts, retry budget, backoff) and
non-2xx answers are mapped onto the ConnectorError hierarchy.

Tests inject an `httpx.MockTransport` through the `transport` argument.
"""

import asyncio
import json as json_module
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Type

import httpx

from .base import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    ConnectionError,
    DEFAULT_POLICY,
    ConnectorError,
    RateLimitError,
    RequestPolicy,
    ResourceNotFoundError,
    ServiceUnavailableError,
    TimeoutError,
    TokenAuth,
    ValidationError,
)

logger = logging.getLogger(__name__)

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})


@dataclass
class HTTPResponse:
    """Buffered response detached from the httpx client that produced it."""

    status_code: int
    headers: Dict[str, str]
    body: bytes
    json_data: Optional[Any] = None
    elapsed_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        """True for 2xx."""
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        """Decoded body; parsed once and memoized."""
        if self.json_data is None:
            self.json_data = json_module.loads(self.body) if self.body else None
        return self.json_data


# Status codes with a dedicated error type; anything else >= 500 is
# ServiceUnavailableError, the rest plain ConnectorError.
STATUS_ERRORS: Dict[int, Type[ConnectorError]] = {
    400: ValidationError,
    401: AuthenticationError,
    403: AuthorizationError,
    404: ResourceNotFoundError,
    409: ConflictError,
    410: ResourceNotFoundError,
    422: ValidationError,
}


def _retry_after(headers: Dict[str, str]) -> Optional[float]:
    value = headers.get("retry-after") or headers.get("Retry-After")
    try:
        return float(value) if value else None
    except ValueError:
        return None


def map_http_error(
    status_code: int,
    body: bytes,
    headers: Dict[str, str],
    request_line: str = "",
    connector_name: str = "http_client",
) -> ConnectorError:
    """Map an HTTP status code to the matching ConnectorError.

    The message carries the request line and the response body so a
    failure can be traced without log correlation.
    """
    detail = body.decode("utf-8", errors="replace")
    if request_line:
        detail = f"{request_line}: {detail}"

    if status_code == 429:
        return RateLimitError(
            f"{RateLimitError.default_message}: {detail}",
            retry_after=_retry_after(headers),
            connector_name=connector_name,
            status_code=status_code,
        )
    if status_code in STATUS_ERRORS:
        error_cls = STATUS_ERRORS[status_code]
        return error_cls(f"{error_cls.default_message}: {detail}", connector_name=connector_name, status_code=status_code)
    if status_code >= 500:
        return ServiceUnavailableError(
            f"Service error ({status_code}): {detail}", connector_name=connector_name, status_code=status_code
        )
    return ConnectorError(f"HTTP error {status_code}: {detail}", connector_name=connector_name, status_code=status_code)


class AsyncHTTPClient:
    """Async HTTP client bound to one base URL.

    Each request opens a short-lived `httpx.AsyncClient`, so one instance
    can serve concurrent tasks without shared connection state.
    """

    def __init__(
        self,
        auth: Optional[TokenAuth] = None,
        policy: Optional[RequestPolicy] = None,
        base_url: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        connector_name: str = "http_client",
    ):
        """Initialize async HTTP client.

        Args:
            auth: Token authentication applied to every request
            policy: Request policy (timeouts, retries)
            base_url: Base URL for all requests
            transport: Optional httpx transport (tests use MockTransport)
            connector_name: Name recorded on raised ConnectorErrors
        """
        self.auth = auth
        self.policy = policy or DEFAULT_POLICY
        self.base_url = base_url.rstrip("/")
        self.transport = transport
        self.connector_name = connector_name

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        return {"User-Agent": self.policy.user_agent, **self.policy.default_headers, **(extra or {})}

    async def _backoff(self, attempt: int, budget: int, retry_after: Optional[float] = None) -> bool:
        """Sleep before the next attempt; False when the retry budget is spent."""
        if attempt >= budget:
            return False
        await asyncio.sleep(self.policy.retry_delay_for(attempt, retry_after))
        return True

    async def _send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        json: Optional[Any],
        params: Optional[Dict[str, Any]],
    ) -> HTTPResponse:
        started = time.monotonic()
        async with httpx.AsyncClient(
            auth=self.auth, timeout=self.policy.timeout(), transport=self.transport
        ) as client:
            response = await client.request(method, url, json=json, params=params, headers=headers)
        return HTTPResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            body=response.content,
            elapsed_seconds=time.monotonic() - started,
        )

    def _transport_error(self, exc: httpx.HTTPError, request_line: str) -> ConnectorError:
        """ConnectorError for a request that got no HTTP response."""
        if isinstance(exc, httpx.TimeoutException):
            return TimeoutError(
                f"Request timed out after {self.policy.read_timeout}s: {request_line}",
                connector_name=self.connector_name,
                timeout_seconds=self.policy.read_timeout,
            )
        if isinstance(exc, httpx.ConnectError):
            return ConnectionError(f"Failed to connect: {request_line}: {exc}", connector_name=self.connector_name)
        return ConnectorError(f"HTTP error: {request_line}: {exc}", connector_name=self.connector_name)

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        raise_for_status: bool = True,
        retry: Optional[bool] = None,
    ) -> HTTPResponse:
        """Make async HTTP request with retry logic.

        Transport failures and statuses in `policy.retry_on_status` are
        retried up to `policy.max_retries` times. By default only idempotent
        methods are retried; `retry` overrides that per call.

        Raises:
            ConnectorError: On HTTP errors (if raise_for_status=True)
            TimeoutError: On request timeout after all retries
            ConnectionError: On connection failure after all retries
        """
        url = self._url(path)
        request_headers = self._headers(headers)
        request_line = f"{method} {url}"
        if retry is None:
            retry = method.upper() in IDEMPOTENT_METHODS
        budget = self.policy.max_retries if retry else 0

        for attempt in range(budget + 1):
            try:
                result = await self._send(method, url, request_headers, json, params)
            except httpx.HTTPError as e:
                error = self._transport_error(e, request_line)
                if await self._backoff(attempt, budget):
                    logger.info(f"Retrying {request_line} after {type(error).__name__}")
                    continue
                raise error from e

            logger.debug(f"{request_line} -> {result.status_code} ({result.elapsed_seconds:.3f}s)")

            if not result.ok and self.policy.should_retry(result.status_code):
                if await self._backoff(attempt, budget, _retry_after(result.headers)):
                    logger.info(f"Retrying {request_line} after status {result.status_code}")
                    continue

            if raise_for_status and not result.ok:
                raise map_http_error(
                    result.status_code,
                    result.body,
                    result.headers,
                    request_line=request_line,
                    connector_name=self.connector_name,
                )
            return result

        raise ConnectorError(f"Request failed after all retries: {request_line}", connector_name=self.connector_name)

    async def get(self, path: str, **kwargs) -> HTTPResponse:
        """GET shortcut."""
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> HTTPResponse:
        """POST shortcut."""
        return await self.request("POST", path, **kwargs)
