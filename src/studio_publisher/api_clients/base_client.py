"""Base Hosting API Client.

Provides the shared HTTP session, bearer-token authentication, error
classification and retry handling used by every provider client.
"""

import asyncio
import logging
from typing import Callable, Dict, Any, Optional, TypeVar

import httpx

from ..config import TimeoutsConfig, RetrySettings
from .network_error_handler import (
    NetworkErrorHandler,
    RetryConfig,
    NetworkConnectionError,
    NetworkTimeoutError,
    DNSResolutionError,
    SSLCertificateError,
    ServerError,
    RateLimitError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class APIClientError(Exception):
    """Base exception for API client errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
        self.is_retryable: bool = True  # Default to retryable


class AuthenticationError(APIClientError):
    """Exception raised when the token is missing, invalid or lacks scope."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, status_code)
        self.is_retryable = False


class ObjectNotFoundError(APIClientError):
    """Exception raised when the provider answers 404 for a resource."""

    def __init__(self, message: str, status_code: Optional[int] = 404):
        super().__init__(message, status_code)
        self.is_retryable = False


# Everything a provider call can raise after classification.
CLIENT_ERRORS = (
    APIClientError,
    NetworkConnectionError,
    NetworkTimeoutError,
    DNSResolutionError,
    SSLCertificateError,
    ServerError,
    RateLimitError,
)


class HostingAPIClient:
    """Base API client with token authentication and common HTTP functionality."""

    DEFAULT_BASE_URL = ""

    def __init__(
        self,
        token: str,
        base_url: Optional[str] = None,
        timeouts: Optional[TimeoutsConfig] = None,
        retry: Optional[RetrySettings] = None,
        max_concurrent_requests: int = 10,
    ):
        """Initialize base API client.

        Args:
            token: API token sent as a bearer credential
            base_url: Provider API root, defaults to the public endpoint
            timeouts: Per-phase HTTP timeouts
            retry: Backoff settings for transient failures
            max_concurrent_requests: Upper bound of in-flight requests
        """
        if not token:
            raise AuthenticationError("An API token is required")

        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self._token = token
        self._timeouts = timeouts or TimeoutsConfig()
        self._session: Optional[httpx.AsyncClient] = None

        self._request_semaphore = asyncio.Semaphore(max_concurrent_requests)

        retry = retry or RetrySettings()
        self._network_error_handler = NetworkErrorHandler()
        self._retry_config = RetryConfig(
            max_retries=retry.max_retries,
            initial_delay=retry.initial_delay,
            max_delay=retry.max_delay,
            backoff_multiplier=retry.backoff_multiplier,
            jitter_enabled=retry.jitter_enabled,
        )

    @property
    def session(self) -> httpx.AsyncClient:
        """Get or create HTTP session."""
        if self._session is None or self._session.is_closed:
            timeouts = httpx.Timeout(
                connect=self._timeouts.connect,
                read=self._timeouts.read,
                write=self._timeouts.write,
                pool=self._timeouts.pool,
            )

            limits = httpx.Limits(
                max_connections=10,
                max_keepalive_connections=5,
                keepalive_expiry=30.0,
            )

            self._session = httpx.AsyncClient(
                timeout=timeouts,
                limits=limits,
                headers=self._default_headers(),
                follow_redirects=True,
                verify=True,
            )
        return self._session

    def _default_headers(self) -> Dict[str, str]:
        """Headers sent with every request."""
        return {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json",
        }

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Issue one HTTP request and raise a typed error for failures."""
        async with self._request_semaphore:
            try:
                response = await self.session.request(method, url, **kwargs)
            except (httpx.NetworkError, httpx.TimeoutException) as e:
                self._network_error_handler.classify_network_error(e)
                raise  # classify_network_error always raises

        if response.status_code >= 400:
            self._network_error_handler.classify_response(response)
        return response

    async def _request(
        self,
        method: str,
        endpoint: str,
        retry: bool = True,
        **kwargs,
    ) -> httpx.Response:
        """Make an authenticated request against the provider.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint path
            retry: Retry transient failures with backoff. Must be False for
                calls whose outcome is ambiguous after a timeout.
            **kwargs: Additional arguments for httpx request

        Returns:
            HTTP response object (status < 400)

        Raises:
            AuthenticationError: If the token is rejected (401)
            NetworkConnectionError: If connection fails
            NetworkTimeoutError: If request times out
            DNSResolutionError: If DNS resolution fails
            SSLCertificateError: If SSL certificate verification fails
            ServerError: If server returns 5xx error
            RateLimitError: If rate limited
            APIClientError: If API returns other error status
        """
        url = f"{self.base_url}{endpoint}"
        logger.debug(f"{method} {endpoint}")

        async def _operation() -> httpx.Response:
            return await self._send(method, url, **kwargs)

        try:
            if not retry:
                return await _operation()
            return await self._network_error_handler.retry_with_backoff(
                _operation, self._retry_config
            )
        except CLIENT_ERRORS:
            raise
        except Exception as e:
            raise APIClientError(f"Unexpected error during {method} {endpoint}: {e}")

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session and not self._session.is_closed:
            await self._session.aclose()
        self._session = None

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    def __del__(self):
        """Cleanup when object is destroyed."""
        if self._session is not None and not self._session.is_closed:
            # Cannot use await in __del__, so we'll just log a warning
            logger.warning(f"{type(self).__name__} was not properly closed")

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        """Decode a JSON object body."""
        try:
            data = response.json()
        except ValueError as e:
            raise APIClientError(
                f"Response body is not valid JSON: {e}", response.status_code
            )
        if not isinstance(data, dict):
            raise APIClientError(
                f"Unexpected response format: {type(data).__name__}",
                response.status_code,
            )
        return data

    @classmethod
    def _parse(
        cls, response: httpx.Response, factory: Callable[[Dict[str, Any]], T]
    ) -> T:
        """Decode a JSON object body and build a model from it.

        Raises:
            APIClientError: If the body is not JSON or lacks expected fields
        """
        data = cls._json(response)
        try:
            return factory(data)
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise APIClientError(
                f"Unexpected response format: {type(e).__name__} {e}",
                response.status_code,
            )
