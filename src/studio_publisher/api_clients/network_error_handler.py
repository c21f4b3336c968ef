"""Network Error Handler for hosting API clients.

Classifies httpx failures and error responses from GitHub and the deployment
provider into typed exceptions, attaches console guidance, and drives retry
with exponential backoff for transient failures.
"""

import asyncio
import json
import logging
import random
import re
from dataclasses import dataclass, field
from typing import Any, Optional, List, Callable, cast

import httpx

logger = logging.getLogger(__name__)


@dataclass
class UserGuidance:
    """User guidance information for network errors."""

    error_type: str
    troubleshooting_steps: List[str]
    additional_notes: List[str] = field(default_factory=list)

    def format_for_console(self) -> str:
        """Format guidance for rich console output."""
        content = [f"[bold red]Error Type:[/bold red] {self.error_type}", ""]
        content.append("[bold yellow]Troubleshooting Steps:[/bold yellow]")

        for i, step in enumerate(self.troubleshooting_steps, 1):
            content.append(f"{i}. {step}")

        if self.additional_notes:
            content.append("")
            content.append("[bold blue]Additional Notes:[/bold blue]")
            for note in self.additional_notes:
                content.append(f"• {note}")

        return "\n".join(content)


@dataclass
class RetryConfig:
    """Configuration for retry logic with exponential backoff."""

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter_enabled: bool = True


class NetworkConnectionError(Exception):
    """Exception raised for connection-related network failures."""

    def __init__(self, message: str, user_guidance: Optional[str] = None):
        super().__init__(message)
        self.user_guidance = user_guidance or ""


class NetworkTimeoutError(Exception):
    """Exception raised for timeout-related network failures."""

    def __init__(self, message: str, user_guidance: Optional[str] = None):
        super().__init__(message)
        self.user_guidance = user_guidance or ""


class DNSResolutionError(Exception):
    """Exception raised for DNS resolution failures."""

    def __init__(self, message: str, user_guidance: Optional[str] = None):
        super().__init__(message)
        self.user_guidance = user_guidance or ""


class SSLCertificateError(Exception):
    """Exception raised for SSL certificate verification failures."""

    def __init__(self, message: str, user_guidance: Optional[str] = None):
        super().__init__(message)
        self.user_guidance = user_guidance or ""


class ServerError(Exception):
    """Exception raised for server-side errors (5xx responses)."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        user_guidance: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.user_guidance = user_guidance or ""
        self.is_retryable = True


class RateLimitError(Exception):
    """Exception raised when the provider throttles us (429, or 403 with an exhausted quota)."""

    def __init__(
        self,
        message: str,
        retry_after: Optional[int] = None,
        user_guidance: Optional[str] = None,
    ):
        super().__init__(message)
        self.retry_after = retry_after
        self.user_guidance = user_guidance or ""
        self.is_retryable = True


def extract_error_detail(response: httpx.Response) -> str:
    """Pull a human readable message out of a provider error body.

    GitHub answers ``{"message": ...}``, the deployment provider answers
    ``{"error": {"message": ...}}`` and some proxies answer ``{"detail": ...}``.
    """
    fallback = f"HTTP {response.status_code}"
    try:
        body = response.json()
    except (json.JSONDecodeError, ValueError):
        text = response.text.strip() if response.text else ""
        return text or fallback

    if not isinstance(body, dict):
        return fallback

    error = body.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if body.get("message"):
        message = str(body["message"])
        details = [
            item.get("message")
            for item in body.get("errors", []) or []
            if isinstance(item, dict) and item.get("message")
        ]
        if details:
            message = f"{message} ({'; '.join(details)})"
        return message
    if body.get("detail"):
        return str(body["detail"])
    return fallback


class UserGuidanceProvider:
    """Provides user guidance for different network error scenarios."""

    def __init__(self):
        self._guidance_mapping = {
            NetworkConnectionError: self._get_connection_error_guidance,
            DNSResolutionError: self._get_dns_resolution_guidance,
            SSLCertificateError: self._get_ssl_certificate_guidance,
            NetworkTimeoutError: self._get_timeout_guidance,
            ServerError: self._get_server_error_guidance,
            RateLimitError: self._get_rate_limit_guidance,
        }

    def get_guidance(self, error: Exception) -> UserGuidance:
        """Get user guidance for a specific error."""
        guidance_func = self._guidance_mapping.get(
            type(error), self._get_generic_guidance
        )
        return cast(UserGuidance, guidance_func(error))

    def _get_connection_error_guidance(
        self, error: NetworkConnectionError
    ) -> UserGuidance:
        return UserGuidance(
            error_type="Network Connection Error",
            troubleshooting_steps=[
                "Check that the API base URL in your config is correct",
                "Check your firewall and proxy settings",
                "Verify network connectivity to the provider",
            ],
            additional_notes=[
                "No branch was moved if the failure happened before the pointer stage",
            ],
        )

    def _get_dns_resolution_guidance(self, error: DNSResolutionError) -> UserGuidance:
        return UserGuidance(
            error_type="DNS Resolution Error",
            troubleshooting_steps=[
                "Check your internet connection",
                "Verify the API hostname is spelled correctly",
                "Check your DNS server settings",
            ],
            additional_notes=["DNS resolution issues are often temporary"],
        )

    def _get_ssl_certificate_guidance(self, error: SSLCertificateError) -> UserGuidance:
        return UserGuidance(
            error_type="SSL Certificate Error",
            troubleshooting_steps=[
                "Check whether a corporate proxy is intercepting TLS",
                "Update your system certificate store",
            ],
            additional_notes=[
                "Do not disable certificate verification to work around this",
            ],
        )

    def _get_timeout_guidance(self, error: NetworkTimeoutError) -> UserGuidance:
        return UserGuidance(
            error_type="Network Timeout Error",
            troubleshooting_steps=[
                "Try again - this may be a temporary issue",
                "Increase the timeouts section of the config if it persists",
                "If the timeout hit a branch update, re-read the branch before retrying",
            ],
        )

    def _get_server_error_guidance(self, error: ServerError) -> UserGuidance:
        return UserGuidance(
            error_type="Server Error",
            troubleshooting_steps=[
                "The provider is having internal issues",
                "Wait a few minutes and try again",
                "Check https://www.githubstatus.com or the provider status page",
            ],
        )

    def _get_rate_limit_guidance(self, error: RateLimitError) -> UserGuidance:
        retry_after = getattr(error, "retry_after", None) or 60
        return UserGuidance(
            error_type="Rate Limit Error",
            troubleshooting_steps=[
                "You are sending requests too quickly",
                f"Wait {retry_after} seconds before trying again",
                "Large batches create one blob per file; lower publish.max_concurrent_blobs",
            ],
        )

    def _get_generic_guidance(self, error: Exception) -> UserGuidance:
        return UserGuidance(
            error_type="Unknown Network Error",
            troubleshooting_steps=[
                "Check your network connection",
                "Try again in a few minutes",
            ],
        )


class NetworkErrorHandler:
    """Handles network error classification and retry logic."""

    def __init__(self):
        self.guidance_provider = UserGuidanceProvider()
        self._dns_error_patterns = [
            r"name.*resolution.*failed",
            r"name.*or.*service.*not.*known",
            r"nodename.*nor.*servname.*provided",
            r"temporary.*failure.*in.*name.*resolution",
        ]
        self._connection_error_patterns = [
            r"connection.*refused",
            r"connection.*reset",
            r"network.*is.*unreachable",
            r"no.*route.*to.*host",
        ]
        self._ssl_error_patterns = [
            r"ssl.*certificate.*verification.*failed",
            r"certificate.*verify.*failed",
            r"ssl.*handshake.*failed",
            r"bad.*certificate",
        ]

    def _with_guidance(self, error: Exception) -> Exception:
        guidance = self.guidance_provider.get_guidance(error)
        setattr(error, "user_guidance", guidance.format_for_console())
        return error

    def classify_network_error(self, error: Exception) -> None:
        """Classify a transport failure and raise the matching typed exception.

        Raises:
            Specific network error exception based on classification
        """
        error_message = str(error).lower()

        if isinstance(error, httpx.ConnectError):
            self._handle_connect_error(error, error_message)
        elif isinstance(error, httpx.TimeoutException):
            self._handle_timeout_error(error, error_message)
        elif isinstance(error, httpx.NetworkError):
            raise self._with_guidance(NetworkConnectionError(f"Network error: {error}"))
        else:
            raise self._with_guidance(
                NetworkConnectionError(f"Unknown network error: {error}")
            )

    def classify_response(self, response: httpx.Response) -> None:
        """Raise the typed exception for an error response (status >= 400)."""
        # Import here to avoid circular dependency
        from .base_client import APIClientError, AuthenticationError

        status_code = response.status_code
        error_detail = extract_error_detail(response)

        if status_code == 429 or (
            status_code == 403
            and response.headers.get("x-ratelimit-remaining") == "0"
        ):
            retry_after = None
            if "Retry-After" in response.headers:
                try:
                    retry_after = int(response.headers["Retry-After"])
                except ValueError:
                    retry_after = 60
            raise self._with_guidance(
                RateLimitError(error_detail, retry_after=retry_after)
            )

        if status_code == 401:
            raise AuthenticationError(
                f"Authentication failed: {error_detail}", status_code=401
            )

        if 500 <= status_code < 600:
            raise self._with_guidance(
                ServerError(
                    f"Server is experiencing issues: {error_detail}",
                    status_code=status_code,
                )
            )

        client_error = APIClientError(error_detail, status_code=status_code)
        client_error.is_retryable = False
        raise client_error

    def _handle_connect_error(
        self, error: httpx.ConnectError, error_message: str
    ) -> None:
        if any(re.search(p, error_message) for p in self._dns_error_patterns):
            raise self._with_guidance(
                DNSResolutionError(
                    "Cannot resolve API host. Check your internet connection and the configured URL."
                )
            )

        if any(re.search(p, error_message) for p in self._ssl_error_patterns):
            raise self._with_guidance(
                SSLCertificateError("SSL certificate verification failed.")
            )

        if any(re.search(p, error_message) for p in self._connection_error_patterns):
            raise self._with_guidance(
                NetworkConnectionError(
                    f"Cannot connect to API host: connection refused or reset ({error})"
                )
            )

        raise self._with_guidance(NetworkConnectionError(f"Connection failed: {error}"))

    def _handle_timeout_error(self, error: Exception, error_message: str) -> None:
        if isinstance(error, httpx.ConnectTimeout) or "connect" in error_message:
            timeout_error = NetworkTimeoutError("Connection timed out.")
        else:
            timeout_error = NetworkTimeoutError("Request timed out.")
        raise self._with_guidance(timeout_error)

    def is_error_retryable(self, error: Exception) -> bool:
        """Determine if an error is worth retrying.

        Only transient failures are retried; permanent ones (auth, 4xx,
        refused connections, certificate problems) are raised immediately.
        """
        if isinstance(error, (ServerError, RateLimitError, NetworkTimeoutError)):
            return True

        if isinstance(error, DNSResolutionError):
            return True

        if isinstance(error, NetworkConnectionError):
            return "connection refused" not in str(error).lower()

        if isinstance(error, SSLCertificateError):
            return False

        from .base_client import APIClientError

        if isinstance(error, APIClientError):
            return bool(getattr(error, "is_retryable", False))

        return False

    def retry_delay(self, error: Exception, attempt: int, config: RetryConfig) -> float:
        """Compute the wait before the next attempt."""
        retry_after = getattr(error, "retry_after", None)
        if retry_after:
            return float(min(retry_after, config.max_delay))

        delay = min(
            config.initial_delay * (config.backoff_multiplier**attempt),
            config.max_delay,
        )
        if config.jitter_enabled:
            delay += delay * 0.1 * random.random()  # Up to 10% jitter
        return delay

    async def retry_with_backoff(
        self,
        operation: Callable[[], Any],
        config: RetryConfig,
    ) -> Any:
        """Execute operation with retry logic and exponential backoff.

        Args:
            operation: Async function to execute
            config: Retry configuration

        Returns:
            Result of successful operation

        Raises:
            The last exception once it is not retryable or retries are exhausted
        """
        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as e:
                if not self.is_error_retryable(e) or attempt >= config.max_retries:
                    raise

                delay = self.retry_delay(e, attempt, config)
                logger.warning(
                    f"Retrying after {type(e).__name__} "
                    f"(attempt {attempt + 1}/{config.max_retries}, waiting {delay:.2f}s): {e}"
                )
                await asyncio.sleep(delay)
                attempt += 1
