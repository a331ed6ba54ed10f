from __future__ import annotations

from typing import Any, Dict, Optional
from datetime import datetime, timezone
import asyncio
import logging

import httpx
from pydantic import BaseModel, Field

from ..core.errors import TransportFailure

# Methods that do not change server state; only these are ever retried
READ_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


class ApiClientConfig(BaseModel):
    """Connection settings for the remote Scrum API."""

    name: str = "scrum-api"
    base_url: str = "http://localhost:8080/api"
    api_token: Optional[str] = None
    timeout: float = Field(default=30.0, gt=0, le=300)
    read_retry_attempts: int = Field(default=0, ge=0, le=10)
    retry_delay: float = Field(default=1.0, ge=0.0, le=60.0)

    @classmethod
    def from_settings(cls, settings: Any) -> "ApiClientConfig":
        return cls(
            base_url=settings.api_base_url,
            api_token=settings.api_token,
            timeout=settings.request_timeout,
            read_retry_attempts=settings.read_retry_attempts,
            retry_delay=settings.retry_delay,
        )


class RequestMetrics(BaseModel):
    """Client performance metrics."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    average_response_time: float = 0.0
    last_error: Optional[str] = None
    last_success: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        """Calculate success rate percentage."""
        if self.total_requests == 0:
            return 0.0
        return (self.successful_requests / self.total_requests) * 100


class BaseApiClient:
    """
    Async HTTP client base for the remote Scrum API.

    Provides common functionality:
    - HTTP client management
    - Error mapping to TransportFailure
    - Retry of reads (writes are sent exactly once)
    - Metrics tracking
    """

    def __init__(
        self,
        config: Optional[ApiClientConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config or ApiClientConfig()
        self.metrics = RequestMetrics()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def __aenter__(self) -> "BaseApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url.rstrip("/"),
                timeout=self.config.timeout,
                headers=self._get_default_headers(),
                transport=self._transport,
            )
        return self._client

    def _get_default_headers(self) -> Dict[str, str]:
        headers = {
            "User-Agent": f"scrum-progress/{self.config.name}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self.config.api_token:
            headers["Authorization"] = f"Bearer {self.config.api_token}"
        return headers

    async def _make_request(
        self,
        method: str,
        url: str,
        operation: Optional[str] = None,
        **kwargs,
    ) -> httpx.Response:
        """
        Make HTTP request with error handling.

        Args:
            method: HTTP method
            url: Request URL, relative to the configured base URL
            operation: Name reported on failure, defaults to "METHOD url"
            **kwargs: Additional request parameters

        Returns:
            HTTP response

        Raises:
            TransportFailure: on any network error or non-2xx response
        """
        method = method.upper()
        operation = operation or f"{method} {url}"
        retries = self.config.read_retry_attempts if method in READ_METHODS else 0
        start_time = datetime.now(timezone.utc)

        for attempt in range(retries + 1):
            try:
                response = await self._get_client().request(method, url, **kwargs)
            except httpx.TimeoutException as e:
                if attempt < retries:
                    await self._backoff(attempt)
                    continue
                self._record_failure(operation, f"timeout after {self.config.timeout}s")
                raise TransportFailure(
                    f"Request timeout after {self.config.timeout}s", operation
                ) from e
            except httpx.HTTPError as e:
                if attempt < retries:
                    await self._backoff(attempt)
                    continue
                self._record_failure(operation, str(e))
                raise TransportFailure(f"Network error: {str(e)}", operation) from e

            if response.is_success:
                self._update_metrics_success(start_time)
                return response

            # Only server errors are worth another read
            if response.status_code >= 500 and attempt < retries:
                await self._backoff(attempt)
                continue

            kind = "Server error" if response.status_code >= 500 else "Client error"
            self._record_failure(operation, f"{kind}: {response.status_code}")
            raise TransportFailure(
                f"{kind}: {response.status_code}",
                operation,
                response.status_code,
                self._safe_json(response),
            )

        # Should never reach here
        raise TransportFailure("Request failed after all retries", operation)

    async def _backoff(self, attempt: int) -> None:
        await asyncio.sleep(self.config.retry_delay * (2 ** attempt))

    def _safe_json(self, response: httpx.Response) -> Optional[Dict[str, Any]]:
        """Safely parse JSON response."""
        try:
            data = response.json()
        except ValueError:
            return None
        return data if isinstance(data, dict) else {"body": data}

    def _update_metrics_success(self, start_time: datetime) -> None:
        duration = (datetime.now(timezone.utc) - start_time).total_seconds()

        self.metrics.total_requests += 1
        self.metrics.successful_requests += 1
        self.metrics.last_success = datetime.now(timezone.utc)

        # Update rolling average
        if self.metrics.average_response_time == 0:
            self.metrics.average_response_time = duration
        else:
            self.metrics.average_response_time = (
                (self.metrics.average_response_time * 0.9) + (duration * 0.1)
            )

    def _record_failure(self, operation: str, error: str) -> None:
        self.metrics.total_requests += 1
        self.metrics.failed_requests += 1
        self.metrics.last_error = error
        self._logger.debug("%s failed: %s", operation, error)

    def get_metrics(self) -> RequestMetrics:
        return self.metrics.model_copy()

    def reset_metrics(self) -> None:
        self.metrics = RequestMetrics()

    async def close(self) -> None:
        """Close HTTP client and cleanup resources."""
        if self._client:
            await self._client.aclose()
            self._client = None


__all__ = [
    "READ_METHODS",
    "ApiClientConfig",
    "RequestMetrics",
    "BaseApiClient",
]
