"""
Async HTTP Client Configuration

Provides a shared httpx.AsyncClient with connection pooling and
timeout presets for each external service. The client (and the
credentials the service clients attach to it) is process-wide and
read-only once created.
"""

import httpx
from typing import Optional


# Timeout configurations (in seconds)
class Timeouts:
    """Timeout presets for external services."""
    SEARCH = 10.0       # Google Custom Search
    LM = 40.0           # Chat completions (reasoning models are slow)
    CONNECT = 5.0


# Retry configuration
class RetryConfig:
    """Retry settings shared by the search and LM clients."""
    MAX_ATTEMPTS = 3
    BASE_DELAY = 2.0    # seconds; doubles per attempt on HTTP 429

    # Non-retryable status codes
    NON_RETRYABLE_CODES = {400, 401, 403, 404, 422}

    RATE_LIMIT_CODE = 429


# Shared client instance (lazily initialized)
_client: Optional[httpx.AsyncClient] = None


async def get_client() -> httpx.AsyncClient:
    """Get the shared async HTTP client."""
    global _client
    if _client is None:
        _client = httpx.AsyncClient(
            timeout=httpx.Timeout(Timeouts.SEARCH, connect=Timeouts.CONNECT),
            limits=httpx.Limits(max_keepalive_connections=20, max_connections=50),
            follow_redirects=True,
        )
    return _client


async def close_client():
    """Close the shared client (call on app shutdown)."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None


def get_timeout(service: str, seconds: Optional[float] = None) -> httpx.Timeout:
    """Get timeout configuration for a service."""
    timeouts = {
        "search": Timeouts.SEARCH,
        "lm": Timeouts.LM,
    }
    if seconds is None:
        seconds = timeouts.get(service.lower(), 10.0)
    return httpx.Timeout(seconds, connect=min(Timeouts.CONNECT, seconds))


def is_rate_limit_status(status_code: int) -> bool:
    return status_code == RetryConfig.RATE_LIMIT_CODE


def is_non_retryable_error(status_code: int) -> bool:
    """Check if an HTTP error should not be retried."""
    return status_code in RetryConfig.NON_RETRYABLE_CODES
