"""
Exponential backoff for footprint provider HTTP calls.

Geocoding is not wrapped: address lookups fail fast and the
caller decides whether to search again.

Usage:
    from roofline.utils.retry import retry_with_backoff, RetryConfig

    @retry_with_backoff(config=RetryConfig(max_retries=2))
    def fetch_tile():
        return session.post(url, data=query)
"""

import functools
import random
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Optional, Tuple, Type, TypeVar

import requests

from .logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    exponential_base: float = 2.0
    jitter: bool = True
    retryable_exceptions: Tuple[Type[Exception], ...] = field(
        default_factory=lambda: (
            ConnectionError,
            TimeoutError,
            requests.exceptions.ConnectionError,
            requests.exceptions.Timeout,
        )
    )
    retryable_status_codes: Tuple[int, ...] = (429, 500, 502, 503, 504)
    sleep: Callable[[float], None] = time.sleep


DEFAULT_RETRY_CONFIG = RetryConfig(max_retries=3, base_delay=1.0, max_delay=30.0)


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Backoff delay in seconds for a 0-indexed attempt."""
    delay = min(
        config.base_delay * (config.exponential_base ** attempt),
        config.max_delay,
    )
    if config.jitter:
        # up to 25%
        delay = delay * (1 + random.uniform(0, 0.25))
    return delay


def should_retry_exception(exc: Exception, config: RetryConfig) -> bool:
    """HTTP errors retry on configured status codes, others by type."""
    response = getattr(exc, "response", None)
    if response is not None and hasattr(response, "status_code"):
        return response.status_code in config.retryable_status_codes
    return isinstance(exc, config.retryable_exceptions)


def retry_with_backoff(
    func: Optional[Callable[..., T]] = None,
    *,
    config: Optional[RetryConfig] = None,
    max_retries: Optional[int] = None,
    on_retry: Optional[Callable[[Exception, int], None]] = None,
) -> Callable[..., T]:
    """
    Decorator for retrying a blocking call with exponential backoff.

    Works bare (``@retry_with_backoff``) or with arguments
    (``@retry_with_backoff(max_retries=2)``). The passed config is never
    mutated.
    """
    config = config or DEFAULT_RETRY_CONFIG
    if max_retries is not None:
        config = replace(config, max_retries=max_retries)

    def decorator(fn: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            for attempt in range(config.max_retries + 1):
                try:
                    return fn(*args, **kwargs)
                except Exception as exc:
                    if not should_retry_exception(exc, config):
                        logger.debug(f"Non-retryable exception: {type(exc).__name__}")
                        raise

                    if attempt >= config.max_retries:
                        logger.error(
                            f"All {config.max_retries} retries failed for {fn.__name__}"
                        )
                        raise

                    delay = calculate_delay(attempt, config)
                    logger.warning(
                        f"Retry {attempt + 1}/{config.max_retries} for {fn.__name__} "
                        f"after {delay:.1f}s (error: {exc})"
                    )
                    if on_retry:
                        on_retry(exc, attempt)
                    config.sleep(delay)

            raise RuntimeError("Retry logic error")

        return wrapper

    if func is not None:
        return decorator(func)
    return decorator


class RetryableRequest:
    """
    ``requests.Session`` wrapper whose GET/POST retry on transient failures.

    Usage:
        with RetryableRequest(config, headers={"User-Agent": ua}) as http:
            response = http.post(url, data={"data": query})
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        session: Optional[requests.Session] = None,
        headers: Optional[dict] = None,
        timeout: float = 30.0,
    ):
        self.config = config or DEFAULT_RETRY_CONFIG
        self.timeout = timeout
        self._session = session or requests.Session()
        if headers:
            self._session.headers.update(headers)

    def __enter__(self) -> "RetryableRequest":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def close(self) -> None:
        self._session.close()

    def _make_request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        kwargs.setdefault("timeout", self.timeout)

        @retry_with_backoff(config=self.config)
        def _request():
            response = getattr(self._session, method)(url, **kwargs)
            if response.status_code in self.config.retryable_status_codes:
                response.raise_for_status()
            return response

        return _request()

    def get(self, url: str, **kwargs: Any) -> requests.Response:
        return self._make_request("get", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> requests.Response:
        return self._make_request("post", url, **kwargs)
