# src/services/api_client.py

"""Rate-limited JSON client shared by every external card data source."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from curl_cffi import requests as curl_requests
from curl_cffi.requests.exceptions import (
    ConnectionError as CurlConnectionError,
)
from curl_cffi.requests.exceptions import RequestException, Timeout

from src.config.settings import Settings
from src.services.errors import (
    InvalidResponseError,
    NetworkError,
    RateLimitError,
    RequestTimeoutError,
)
from src.services.rate_limiter import RateLimiter

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times each transient error class is retried."""

    network_max_attempts: int = Settings.NETWORK_MAX_ATTEMPTS
    rate_limit_max_attempts: int = Settings.RATE_LIMIT_MAX_ATTEMPTS
    rate_limit_base_backoff: float = Settings.RATE_LIMIT_BASE_BACKOFF

    def backoff_for(self, attempt: int) -> float:
        """Seconds to wait after the ``attempt``-th rate-limited try."""
        return self.rate_limit_base_backoff * (2 ** (attempt - 1))


class BaseApiClient:
    """Gate, classify and retry GET requests against one external service.

    Subclasses supply the URLs and the payload parsing; this class owns
    the contract every call site shares:

    * every attempt passes through :meth:`RateLimiter.throttle` first;
    * 404 is ``None``, 429 is :class:`RateLimitError`, timeouts are
      :class:`RequestTimeoutError`, connection failures are
      :class:`NetworkError`, anything else unexpected is
      :class:`InvalidResponseError`;
    * :meth:`_with_retries` retries network failures a fixed number of
      times and rate limits with exponential backoff.
    """

    def __init__(
        self,
        service_name: str,
        rate_limiter: RateLimiter,
        min_interval_ms: int | None = None,
        retry_policy: RetryPolicy | None = None,
        session: curl_requests.Session | None = None,
    ) -> None:
        self.service_name = service_name
        self.logger = logging.getLogger(f"price_sync.{service_name}")
        self.settings = Settings()
        self.rate_limiter = rate_limiter
        self.min_interval_ms: int = (
            min_interval_ms
            if min_interval_ms is not None
            else self.settings.RATE_LIMITS_MS.get(service_name, 0)
        )
        self.retry_policy = retry_policy or RetryPolicy()
        self.session = session or curl_requests.Session()
        self._request_timeout: int = self.settings.REQUEST_TIMEOUT

    def close(self) -> None:
        """Release the underlying HTTP session."""
        self.session.close()

    # ── Single attempt ───────────────────────────────────

    def _send(
        self,
        url: str,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        session: curl_requests.Session | None = None,
    ) -> curl_requests.Response | None:
        """Perform one gated GET and classify its status.

        Returns ``None`` when the resource does not exist.
        """
        self.rate_limiter.throttle(
            self.service_name, self.min_interval_ms
        )
        try:
            resp = (session or self.session).get(
                url,
                params=params,
                headers=headers or self.settings.DEFAULT_HEADERS,
                timeout=self._request_timeout,
            )
        except Timeout as exc:
            raise RequestTimeoutError(
                f"Request to {self.service_name} timed out: {exc}",
                self.service_name,
            ) from exc
        except (CurlConnectionError, RequestException) as exc:
            raise NetworkError(
                f"Network error while connecting to "
                f"{self.service_name}: {exc}",
                self.service_name,
            ) from exc

        status = resp.status_code
        if status == 404:
            return None
        if status == 429:
            raise RateLimitError(
                f"{self.service_name} rate limit exceeded",
                self.service_name,
            )
        if status != 200:
            raise InvalidResponseError(
                f"{self.service_name} returned unexpected status {status}",
                self.service_name,
            )
        return resp

    def _request_json(
        self,
        url: str,
        params: dict[str, str] | None = None,
    ) -> Any | None:
        """One gated GET decoded as JSON; ``None`` when not found."""
        resp = self._send(url, params)
        if resp is None:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise InvalidResponseError(
                f"Invalid JSON from {self.service_name}: {exc}",
                self.service_name,
            ) from exc

    # ── Retry loop ───────────────────────────────────────

    def _with_retries(
        self, operation: Callable[[], T], label: str,
    ) -> T:
        """Run ``operation`` under the retry policy.

        Timeouts and invalid responses are not retried.  Once the
        attempts for an error class are used up, that error propagates.
        """
        policy = self.retry_policy
        network_attempts = 0
        rate_limit_attempts = 0
        while True:
            try:
                return operation()
            except RateLimitError:
                rate_limit_attempts += 1
                if rate_limit_attempts >= policy.rate_limit_max_attempts:
                    self.logger.error(
                        "[%s] Rate limited on %s after %d attempts",
                        self.service_name,
                        label,
                        rate_limit_attempts,
                    )
                    raise
                delay = policy.backoff_for(rate_limit_attempts)
                self.logger.warning(
                    "[%s] Rate limited on %s, backing off %.1fs "
                    "(attempt %d)",
                    self.service_name,
                    label,
                    delay,
                    rate_limit_attempts,
                )
                time.sleep(delay)
            except NetworkError as exc:
                network_attempts += 1
                if network_attempts >= policy.network_max_attempts:
                    self.logger.error(
                        "[%s] Network failure on %s after %d attempts: %s",
                        self.service_name,
                        label,
                        network_attempts,
                        exc,
                    )
                    raise
                self.logger.warning(
                    "[%s] Network error on %s (attempt %d): %s",
                    self.service_name,
                    label,
                    network_attempts,
                    exc,
                )

    def _get_json(
        self,
        url: str,
        params: dict[str, str] | None = None,
        label: str = "",
    ) -> Any | None:
        """GET ``url`` with gating, classification and retries."""
        return self._with_retries(
            lambda: self._request_json(url, params),
            label or url,
        )

    def _get_text(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        session: curl_requests.Session | None = None,
        label: str = "",
    ) -> str | None:
        """GET a page body as text with gating and retries."""
        def fetch() -> str | None:
            resp = self._send(url, headers=headers, session=session)
            return None if resp is None else resp.text

        return self._with_retries(fetch, label or url)
