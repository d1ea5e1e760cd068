"""
Shared HTTP plumbing for upstream park data APIs.

UpstreamAPIClient owns a requests.Session with the project User-Agent and
implements the request loop every source client uses:

- 429 responses sleep for Retry-After (default 60s) and re-issue the same
  request without counting an error attempt
- 401/403 raise UpstreamAuthError immediately
- 5xx, timeouts and network errors are retried with a fixed delay, then
  raise UpstreamAPIError
- X-RateLimit-Remaining is logged, with a warning near the limit
"""

from __future__ import annotations

import logging
import time
from typing import Any

import requests

from config.settings import config

logger = logging.getLogger(__name__)


class UpstreamAPIError(Exception):
    """Raised when an upstream API request fails after all retries."""


class UpstreamAuthError(UpstreamAPIError):
    """Raised when an upstream API rejects our credentials."""


class UpstreamAPIClient:
    """Base client with retry, rate-limit handling and pagination helpers."""

    source_name = "upstream"

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        page_delay: float | None = None,
        session: requests.Session | None = None,
    ):
        """
        Args:
            base_url: API root, without a trailing slash
            headers: Extra headers (API keys) applied to every request
            max_retries: Retries after the first attempt for transient failures
            retry_delay: Seconds between transient-failure retries
            page_delay: Seconds to wait between pages
            session: Pre-built session, mainly for tests
        """
        self.base_url = base_url.rstrip("/")
        self.max_retries = config.API_MAX_RETRIES if max_retries is None else max_retries
        self.retry_delay = config.API_RETRY_DELAY if retry_delay is None else retry_delay
        self.page_delay = (
            config.API_PAGE_DELAY_SECONDS if page_delay is None else page_delay
        )
        self.rate_limit_warning_threshold = config.RATE_LIMIT_WARNING_THRESHOLD

        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "User-Agent": f"{config.APP_NAME}/{config.APP_VERSION} ({config.USER_EMAIL})",
                "Accept": "application/json",
            }
        )
        if headers:
            self.session.headers.update(headers)

    def _log_rate_limit(self, response: requests.Response) -> None:
        remaining = response.headers.get("X-RateLimit-Remaining")
        limit = response.headers.get("X-RateLimit-Limit")
        if not remaining:
            return

        logger.debug(
            f"{self.source_name} rate limit status: {remaining}/{limit} requests remaining"
        )
        try:
            if int(remaining) < self.rate_limit_warning_threshold:
                logger.warning(
                    f"Approaching {self.source_name} rate limit! "
                    f"Only {remaining} requests remaining"
                )
        except ValueError:
            logger.debug(f"Unparseable X-RateLimit-Remaining header: {remaining}")

    @staticmethod
    def _retry_after_seconds(response: requests.Response) -> float:
        value = response.headers.get("Retry-After")
        try:
            return float(value) if value is not None else float(config.RATE_LIMIT_DEFAULT_WAIT)
        except ValueError:
            return float(config.RATE_LIMIT_DEFAULT_WAIT)

    def _request(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        """
        GET an endpoint and return its decoded JSON body.

        Args:
            endpoint: Path relative to base_url (e.g. '/parks')
            params: Query parameters

        Returns:
            Decoded JSON response

        Raises:
            UpstreamAuthError: On 401/403
            UpstreamAPIError: On other client errors or when retries are exhausted
        """
        url = f"{self.base_url}{endpoint}"
        attempt = 0
        rate_limit_waits = 0

        while True:
            try:
                response = self.session.get(
                    url, params=params, timeout=config.REQUEST_TIMEOUT
                )

                if response.status_code == 429:
                    rate_limit_waits += 1
                    if rate_limit_waits > config.RATE_LIMIT_MAX_WAITS:
                        raise UpstreamAPIError(
                            f"{self.source_name} rate limit persisted after "
                            f"{config.RATE_LIMIT_MAX_WAITS} waits"
                        )
                    wait = self._retry_after_seconds(response)
                    logger.warning(
                        f"{self.source_name} rate limit hit, waiting {wait:g}s before retrying"
                    )
                    time.sleep(wait)
                    continue

                if response.status_code in (401, 403):
                    raise UpstreamAuthError(
                        f"{self.source_name} rejected credentials "
                        f"(HTTP {response.status_code})"
                    )

                response.raise_for_status()
                self._log_rate_limit(response)
                return response.json()

            except requests.exceptions.HTTPError as e:
                status = e.response.status_code if e.response is not None else None
                if status is None or status < 500:
                    logger.error(f"Client error {status} from {self.source_name}: {e!s}")
                    raise UpstreamAPIError(f"HTTP {status} from {url}") from e
                logger.warning(
                    f"Server error {status} from {self.source_name} "
                    f"(attempt {attempt + 1}): {e!s}"
                )
                error: Exception = e

            except requests.exceptions.Timeout as e:
                logger.warning(
                    f"{self.source_name} request timed out (attempt {attempt + 1})"
                )
                error = e

            except requests.exceptions.RequestException as e:
                logger.warning(
                    f"Network error from {self.source_name} (attempt {attempt + 1}): {e!s}"
                )
                error = e

            if attempt >= self.max_retries:
                logger.error(f"Max retries exceeded for {url}")
                raise UpstreamAPIError(
                    f"{self.source_name} request failed after {attempt + 1} attempts: {error}"
                ) from error

            attempt += 1
            logger.info(
                f"Retry attempt {attempt}/{self.max_retries} for {url} "
                f"after {self.retry_delay}s delay"
            )
            time.sleep(self.retry_delay)

    def _pause_between_pages(self) -> None:
        if self.page_delay > 0:
            time.sleep(self.page_delay)
