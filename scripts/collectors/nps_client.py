"""
National Park Service API client.

Pages through the NPS /parks endpoint and yields raw park dictionaries. Each
record is validated and mapped later by field_mapper.map_nps_park, so a
single malformed park never stops a sync.

Example Usage:
    client = NPSClient()
    for park in client.iter_parks(state_code="NC"):
        ...
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

import requests

from config.settings import config
from scripts.collectors.api_client import UpstreamAPIClient

logger = logging.getLogger(__name__)

NPS_PARK_FIELDS = (
    "addresses,contacts,description,designation,latitude,longitude,"
    "latLong,activities,name,parkCode,states,url,fullName"
)


class NPSClient(UpstreamAPIClient):
    """Client for developer.nps.gov."""

    source_name = "NPS API"

    def __init__(
        self,
        api_key: str | None = None,
        session: requests.Session | None = None,
        **kwargs: Any,
    ):
        """
        Initialize the client with API credentials.

        Args:
            api_key: NPS API key (optional, will use config if not provided)
            session: Pre-built session, mainly for tests

        Raises:
            ValueError: If no API key is available
        """
        api_key = api_key or config.NPS_API_KEY
        if not api_key:
            raise ValueError(
                "API key is required. Set NPS_API_KEY environment variable or pass api_key parameter."
            )
        super().__init__(
            config.NPS_API_BASE_URL,
            headers={"X-Api-Key": api_key},
            session=session,
            **kwargs,
        )
        logger.info("NPS API client initialized successfully")

    def iter_parks(
        self, state_code: str | None = None, limit: int | None = None
    ) -> Iterator[dict[str, Any]]:
        """
        Yield every park from the /parks endpoint, page by page.

        Args:
            state_code: Restrict to parks in this 2-letter state
            limit: Page size

        Yields:
            dict: Raw park record
        """
        limit = limit or config.API_PAGE_LIMIT
        start = 0
        total = None
        fetched = 0

        while True:
            params: dict[str, str | int] = {
                "limit": limit,
                "start": start,
                "fields": NPS_PARK_FIELDS,
            }
            if state_code:
                params["stateCode"] = state_code

            data = self._request("/parks", params)

            if total is None:
                total = int(data.get("total", 0) or 0)
                logger.info(f"Total NPS parks available: {total}")

            page_parks = data.get("data", [])
            if not page_parks:
                break

            for park in page_parks:
                yield park
            fetched += len(page_parks)
            logger.debug(
                f"Fetched page {start // limit + 1}: {len(page_parks)} parks "
                f"(total fetched: {fetched})"
            )

            start += limit
            if start >= total:
                break

            self._pause_between_pages()

        logger.info(f"Fetched {fetched} total NPS parks")
