"""
Recreation.gov (RIDB) API client.

Pages through /facilities with limit/offset and yields raw facility
dictionaries. ``full=true`` is requested so addresses, activities and
organization names come back inline.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

import requests

from config.settings import config
from scripts.collectors.api_client import UpstreamAPIClient

logger = logging.getLogger(__name__)


class RecreationGovClient(UpstreamAPIClient):
    """Client for ridb.recreation.gov."""

    source_name = "Recreation.gov API"

    def __init__(
        self,
        api_key: str | None = None,
        session: requests.Session | None = None,
        **kwargs: Any,
    ):
        api_key = api_key or config.RECREATION_GOV_API_KEY
        if not api_key:
            raise ValueError(
                "API key is required. Set RECREATION_GOV_API_KEY environment variable "
                "or pass api_key parameter."
            )
        super().__init__(
            config.RECREATION_GOV_API_BASE_URL,
            headers={"apikey": api_key},
            session=session,
            **kwargs,
        )
        logger.info("Recreation.gov API client initialized successfully")

    def iter_facilities(
        self,
        state_code: str | None = None,
        query: str | None = None,
        limit: int | None = None,
    ) -> Iterator[dict[str, Any]]:
        """
        Yield every facility matching the filters.

        Args:
            state_code: Restrict to facilities in this 2-letter state
            query: Free-text search
            limit: Page size

        Yields:
            dict: Raw RIDB facility record
        """
        limit = limit or config.API_PAGE_LIMIT
        offset = 0
        fetched = 0

        while True:
            params: dict[str, str | int] = {
                "limit": limit,
                "offset": offset,
                "full": "true",
            }
            if state_code:
                params["state"] = state_code
            if query:
                params["query"] = query

            data = self._request("/facilities", params)
            facilities = data.get("RECDATA") or []
            total = (data.get("METADATA") or {}).get("RESULTS", {}).get("TOTAL_COUNT")

            for facility in facilities:
                yield facility
            fetched += len(facilities)
            logger.debug(
                f"Fetched {len(facilities)} facilities at offset {offset} "
                f"(total fetched: {fetched})"
            )

            if len(facilities) < limit:
                break
            offset += limit
            if total is not None and offset >= int(total):
                break

            self._pause_between_pages()

        logger.info(f"Fetched {fetched} total Recreation.gov facilities")
