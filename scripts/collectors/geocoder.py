"""
Mapbox geocoding collaborator.

Forward geocoding fills in coordinates for records that have none; reverse
geocoding resolves the state of candidates whose source omitted it. Results
below the minimum relevance are rejected. Lookups are cached in a TTLCache
owned by the caller, so repeated syncs do not re-query the same names.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, NamedTuple
from urllib.parse import quote

import requests

from config.settings import config
from scripts.collectors.api_client import UpstreamAPIClient
from scripts.collectors.park_schemas import UNKNOWN_STATE, ParkCandidate
from scripts.collectors.state_normalizer import normalize_state_to_code
from utils.cache import TTLCache

logger = logging.getLogger(__name__)


class GeocodeResult(NamedTuple):
    latitude: float
    longitude: float
    relevance: float
    place_name: str | None = None


def _region_short_code(short_code: str | None) -> str | None:
    if not short_code:
        return None
    code = short_code.upper().replace("US-", "")
    return normalize_state_to_code(code)


def extract_region_code(context: list[dict[str, Any]] | None) -> str | None:
    """
    Pull a 2-letter state code from a Mapbox feature context.

    Context entries look like {"id": "region.12345", "short_code": "US-NC"}.

    Returns:
        str | None: State code such as 'NC', or None when no region is present
    """
    for entry in context or []:
        if str(entry.get("id", "")).startswith("region"):
            code = _region_short_code(entry.get("short_code"))
            if code:
                return code
    return None


class MapboxGeocoder(UpstreamAPIClient):
    """Forward and reverse geocoding through the Mapbox places API."""

    source_name = "Mapbox"

    def __init__(
        self,
        access_token: str | None = None,
        cache: TTLCache | None = None,
        min_relevance: float | None = None,
        session: requests.Session | None = None,
        **kwargs: Any,
    ):
        """
        Args:
            access_token: Mapbox token (optional, will use config if not provided)
            cache: Cache for lookup results; None disables caching
            min_relevance: Forward results below this relevance are rejected
            session: Pre-built session, mainly for tests

        Raises:
            ValueError: If no access token is available
        """
        self.access_token = access_token or config.MAPBOX_ACCESS_TOKEN
        if not self.access_token:
            raise ValueError(
                "Mapbox token is required. Set MAPBOX_ACCESS_TOKEN environment variable "
                "or pass access_token parameter."
            )
        super().__init__(config.MAPBOX_API_BASE_URL, session=session, **kwargs)
        self.cache = cache
        self.min_relevance = (
            config.GEOCODE_MIN_RELEVANCE if min_relevance is None else min_relevance
        )

    def _cached(self, key: tuple, lookup: Callable[[], Any]) -> Any:
        if self.cache is None:
            return lookup()
        return self.cache.get_or_set(key, lookup)

    def geocode(self, query: str) -> GeocodeResult | None:
        """
        Forward-geocode an address or 'name, state' string.

        Args:
            query: Free-text place query

        Returns:
            GeocodeResult | None: Best result, or None when nothing is relevant enough

        Raises:
            UpstreamAPIError: If the geocoding request fails
        """
        query = query.strip()
        if not query:
            return None
        return self._cached(("forward", query.lower()), lambda: self._geocode(query))

    def _geocode(self, query: str) -> GeocodeResult | None:
        data = self._request(
            f"/{quote(query)}.json",
            {"access_token": self.access_token, "limit": 1, "types": "poi,address"},
        )
        features = data.get("features") or []
        if not features:
            logger.info(f"No geocoding results for '{query}'")
            return None

        feature = features[0]
        relevance = float(feature.get("relevance") or 0)
        if relevance < self.min_relevance:
            logger.warning(
                f"Low relevance ({relevance:.2f}) for '{query}': {feature.get('place_name')}"
            )
            return None

        lng, lat = feature["center"][0], feature["center"][1]
        logger.debug(f"Geocoded '{query}' to ({lat:.6f}, {lng:.6f}), relevance {relevance:.2f}")
        return GeocodeResult(lat, lng, relevance, feature.get("place_name"))

    def reverse_geocode(self, latitude: float, longitude: float) -> str | None:
        """
        Resolve the state code containing a coordinate pair.

        Returns:
            str | None: 2-letter state code, or None when it cannot be determined

        Raises:
            UpstreamAPIError: If the geocoding request fails
        """
        key = ("reverse", round(latitude, 5), round(longitude, 5))
        return self._cached(key, lambda: self._reverse_geocode(latitude, longitude))

    def _reverse_geocode(self, latitude: float, longitude: float) -> str | None:
        data = self._request(
            f"/{longitude},{latitude}.json",
            {"access_token": self.access_token, "limit": 1},
        )
        features = data.get("features") or []
        if not features:
            return None

        feature = features[0]
        code = extract_region_code(feature.get("context"))
        if code:
            return code

        # The feature itself may be the region
        if "region" in (feature.get("place_type") or []):
            properties = feature.get("properties") or {}
            return _region_short_code(properties.get("short_code"))
        return None


class StateResolver:
    """
    Wrap a normalizer so candidates without a state get one from their coordinates.

    Example Usage:
        resolver = StateResolver(lambda p: (map_nps_park(p), None), geocoder)
        ingestor.ingest(parks, resolver)
    """

    def __init__(
        self,
        normalize: Callable[[Any], tuple[ParkCandidate, dict | None]],
        geocoder: MapboxGeocoder,
    ):
        self.normalize = normalize
        self.geocoder = geocoder

    def __call__(self, item: Any) -> tuple[ParkCandidate, dict | None]:
        candidate, geometry = self.normalize(item)
        if candidate.state != UNKNOWN_STATE or not candidate.has_coordinates:
            return candidate, geometry

        state = self.geocoder.reverse_geocode(candidate.latitude, candidate.longitude)
        if state:
            logger.info(f"Resolved state for '{candidate.name}' to {state}")
            candidate = candidate.model_copy(update={"state": state})
        return candidate, geometry
