"""Places API fetchers: one tile in, that tile's merged records out."""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Union

import requests

from . import config
from .config import SearchConfig
from .geo import Coordinate
from .http import BudgetExceededError, HttpClient, RequestBudget, RequestMetrics
from .records import LegacyPlace, PlaceRecord, parse_legacy_response, parse_places_response

logger = logging.getLogger(__name__)

LEGACY_OK_STATUSES = ("OK", "ZERO_RESULTS")

# Anything the transport can raise for one page; the fetcher absorbs these.
FETCH_ERRORS = (requests.RequestException, ValueError, BudgetExceededError)


class PaginatedFetcher(Protocol):
    def fetch(self, tile: Coordinate) -> List[PlaceRecord]:
        ...


class PlacesClient:
    """Nearby search against the current Places API (single page per tile)."""

    def __init__(
        self,
        http_client: HttpClient,
        search_config: SearchConfig,
        metrics: Optional[RequestMetrics] = None,
    ) -> None:
        self.http = http_client
        self.config = search_config
        self.metrics = metrics
        self.field_mask = search_config.field_mask()

    def fetch(self, tile: Coordinate) -> List[PlaceRecord]:
        body = build_nearby_search_body(
            tile,
            self.config.sub_radius_m,
            self.config.place_type,
            excluded_primary_types=self.config.excluded_primary_types,
        )
        try:
            response = self.http.post_json(config.PLACES_NEARBY_SEARCH_URL, body, self.field_mask)
        except FETCH_ERRORS as exc:
            logger.warning(
                "Nearby search failed at %s,%s: %s", tile.latitude, tile.longitude, exc
            )
            if self.metrics is not None:
                self.metrics.inc_failure()
            return []
        if not isinstance(response, dict):
            logger.warning(
                "Nearby search returned a malformed body at %s,%s", tile.latitude, tile.longitude
            )
            if self.metrics is not None:
                self.metrics.inc_failure()
            return []
        if self.metrics is not None:
            self.metrics.inc_page()
        return list(parse_places_response(response))


class LegacyPlacesClient:
    """Nearby search against the legacy Places API, following next_page_token."""

    def __init__(
        self,
        http_client: HttpClient,
        search_config: SearchConfig,
        metrics: Optional[RequestMetrics] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.http = http_client
        self.config = search_config
        self.metrics = metrics
        self.sleep = sleep

    def fetch(self, tile: Coordinate) -> List[PlaceRecord]:
        places: List[PlaceRecord] = []
        page_token: Optional[str] = None
        for page in range(self.config.max_pages_per_tile):
            if page_token:
                self.sleep(self.config.page_token_delay_seconds)
            params = build_legacy_params(
                tile,
                self.config.sub_radius_m,
                self.config.place_type,
                self.config.api_key or "",
                page_token=page_token,
            )
            try:
                data = self.http.get_json(config.LEGACY_NEARBY_SEARCH_URL, params)
            except FETCH_ERRORS as exc:
                logger.warning(
                    "Legacy nearby search failed at %s,%s page %s: %s",
                    tile.latitude,
                    tile.longitude,
                    page + 1,
                    exc,
                )
                if self.metrics is not None:
                    self.metrics.inc_failure()
                break

            if not isinstance(data, dict):
                logger.warning(
                    "Legacy nearby search returned a malformed page at %s,%s page %s",
                    tile.latitude,
                    tile.longitude,
                    page + 1,
                )
                if self.metrics is not None:
                    self.metrics.inc_failure()
                break

            status = data.get("status")
            if status not in LEGACY_OK_STATUSES:
                logger.warning(
                    "Google Places API error: %s %s", status, data.get("error_message") or ""
                )
                if self.metrics is not None:
                    self.metrics.inc_failure()
                break

            if self.metrics is not None:
                self.metrics.inc_page()
            places.extend(
                filter_excluded_types(
                    parse_legacy_response(data), self.config.excluded_primary_types
                )
            )
            page_token = data.get("next_page_token")
            if not page_token:
                break
        return places


def build_nearby_search_body(
    tile: Coordinate,
    radius_m: float,
    place_type: Optional[str],
    excluded_primary_types: Sequence[str] = (),
    max_result_count: int = config.PLACES_MAX_RESULT_COUNT,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "maxResultCount": max_result_count,
        "locationRestriction": {
            "circle": {
                "center": {"latitude": tile.latitude, "longitude": tile.longitude},
                "radius": float(radius_m),
            }
        },
    }
    if place_type:
        body["includedTypes"] = [place_type]
    if excluded_primary_types:
        body["excludedPrimaryTypes"] = list(excluded_primary_types)
    return body


def build_legacy_params(
    tile: Coordinate,
    radius_m: float,
    place_type: Optional[str],
    api_key: str,
    page_token: Optional[str] = None,
) -> Dict[str, Any]:
    params: Dict[str, Any] = {
        "location": f"{tile.latitude},{tile.longitude}",
        "radius": f"{radius_m:g}",
        "key": api_key,
    }
    if place_type:
        params["type"] = place_type
    if page_token:
        params["pagetoken"] = page_token
    return params


def filter_excluded_types(
    places: Sequence[LegacyPlace], excluded_primary_types: Sequence[str]
) -> List[LegacyPlace]:
    """Drop legacy records whose first (most specific) type is excluded."""
    if not excluded_primary_types:
        return list(places)
    excluded = set(excluded_primary_types)
    kept: List[LegacyPlace] = []
    for place in places:
        types = place.types()
        if types and types[0] in excluded:
            continue
        kept.append(place)
    return kept


def make_places_client(
    search_config: SearchConfig,
    http_client: Optional[HttpClient] = None,
    metrics: Optional[RequestMetrics] = None,
    budget: Optional[RequestBudget] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Union[PlacesClient, LegacyPlacesClient]:
    if http_client is None:
        http_client = HttpClient(
            search_config.api_key or "",
            timeout=config.HTTP_TIMEOUT_SECONDS,
            retry_max=search_config.http_retry_max,
            backoff_base=config.HTTP_BACKOFF_BASE,
            backoff_max=config.HTTP_BACKOFF_MAX,
            budget=budget,
        )
    if search_config.api_version == config.API_VERSION_LEGACY:
        return LegacyPlacesClient(http_client, search_config, metrics=metrics, sleep=sleep)
    return PlacesClient(http_client, search_config, metrics=metrics)
