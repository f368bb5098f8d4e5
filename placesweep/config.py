"""Project configuration.

Module-level constants keep API request shapes and pacing in one place.
``SearchConfig`` is the per-run snapshot; it is built once, validated once and
never mutated. ``load_search_config`` reads optional overrides from
search_config.json.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .geo import Coordinate, SearchArea
from .reporting import OUTPUT_FORMATS, OutputDisposition, ToCallback, ToFile

_REPO_ROOT = Path(__file__).resolve().parent.parent

# --- API endpoints ---

PLACES_NEARBY_SEARCH_URL = "https://places.googleapis.com/v1/places:searchNearby"
LEGACY_NEARBY_SEARCH_URL = "https://maps.googleapis.com/maps/api/place/nearbysearch/json"

API_VERSION_NEW = "new"
API_VERSION_LEGACY = "legacy"
API_VERSIONS = (API_VERSION_NEW, API_VERSION_LEGACY)

# --- Field masks ---

# The orchestration needs these regardless of the caller's selection.
PLACES_REQUIRED_FIELDS: Tuple[str, ...] = ("id", "rating", "businessStatus")
PLACES_DEFAULT_FIELDS: Tuple[str, ...] = (
    "id",
    "displayName",
    "formattedAddress",
    "location",
    "rating",
    "userRatingCount",
    "businessStatus",
    "types",
)

# --- Search defaults ---

DEFAULT_RADIUS_M = 4000.0
DEFAULT_SUB_RADIUS_M = 500.0
DEFAULT_PLACE_TYPE = "restaurant"
DEFAULT_MIN_RATING = 4.1

# --- Provider request shape ---

PLACES_MAX_RESULT_COUNT = 20
LEGACY_MAX_PAGES_PER_TILE = 3
LEGACY_RESULTS_PER_PAGE = 20
# next_page_token is not valid immediately after it is issued
LEGACY_PAGE_TOKEN_DELAY_SECONDS = 2.0

# Expected results per tile, used to size the tile list under a result cap.
PER_BATCH_YIELD = {
    API_VERSION_NEW: PLACES_MAX_RESULT_COUNT,
    API_VERSION_LEGACY: LEGACY_RESULTS_PER_PAGE * LEGACY_MAX_PAGES_PER_TILE,
}

# --- Pacing ---

BATCH_DELAY_SECONDS = 0.2
COOLDOWN_EVERY_BATCHES = 20
COOLDOWN_SECONDS = 2.0

# --- HTTP ---

HTTP_TIMEOUT_SECONDS = 20
HTTP_RETRY_MAX = 1
HTTP_BACKOFF_BASE = 0.5
HTTP_BACKOFF_MAX = 8.0

# --- Outputs ---

PROGRESS_WRITE_INTERVAL_SECONDS = 5.0

API_KEY_ENV = "GOOGLE_MAPS_API_KEY"


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class SearchConfig:
    center: Coordinate
    radius_m: float = DEFAULT_RADIUS_M
    sub_radius_m: float = DEFAULT_SUB_RADIUS_M
    place_type: str = DEFAULT_PLACE_TYPE
    min_rating: float = DEFAULT_MIN_RATING
    limit: Optional[int] = None
    allow_closed: bool = False
    fields: Tuple[str, ...] = ()
    excluded_primary_types: Tuple[str, ...] = ()
    api_key: Optional[str] = None
    output: Optional[OutputDisposition] = None
    api_version: str = API_VERSION_NEW
    max_pages_per_tile: int = LEGACY_MAX_PAGES_PER_TILE
    page_token_delay_seconds: float = LEGACY_PAGE_TOKEN_DELAY_SECONDS
    batch_delay_seconds: float = BATCH_DELAY_SECONDS
    cooldown_every: int = COOLDOWN_EVERY_BATCHES
    cooldown_seconds: float = COOLDOWN_SECONDS
    shuffle_seed: Optional[int] = None
    max_requests: Optional[int] = None
    http_retry_max: int = HTTP_RETRY_MAX

    @property
    def area(self) -> SearchArea:
        return SearchArea(center=self.center, radius_m=self.radius_m, sub_radius_m=self.sub_radius_m)

    @property
    def per_batch_yield(self) -> int:
        return PER_BATCH_YIELD[self.api_version]

    def field_mask(self) -> str:
        selected = list(self.fields) or list(PLACES_DEFAULT_FIELDS)
        for name in PLACES_REQUIRED_FIELDS:
            if name not in selected:
                selected.append(name)
        return ",".join(f"places.{name}" for name in selected)

    def validate(self) -> "SearchConfig":
        if not self.api_key:
            raise ConfigError(
                f"API key is required. Pass it explicitly or set {API_KEY_ENV}."
            )
        if self.output is None:
            raise ConfigError("An output disposition (file format or callback) is required.")
        if isinstance(self.output, ToFile) and self.output.format not in OUTPUT_FORMATS:
            raise ConfigError(
                f"Unknown output format {self.output.format!r}; expected one of {OUTPUT_FORMATS}"
            )
        if isinstance(self.output, ToCallback) and not callable(self.output.handler):
            raise ConfigError("Output callback must be callable.")
        if self.api_version not in API_VERSIONS:
            raise ConfigError(f"api_version must be one of: {', '.join(API_VERSIONS)}")
        if self.radius_m <= 0:
            raise ConfigError("radius_m must be positive")
        if self.sub_radius_m <= 0:
            raise ConfigError("sub_radius_m must be positive")
        if self.limit is not None and self.limit <= 0:
            raise ConfigError("limit must be positive when set")
        if self.max_pages_per_tile < 1:
            raise ConfigError("max_pages_per_tile must be at least 1")
        if self.cooldown_every < 0:
            raise ConfigError("cooldown_every must not be negative")
        if self.max_requests is not None and self.max_requests < 0:
            raise ConfigError("max_requests must not be negative")
        return self

    def with_overrides(self, **overrides: Any) -> "SearchConfig":
        return replace(self, **overrides)

    @classmethod
    def from_mapping(cls, data: Dict[str, Any], **overrides: Any) -> "SearchConfig":
        """Build a config from a plain mapping such as search_config.json.

        ``center`` may be ``{"lat": .., "lon": ..}`` or
        ``{"latitude": .., "longitude": ..}``; ``output`` may be a format name
        or ``{"format": .., "path": ..}``. Unknown keys are ignored.
        """
        # null in the file means "use the default", same as an unset override
        merged: Dict[str, Any] = {k: v for k, v in data.items() if v is not None}
        merged.update({k: v for k, v in overrides.items() if v is not None})

        center = merged.get("center")
        if isinstance(center, dict):
            lat = center.get("latitude", center.get("lat"))
            lon = center.get("longitude", center.get("lon", center.get("lng")))
            if lat is None or lon is None:
                raise ConfigError("center requires latitude and longitude")
            merged["center"] = Coordinate(float(lat), float(lon))
        elif not isinstance(center, Coordinate):
            raise ConfigError("center is required")

        output = merged.get("output")
        if isinstance(output, str):
            merged["output"] = ToFile(format=output)
        elif isinstance(output, dict):
            merged["output"] = ToFile(format=output.get("format", ""), path=output.get("path"))

        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in merged.items() if k in known}
        for key in ("fields", "excluded_primary_types"):
            if key in kwargs and kwargs[key] is not None:
                kwargs[key] = tuple(kwargs[key])
        try:
            for key in ("radius_m", "sub_radius_m", "min_rating"):
                if key in kwargs:
                    kwargs[key] = float(kwargs[key])
            if "limit" in kwargs:
                kwargs["limit"] = int(kwargs["limit"])
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid numeric setting: {exc}") from exc
        return cls(**kwargs)


def load_search_config(path: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Load search parameters from a JSON file.

    Returns the parsed mapping, or None if the file does not exist.
    """
    if path is None:
        path = str(_REPO_ROOT / "search_config.json")

    config_path = Path(path)
    if not config_path.exists():
        return None

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a JSON object")
    return data
