"""Place record variants for the legacy and current Places APIs.

The orchestration only looks at identity, score and status. Every other
provider field stays in ``payload`` untouched.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

STATUS_OPERATIONAL = "OPERATIONAL"
STATUS_CLOSED_TEMPORARILY = "CLOSED_TEMPORARILY"
STATUS_CLOSED_PERMANENTLY = "CLOSED_PERMANENTLY"
INACTIVE_STATUSES = frozenset({STATUS_CLOSED_TEMPORARILY, STATUS_CLOSED_PERMANENTLY})


class PlaceRecord(Protocol):
    payload: Dict[str, Any]

    def identity(self) -> Optional[str]:
        ...

    def score(self) -> Optional[float]:
        ...

    def status(self) -> Optional[str]:
        ...

    def types(self) -> List[str]:
        ...

    def summary_row(self) -> Dict[str, Any]:
        ...


def _as_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass
class Place:
    """Record from ``places.googleapis.com/v1``."""

    payload: Dict[str, Any] = field(default_factory=dict)

    def identity(self) -> Optional[str]:
        place_id = self.payload.get("id")
        if place_id:
            return str(place_id)
        # resource name "places/PLACE_ID" when only `name` was requested
        name = self.payload.get("name")
        if isinstance(name, str) and name.startswith("places/"):
            return name.split("/", 1)[1] or None
        return None

    def score(self) -> Optional[float]:
        return _as_float(self.payload.get("rating"))

    def status(self) -> Optional[str]:
        return self.payload.get("businessStatus")

    def types(self) -> List[str]:
        return list(self.payload.get("types") or [])

    def summary_row(self) -> Dict[str, Any]:
        display = self.payload.get("displayName")
        if isinstance(display, dict):
            name = display.get("text")
        else:
            name = display
        location = self.payload.get("location") or {}
        return {
            "id": self.identity(),
            "name": name,
            "address": self.payload.get("formattedAddress"),
            "rating": self.payload.get("rating"),
            "user_rating_count": self.payload.get("userRatingCount"),
            "lat": location.get("latitude"),
            "lng": location.get("longitude"),
            "business_status": self.status(),
        }


@dataclass
class LegacyPlace:
    """Record from ``maps.googleapis.com/maps/api/place/nearbysearch``."""

    payload: Dict[str, Any] = field(default_factory=dict)

    def identity(self) -> Optional[str]:
        place_id = self.payload.get("place_id")
        return str(place_id) if place_id else None

    def score(self) -> Optional[float]:
        return _as_float(self.payload.get("rating"))

    def status(self) -> Optional[str]:
        return self.payload.get("business_status")

    def types(self) -> List[str]:
        return list(self.payload.get("types") or [])

    def summary_row(self) -> Dict[str, Any]:
        geometry = self.payload.get("geometry") or {}
        location = geometry.get("location") or {}
        return {
            "name": self.payload.get("name"),
            "address": self.payload.get("formatted_address") or self.payload.get("vicinity"),
            "rating": self.payload.get("rating"),
            "user_ratings_total": self.payload.get("user_ratings_total"),
            "place_id": self.identity(),
            "lat": location.get("lat"),
            "lng": location.get("lng"),
        }


def is_inactive(record: PlaceRecord) -> bool:
    return record.status() in INACTIVE_STATUSES


def effective_score(record: PlaceRecord) -> float:
    # missing rating counts as 0
    score = record.score()
    return 0.0 if score is None else score


def parse_places_response(response: Dict[str, Any]) -> List[Place]:
    return [Place(payload=p) for p in response.get("places") or [] if isinstance(p, dict)]


def parse_legacy_response(response: Dict[str, Any]) -> List[LegacyPlace]:
    return [LegacyPlace(payload=p) for p in response.get("results") or [] if isinstance(p, dict)]
