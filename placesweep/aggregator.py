"""Merging and filtering of records collected across tiles."""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Set

from .config import SearchConfig
from .records import PlaceRecord, effective_score, is_inactive

logger = logging.getLogger(__name__)

REJECT_CLOSED = "closed"
REJECT_BELOW_MIN_SCORE = "below_min_score"
REJECT_OVER_LIMIT = "over_limit"


class ResultAggregator:
    """Identity-keyed result set.

    A later record replaces an earlier one with the same identity but keeps
    the position of the first sighting. Records without identity are dropped.
    """

    def __init__(self) -> None:
        self._places_by_id: Dict[str, PlaceRecord] = {}
        self._ids_by_tile: Dict[str, Set[str]] = {}
        self.dropped_without_identity = 0
        self.rejection_counts: Dict[str, int] = {}
        self._finalized: Optional[List[PlaceRecord]] = None

    def __len__(self) -> int:
        return len(self._places_by_id)

    def add(self, records: Iterable[PlaceRecord], tile_id: Optional[str] = None) -> None:
        if self._finalized is not None:
            raise RuntimeError("ResultAggregator already finalized")
        for record in records:
            place_id = record.identity()
            if not place_id:
                self.dropped_without_identity += 1
                continue
            self._places_by_id[place_id] = record
            if tile_id is not None:
                self._ids_by_tile.setdefault(tile_id, set()).add(place_id)

    def per_tile_sets(self) -> Dict[str, Set[str]]:
        return {k: set(v) for k, v in self._ids_by_tile.items()}

    def finalize(self, search_config: SearchConfig) -> List[PlaceRecord]:
        if self._finalized is not None:
            return list(self._finalized)

        rejection_counts: Dict[str, int] = {}
        filtered: List[PlaceRecord] = []
        for record in self._places_by_id.values():
            reason = None
            if not search_config.allow_closed and is_inactive(record):
                reason = REJECT_CLOSED
            elif effective_score(record) < search_config.min_rating:
                reason = REJECT_BELOW_MIN_SCORE

            if reason:
                rejection_counts[reason] = rejection_counts.get(reason, 0) + 1
            else:
                filtered.append(record)

        limit = search_config.limit
        if limit is not None and len(filtered) > limit:
            rejection_counts[REJECT_OVER_LIMIT] = len(filtered) - limit
            filtered = filtered[:limit]

        self.rejection_counts = rejection_counts
        self._finalized = filtered
        logger.info(
            "Kept %s of %s unique places (rejections: %s)",
            len(filtered),
            len(self._places_by_id),
            rejection_counts or "none",
        )
        return list(filtered)
