"""Per-tile coverage diagnostics."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Set

from .scheduler import ScheduleReport


def unique_contributions(sets_by_key: Dict[str, Set[str]]) -> Dict[str, int]:
    keys = list(sets_by_key.keys())
    contributions: Dict[str, int] = {}
    for key in keys:
        others = set()
        for other_key in keys:
            if other_key == key:
                continue
            others.update(sets_by_key[other_key])
        contributions[key] = len(sets_by_key[key] - others)
    return contributions


def flatten_place_ids(sets: Iterable[Set[str]]) -> Set[str]:
    out: Set[str] = set()
    for s in sets:
        out.update(s)
    return out


def overlap_ratio(sets_by_key: Dict[str, Set[str]]) -> float:
    """Share of per-tile sightings that were already seen on another tile."""
    sightings = sum(len(s) for s in sets_by_key.values())
    if sightings == 0:
        return 0.0
    unique = len(flatten_place_ids(sets_by_key.values()))
    return (sightings - unique) / sightings


def saturated_tiles(yields: List[int], per_batch_yield: int) -> int:
    # a tile at the provider cap probably had more places than it returned
    if per_batch_yield <= 0:
        return 0
    return sum(1 for count in yields if count >= per_batch_yield)


def build_coverage_report(
    sets_by_tile: Dict[str, Set[str]],
    schedule: ScheduleReport,
    per_batch_yield: int,
) -> Dict[str, Any]:
    contributions = unique_contributions(sets_by_tile)
    return {
        "tiles_searched": schedule.tiles_searched,
        "empty_tiles": schedule.empty_tiles,
        "failed_tiles": len(schedule.failed_tiles),
        "saturated_tiles": saturated_tiles(schedule.yields, per_batch_yield),
        "unique_places": len(flatten_place_ids(sets_by_tile.values())),
        "overlap_ratio": round(overlap_ratio(sets_by_tile), 4),
        "tiles_without_unique_places": sum(1 for v in contributions.values() if v == 0),
    }
