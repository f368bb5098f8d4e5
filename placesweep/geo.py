"""Geospatial helpers and sub-circle tiling."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List

METERS_PER_DEGREE_LAT = 111320.0
TILE_STEP_FACTOR = 1.5
HEX_ROW_FACTOR = math.sqrt(3) / 2


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class SearchArea:
    center: Coordinate
    radius_m: float
    sub_radius_m: float = 500.0


def meters_per_degree_lon(latitude: float) -> float:
    return METERS_PER_DEGREE_LAT * math.cos(math.radians(latitude))


def planar_distance_m(center: Coordinate, point: Coordinate) -> float:
    """Flat-earth distance in meters, scaled at the center latitude."""
    dy = (point.latitude - center.latitude) * METERS_PER_DEGREE_LAT
    dx = (point.longitude - center.longitude) * meters_per_degree_lon(center.latitude)
    return math.sqrt(dx * dx + dy * dy)


def generate_tiles(area: SearchArea) -> List[Coordinate]:
    """Cover the disc of ``area.radius_m`` with sub-discs of ``area.sub_radius_m``.

    Centers lie on a hexagonal-offset grid spaced ``1.5 * sub_radius`` apart so
    neighbouring sub-discs overlap. Any sub-disc that touches the outer disc is
    kept. Output is row-major and identical for identical input.
    """
    center = area.center
    radius = float(area.radius_m)
    sub_radius = float(area.sub_radius_m)
    if radius <= 0:
        raise ValueError("radius_m must be positive")
    if sub_radius <= 0:
        raise ValueError("sub_radius_m must be positive")
    if radius <= sub_radius:
        return [center]

    step = sub_radius * TILE_STEP_FACTOR
    lat_deg_per_m = 1.0 / METERS_PER_DEGREE_LAT
    lon_deg_per_m = 1.0 / meters_per_degree_lon(center.latitude)
    lat_step = step * lat_deg_per_m
    lon_step = step * lon_deg_per_m

    n = int(math.ceil(radius / step))
    tiles: List[Coordinate] = []
    for i in range(-n, n + 1):
        # brick-laying offset on odd rows
        row_shift = lon_step / 2 if i % 2 else 0.0
        lat_offset = i * lat_step * HEX_ROW_FACTOR
        for j in range(-n, n + 1):
            lon_offset = j * lon_step + row_shift
            dist_x = lon_offset / lon_deg_per_m
            dist_y = lat_offset / lat_deg_per_m
            distance = math.sqrt(dist_x * dist_x + dist_y * dist_y)
            if distance - sub_radius < radius:
                tiles.append(
                    Coordinate(
                        latitude=center.latitude + lat_offset,
                        longitude=center.longitude + lon_offset,
                    )
                )
    return tiles


def generate_sub_circles(
    center: Coordinate, radius_m: float, sub_radius_m: float = 500.0
) -> List[Coordinate]:
    return generate_tiles(SearchArea(center=center, radius_m=radius_m, sub_radius_m=sub_radius_m))
