import pytest

from placesweep.geo import (
    Coordinate,
    SearchArea,
    generate_sub_circles,
    generate_tiles,
    planar_distance_m,
)


def test_single_tile_when_radius_not_larger_than_sub_radius():
    center = Coordinate(0.0, 0.0)
    tiles = generate_sub_circles(center, 400, 500)
    assert tiles == [center]


def test_single_tile_when_radius_equals_sub_radius():
    center = Coordinate(48.84995, 2.288463)
    tiles = generate_tiles(SearchArea(center=center, radius_m=500, sub_radius_m=500))
    assert tiles == [center]


def test_multiple_tiles_stay_near_center():
    center = Coordinate(0.0, 0.0)
    radius = 1500.0
    sub_radius = 500.0
    tiles = generate_sub_circles(center, radius, sub_radius)
    assert len(tiles) > 1
    for tile in tiles:
        assert planar_distance_m(center, tile) < radius + sub_radius
        assert abs(tile.latitude) < 0.1
        assert abs(tile.longitude) < 0.1


def test_tiles_cover_center_and_differ():
    center = Coordinate(40.7128, -74.0060)
    tiles = generate_sub_circles(center, 1000, 500)
    assert len(tiles) > 1
    assert len(set(tiles)) == len(tiles)
    assert any(t != tiles[0] for t in tiles)
    # the middle row has no offset, so the center itself is a tile
    assert any(planar_distance_m(center, t) < 1e-6 for t in tiles)


def test_tiles_deterministic_ordering():
    area = SearchArea(center=Coordinate(52.0, 21.0), radius_m=5000, sub_radius_m=500)
    assert generate_tiles(area) == generate_tiles(area)


def test_tile_count_increases_with_smaller_sub_radius():
    center = Coordinate(52.0, 21.0)
    coarse = generate_sub_circles(center, 4000, 1000)
    fine = generate_sub_circles(center, 4000, 500)
    assert len(fine) > len(coarse)


def test_longitude_step_widens_away_from_equator():
    equator = generate_sub_circles(Coordinate(0.0, 0.0), 2000, 500)
    north = generate_sub_circles(Coordinate(60.0, 0.0), 2000, 500)
    assert len(equator) == len(north)
    max_lon_equator = max(abs(t.longitude) for t in equator)
    max_lon_north = max(abs(t.longitude - 0.0) for t in north)
    assert max_lon_north > max_lon_equator


def test_planar_distance_matches_meters_per_degree():
    center = Coordinate(0.0, 0.0)
    assert planar_distance_m(center, Coordinate(0.01, 0.0)) == pytest.approx(1113.2)
    assert planar_distance_m(center, Coordinate(0.0, 0.01)) == pytest.approx(1113.2)
    north = Coordinate(60.0, 0.0)
    assert planar_distance_m(north, Coordinate(60.0, 0.01)) == pytest.approx(556.6)


def test_non_positive_radius_rejected():
    with pytest.raises(ValueError):
        generate_sub_circles(Coordinate(1.0, 1.0), 0, 500)
    with pytest.raises(ValueError):
        generate_sub_circles(Coordinate(1.0, 1.0), 1000, 0)
