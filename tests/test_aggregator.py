import pytest

from placesweep.aggregator import ResultAggregator
from placesweep.config import SearchConfig
from placesweep.geo import Coordinate
from placesweep.records import LegacyPlace, Place
from placesweep.reporting import ToCallback


def make_config(**overrides):
    base = dict(
        center=Coordinate(10.0, 10.0),
        api_key="MOCK_KEY",
        output=ToCallback(lambda records: None),
    )
    base.update(overrides)
    return SearchConfig(**base)


def place(place_id, rating=4.5, status="OPERATIONAL", **extra):
    payload = {"id": place_id, "rating": rating, "businessStatus": status}
    payload.update(extra)
    return Place(payload=payload)


def test_duplicate_identity_keeps_later_values_first_position():
    agg = ResultAggregator()
    agg.add([place("a", displayName={"text": "old"}), place("b")], tile_id="tile_0")
    agg.add([place("c"), place("a", displayName={"text": "new"})], tile_id="tile_1")

    results = agg.finalize(make_config())

    assert [r.identity() for r in results] == ["a", "b", "c"]
    assert results[0].payload["displayName"] == {"text": "new"}
    assert len(agg) == 3


def test_records_without_identity_are_dropped():
    agg = ResultAggregator()
    agg.add([Place(payload={"rating": 5.0}), LegacyPlace(payload={"name": "x", "rating": 5.0})])
    agg.add([place("a")])

    results = agg.finalize(make_config())

    assert [r.identity() for r in results] == ["a"]
    assert agg.dropped_without_identity == 2


def test_min_rating_boundary():
    agg = ResultAggregator()
    agg.add([place("low", rating=4.0), place("equal", rating=4.1), place("high", rating=4.9)])

    results = agg.finalize(make_config(min_rating=4.1))

    assert [r.identity() for r in results] == ["equal", "high"]
    assert agg.rejection_counts == {"below_min_score": 1}


def test_missing_rating_is_excluded_unless_threshold_is_zero():
    agg = ResultAggregator()
    agg.add([Place(payload={"id": "unrated", "businessStatus": "OPERATIONAL"})])
    assert agg.finalize(make_config()) == []

    agg_zero = ResultAggregator()
    agg_zero.add([Place(payload={"id": "unrated"})])
    results = agg_zero.finalize(make_config(min_rating=0.0))
    assert [r.identity() for r in results] == ["unrated"]


@pytest.mark.parametrize("status", ["CLOSED_TEMPORARILY", "CLOSED_PERMANENTLY"])
def test_closed_places_dropped_by_default(status):
    agg = ResultAggregator()
    agg.add([place("open"), place("closed", status=status)])

    results = agg.finalize(make_config())

    assert [r.identity() for r in results] == ["open"]
    assert agg.rejection_counts == {"closed": 1}


def test_closed_places_kept_when_allowed():
    agg = ResultAggregator()
    agg.add([place("open"), place("closed", status="CLOSED_PERMANENTLY")])

    results = agg.finalize(make_config(allow_closed=True))

    assert [r.identity() for r in results] == ["open", "closed"]


def test_missing_status_is_not_treated_as_closed():
    agg = ResultAggregator()
    agg.add([LegacyPlace(payload={"place_id": "p1", "rating": 4.5})])
    assert len(agg.finalize(make_config())) == 1


def test_limit_truncates_in_first_seen_order_after_filters():
    agg = ResultAggregator()
    agg.add([place("closed", status="CLOSED_TEMPORARILY"), place("a"), place("low", rating=1.0)])
    agg.add([place("b"), place("c"), place("d")])

    results = agg.finalize(make_config(limit=3))

    assert [r.identity() for r in results] == ["a", "b", "c"]
    assert agg.rejection_counts == {"closed": 1, "below_min_score": 1, "over_limit": 1}


def test_limit_larger_than_result_set_keeps_everything():
    agg = ResultAggregator()
    agg.add([place("a"), place("b")])
    assert len(agg.finalize(make_config(limit=10))) == 2


def test_finalize_is_idempotent_and_closes_the_set():
    agg = ResultAggregator()
    agg.add([place("a")])
    first = agg.finalize(make_config())
    second = agg.finalize(make_config(min_rating=5.0))
    assert [r.identity() for r in first] == [r.identity() for r in second]
    with pytest.raises(RuntimeError):
        agg.add([place("b")])


def test_per_tile_sets_track_sightings():
    agg = ResultAggregator()
    agg.add([place("a"), place("b")], tile_id="tile_0")
    agg.add([place("b")], tile_id="tile_1")
    assert agg.per_tile_sets() == {"tile_0": {"a", "b"}, "tile_1": {"b"}}


def test_place_identity_falls_back_to_resource_name():
    record = Place(payload={"name": "places/abc123", "rating": 4.5})
    assert record.identity() == "abc123"
