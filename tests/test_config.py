import json

import pytest

from placesweep import config
from placesweep.config import ConfigError, SearchConfig, load_search_config
from placesweep.geo import Coordinate
from placesweep.reporting import ToCallback, ToFile


def test_from_mapping_accepts_short_center_keys_and_format_name():
    search_config = SearchConfig.from_mapping(
        {
            "center": {"lat": 48.84995, "lon": 2.288463},
            "radius_m": "1500",
            "output": "csv",
            "excluded_primary_types": ["bar"],
            "unknown_key": 1,
        },
        api_key="MOCK_KEY",
    )

    assert search_config.center == Coordinate(48.84995, 2.288463)
    assert search_config.radius_m == 1500.0
    assert search_config.output == ToFile(format="csv")
    assert search_config.excluded_primary_types == ("bar",)
    assert search_config.validate() is search_config


def test_overrides_win_and_none_overrides_are_ignored():
    search_config = SearchConfig.from_mapping(
        {"center": {"latitude": 1.0, "longitude": 2.0}, "min_rating": 3.0, "limit": 10},
        min_rating=4.5,
        limit=None,
    )
    assert search_config.min_rating == 4.5
    assert search_config.limit == 10


def test_null_values_in_file_fall_back_to_defaults():
    search_config = SearchConfig.from_mapping(
        {
            "center": {"lat": 1, "lon": 2},
            "min_rating": None,
            "radius_m": None,
            "sub_radius_m": None,
            "limit": None,
        }
    )
    assert search_config.min_rating == config.DEFAULT_MIN_RATING
    assert search_config.radius_m == config.DEFAULT_RADIUS_M
    assert search_config.sub_radius_m == config.DEFAULT_SUB_RADIUS_M
    assert search_config.limit is None


@pytest.mark.parametrize(
    "bad",
    [{"min_rating": "high"}, {"radius_m": [1]}, {"limit": "ten"}],
)
def test_non_numeric_values_raise_config_error(bad):
    data = {"center": {"lat": 1, "lon": 2}}
    data.update(bad)
    with pytest.raises(ConfigError):
        SearchConfig.from_mapping(data)


def test_from_mapping_requires_center():
    with pytest.raises(ConfigError):
        SearchConfig.from_mapping({"radius_m": 100})
    with pytest.raises(ConfigError):
        SearchConfig.from_mapping({"center": {"lat": 1.0}})


def make_valid(**overrides):
    base = dict(center=Coordinate(1.0, 2.0), api_key="k", output=ToCallback(print))
    base.update(overrides)
    return SearchConfig(**base)


@pytest.mark.parametrize(
    "overrides",
    [
        {"api_key": None},
        {"output": None},
        {"output": ToFile(format="xml")},
        {"output": ToCallback("not callable")},
        {"api_version": "v2"},
        {"radius_m": 0},
        {"sub_radius_m": -1},
        {"limit": 0},
        {"max_pages_per_tile": 0},
    ],
)
def test_validate_rejects_invalid_settings(overrides):
    with pytest.raises(ConfigError):
        make_valid(**overrides).validate()


def test_config_error_is_a_value_error():
    assert issubclass(ConfigError, ValueError)


def test_field_mask_always_includes_required_fields():
    mask = make_valid(fields=("displayName", "rating")).field_mask()
    assert mask == "places.displayName,places.rating,places.id,places.businessStatus"

    default_mask = make_valid().field_mask().split(",")
    assert default_mask == [f"places.{name}" for name in config.PLACES_DEFAULT_FIELDS]


def test_per_batch_yield_depends_on_api_version():
    assert make_valid().per_batch_yield == 20
    assert make_valid(api_version="legacy").per_batch_yield == 60


def test_load_search_config(tmp_path):
    path = tmp_path / "search_config.json"
    assert load_search_config(str(path)) is None

    path.write_text(json.dumps({"center": {"lat": 1, "lon": 2}}), encoding="utf-8")
    assert load_search_config(str(path)) == {"center": {"lat": 1, "lon": 2}}

    path.write_text("[]", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_search_config(str(path))
