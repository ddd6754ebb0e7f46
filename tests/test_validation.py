import pytest

from placedir.core.errors import ValidationError
from placedir.core.validation import (
    DEFAULT_RATING,
    clamp_rating,
    normalize_place_data,
    parse_point,
    parse_price_level,
)

BASE = {
    "name": "Cafe",
    "city": "Alexandria",
    "category": ["cafe"],
    "priceLevel": 1,
    "location": {"lng": 29.9, "lat": 31.2},
}


def test_camel_case_keys_and_defaults():
    values = normalize_place_data(BASE)
    assert values["price_level"] == 1
    assert values["ratings_average"] == DEFAULT_RATING
    assert values["ratings_quantity"] == 0
    assert values["category"] == ("cafe",)
    assert (values["lng"], values["lat"]) == (29.9, 31.2)


def test_geojson_point_is_accepted():
    p = parse_point({"type": "Point", "coordinates": [29.9, 31.2]})
    assert (p.lng, p.lat) == (29.9, 31.2)


@pytest.mark.parametrize(
    "location",
    [{"lng": 181, "lat": 0}, {"lng": 0, "lat": -90.5}, {"lng": "x", "lat": 1}, [1, 2]],
)
def test_invalid_locations(location):
    with pytest.raises(ValidationError):
        parse_point(location)


@pytest.mark.parametrize("value,expected", [(1, 1), (4, 4), ("3", 3), (2.0, 2)])
def test_price_level_accepted(value, expected):
    assert parse_price_level(value) == expected


@pytest.mark.parametrize("value", [0, 5, 2.5, True, "two", None])
def test_price_level_rejected(value):
    with pytest.raises(ValidationError):
        parse_price_level(value)


@pytest.mark.parametrize("rating", [0, 5.5, -1, "bad"])
def test_out_of_range_rating_is_clamped_to_default(rating):
    values = normalize_place_data({**BASE, "ratingsAverage": rating})
    assert values["ratings_average"] == DEFAULT_RATING


@pytest.mark.parametrize("rating", [True, False])
def test_boolean_rating_is_not_a_number(rating):
    assert clamp_rating(rating) == DEFAULT_RATING
    assert normalize_place_data({**BASE, "ratingsAverage": rating})["ratings_average"] == DEFAULT_RATING


def test_rating_in_range_is_kept():
    assert normalize_place_data({**BASE, "ratingsAverage": 4.8})["ratings_average"] == 4.8


@pytest.mark.parametrize(
    "patch",
    [
        {"name": ""},
        {"city": None},
        {"category": []},
        {"category": ["ok", " "]},
        {"ratingsQuantity": -3},
        {"nickname": "x"},
    ],
)
def test_invalid_payloads(patch):
    with pytest.raises(ValidationError):
        normalize_place_data({**BASE, **patch})


def test_category_keeps_order_and_drops_duplicates():
    values = normalize_place_data({**BASE, "category": ["b", "a", "b"]})
    assert values["category"] == ("b", "a")
