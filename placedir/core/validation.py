from __future__ import annotations

import logging
from typing import Any, Mapping

from .entities import GeoPoint, Place
from .errors import ValidationError
from .geo import valid_point

logger = logging.getLogger(__name__)

DEFAULT_RATING = 4.0

_ALIASES = {
    "priceLevel": "price_level",
    "ratingsAverage": "ratings_average",
    "ratingsQuantity": "ratings_quantity",
    "externalId": "external_id",
}

PLACE_FIELDS = (
    "name",
    "city",
    "category",
    "price_level",
    "ratings_average",
    "ratings_quantity",
    "address",
    "phone",
    "website",
    "location",
    "external_id",
)


def canonical_keys(data: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for k, v in data.items():
        key = _ALIASES.get(k, k)
        if key not in PLACE_FIELDS:
            raise ValidationError(f"unknown place field {k!r}")
        out[key] = v
    return out


def parse_point(value: Any) -> GeoPoint:
    """Accepts a GeoPoint, {lng, lat} or a GeoJSON Point."""
    if isinstance(value, GeoPoint):
        lng, lat = value.lng, value.lat
    elif isinstance(value, Mapping) and "coordinates" in value:
        coords = value.get("coordinates") or []
        if len(coords) != 2:
            raise ValidationError("location.coordinates must be [lng, lat]")
        lng, lat = coords
    elif isinstance(value, Mapping):
        lng, lat = value.get("lng"), value.get("lat")
    else:
        raise ValidationError("location must be {lng, lat}")
    try:
        lng_f, lat_f = float(lng), float(lat)
    except (TypeError, ValueError):
        raise ValidationError(f"location coordinates must be numbers, got {lng!r}, {lat!r}")
    if not valid_point(lng_f, lat_f):
        raise ValidationError(f"location out of range: lng={lng_f}, lat={lat_f}")
    return GeoPoint(lng=lng_f, lat=lat_f)


def parse_price_level(value: Any) -> int:
    if isinstance(value, str) and value.strip().isdigit():
        level = int(value.strip())
    elif (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and float(value).is_integer()
    ):
        level = int(value)
    else:
        raise ValidationError(f"priceLevel must be an integer in [1, 4], got {value!r}")
    if not 1 <= level <= 4:
        raise ValidationError(f"priceLevel must be in [1, 4], got {level}")
    return level


def clamp_rating(value: Any) -> float:
    # Out-of-range ratings are replaced by the default, not rejected.
    rating = None
    if not isinstance(value, bool):
        try:
            rating = float(value)
        except (TypeError, ValueError):
            rating = None
    if rating is None or rating != rating or not 1.0 <= rating <= 5.0:
        logger.warning("Invalid rating %r, using default %.1f", value, DEFAULT_RATING)
        return DEFAULT_RATING
    return rating


def _text(data: dict[str, Any], key: str, required: bool = False) -> str | None:
    v = data.get(key)
    if v is None or (isinstance(v, str) and not v.strip()):
        if required:
            raise ValidationError(f"{key} is required")
        return None
    if not isinstance(v, str):
        raise ValidationError(f"{key} must be a string")
    return v.strip()


def _category(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        value = [value]
    if not value:
        raise ValidationError("category must be a non-empty list of strings")
    out: list[str] = []
    for c in value:
        if not isinstance(c, str) or not c.strip():
            raise ValidationError("category entries must be non-empty strings")
        if c.strip() not in out:
            out.append(c.strip())
    return tuple(out)


def normalize_place_data(data: Mapping[str, Any]) -> dict[str, Any]:
    """
    Validate a full place payload and return column values.

    Raises ValidationError on the first invalid field; nothing is written by
    callers until this succeeds.
    """
    d = canonical_keys(data)
    if d.get("location") is None:
        raise ValidationError("location is required")
    if d.get("price_level") is None:
        raise ValidationError("priceLevel is required")

    point = parse_point(d["location"])
    quantity = d.get("ratings_quantity")
    if quantity is None:
        quantity = 0
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        raise ValidationError(f"ratingsQuantity must be a non-negative integer, got {quantity!r}")

    rating = d.get("ratings_average")
    return {
        "name": _text(d, "name", required=True),
        "city": _text(d, "city", required=True),
        "category": _category(d.get("category")),
        "price_level": parse_price_level(d["price_level"]),
        "ratings_average": DEFAULT_RATING if rating is None else clamp_rating(rating),
        "ratings_quantity": quantity,
        "address": _text(d, "address"),
        "phone": _text(d, "phone"),
        "website": _text(d, "website"),
        "lng": point.lng,
        "lat": point.lat,
        "external_id": _text(d, "external_id"),
    }


def place_data(place: Place) -> dict[str, Any]:
    """Raw payload of an existing place, suitable for merging a patch into."""
    return {
        "name": place.name,
        "city": place.city,
        "category": list(place.category),
        "price_level": place.price_level,
        "ratings_average": place.ratings_average,
        "ratings_quantity": place.ratings_quantity,
        "address": place.address,
        "phone": place.phone,
        "website": place.website,
        "location": place.location,
        "external_id": place.external_id,
    }


def merge_place_patch(place: Place, patch: Mapping[str, Any]) -> dict[str, Any]:
    merged = place_data(place)
    merged.update(canonical_keys(patch))
    return normalize_place_data(merged)
