from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterator, Mapping

from placedir.core.entities import GeoPoint, Place, SortMode
from placedir.core.errors import ConfigurationError, NotFound, ValidationError
from placedir.core.ports import PlaceRepository
from placedir.core.validation import parse_point, parse_price_level


@dataclass(frozen=True)
class SearchQuery:
    city: str | None = None
    price_level: int | None = None
    sort_by: SortMode = SortMode.DEFAULT
    origin: GeoPoint | None = None
    max_distance_m: float | None = None

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "SearchQuery":
        """
        Build a query from an inbound search request.

        Accepts ``city``, ``priceLevel``, ``sortBy``, and an origin given either as
        ``origin: {lat, lng}`` or as top-level ``lat``/``lng``; ``radius`` in meters.
        Empty strings mean "not set", as filter forms send them.
        """
        def given(key: str):
            v = params.get(key)
            return None if v is None or v == "" else v

        city = given("city")
        price = given("priceLevel")
        sort_raw = given("sortBy") or SortMode.DEFAULT.value
        try:
            sort_by = SortMode(sort_raw)
        except ValueError:
            choices = ", ".join(m.value for m in SortMode)
            raise ValidationError(f"sortBy must be one of {choices}, got {sort_raw!r}")

        origin = given("origin")
        if origin is None and given("lat") is not None and given("lng") is not None:
            origin = {"lat": params["lat"], "lng": params["lng"]}

        radius = given("radius")
        if radius is not None:
            try:
                radius = float(radius)
            except (TypeError, ValueError):
                raise ValidationError(f"radius must be a number of meters, got {radius!r}")
            if radius < 0:
                raise ValidationError("radius must not be negative")

        return cls(
            city=city,
            price_level=parse_price_level(price) if price is not None else None,
            sort_by=sort_by,
            origin=parse_point(origin) if origin is not None else None,
            max_distance_m=radius,
        )

    def matches(self, place: Place) -> bool:
        if self.city is not None and place.city != self.city:
            return False
        if self.price_level is not None and place.price_level != self.price_level:
            return False
        return True


class SearchPlacesUseCase:
    logger = logging.getLogger(__name__)

    def __init__(self, repo: PlaceRepository):
        self.repo = repo

    def search(self, query: SearchQuery) -> Iterator[Place]:
        """Published places matching ``query``, in the order its sort mode defines."""
        if query.price_level is not None and not 1 <= query.price_level <= 4:
            raise ValidationError(f"priceLevel must be in [1, 4], got {query.price_level}")
        self.logger.debug("Search %s", query)

        if query.sort_by is SortMode.NEAREST:
            if query.origin is None:
                raise ConfigurationError("sortBy=nearest requires an origin point")
            near = self.repo.find_near(query.origin, query.max_distance_m, published_only=True)
            # keep the index order, filter only
            return (place for place, _ in near if query.matches(place))

        matching = (p for p in self.repo.iter_all(published_only=True) if query.matches(p))
        if query.sort_by is SortMode.HIGH_RATING:
            return iter(sorted(matching, key=lambda p: (-p.ratings_average, p.id)))
        return matching

    def get_place(self, place_id: int) -> Place:
        place = self.repo.get(place_id)
        if not place.published:
            raise NotFound(f"place {place_id} does not exist")
        return place

    def available_cities(self) -> list[str]:
        return self.repo.cities(published_only=True)
