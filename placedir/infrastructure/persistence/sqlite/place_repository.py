from __future__ import annotations

import heapq
import logging
import math
from typing import Any, Iterator, Mapping

from sqlalchemy import text

from placedir.core.entities import GeoPoint, Place
from placedir.core.errors import NotFound
from placedir.core.geo import EARTH_RADIUS_M, bounding_box, distance_m
from placedir.core.ports import PlaceRepository
from placedir.core.validation import merge_place_patch, normalize_place_data

from .db import NOW_SQL, make_engine

COLUMNS = (
    "id,external_id,name,city,category,price_level,ratings_average,ratings_quantity,"
    "address,phone,website,lat,lng,published,created_at,updated_at"
)

# first ring of an unbounded nearest search; the last ring covers the globe
NEAR_START_RADIUS_M = 5_000.0
MAX_RADIUS_M = math.pi * EARTH_RADIUS_M

INSERT_SQL = f"""
INSERT INTO places (external_id, name, city, category, price_level, ratings_average,
    ratings_quantity, address, phone, website, lat, lng, published, created_at, updated_at)
VALUES (:external_id, :name, :city, :category, :price_level, :ratings_average,
    :ratings_quantity, :address, :phone, :website, :lat, :lng, :published, {NOW_SQL}, {NOW_SQL})
"""

UPSERT_SQL = f"""
INSERT INTO places (external_id, name, city, category, price_level, ratings_average,
    ratings_quantity, address, phone, website, lat, lng, published, created_at, updated_at)
VALUES (:external_id, :name, :city, :category, :price_level, :ratings_average,
    :ratings_quantity, :address, :phone, :website, :lat, :lng, 1, {NOW_SQL}, {NOW_SQL})
ON CONFLICT(external_id) DO UPDATE SET
    name = COALESCE(excluded.name, places.name),
    city = COALESCE(excluded.city, places.city),
    category = excluded.category,
    price_level = excluded.price_level,
    ratings_average = excluded.ratings_average,
    ratings_quantity = excluded.ratings_quantity,
    address = COALESCE(excluded.address, places.address),
    phone = COALESCE(excluded.phone, places.phone),
    website = COALESCE(excluded.website, places.website),
    lat = excluded.lat,
    lng = excluded.lng,
    updated_at = {NOW_SQL}
"""

UPDATE_SQL = f"""
UPDATE places SET
    external_id = :external_id,
    name = :name,
    city = :city,
    category = :category,
    price_level = :price_level,
    ratings_average = :ratings_average,
    ratings_quantity = :ratings_quantity,
    address = :address,
    phone = :phone,
    website = :website,
    lat = :lat,
    lng = :lng,
    published = :published,
    updated_at = {NOW_SQL}
WHERE id = :id
"""

SELECT_ONE_SQL = f"SELECT {COLUMNS} FROM places WHERE id=:id;"

SELECT_BY_EXTERNAL_SQL = f"SELECT {COLUMNS} FROM places WHERE external_id=:external_id;"

SELECT_ALL_SQL = f"""
SELECT {COLUMNS}
FROM places
WHERE (:published_only = 0 OR published = 1)
ORDER BY created_at, id;
"""

SELECT_CITIES_SQL = """
SELECT DISTINCT city
FROM places
WHERE (:published_only = 0 OR published = 1)
ORDER BY city;
"""


class SQLitePlaceRepository(PlaceRepository):
    logger = logging.getLogger(__name__)

    def __init__(self, path: str = "places.db", engine=None):
        self.engine = engine if engine is not None else make_engine(path)

    @staticmethod
    def _category_to_list(s: str | None) -> list[str]:
        if not s:
            return []
        return [c for c in s.strip("|").split("|") if c]

    @staticmethod
    def _list_to_category(cats) -> str:
        norm: list[str] = []
        for c in cats:
            c = c.strip()
            if c and c not in norm:
                norm.append(c)
        return "|" + "|".join(norm) + "|"

    @staticmethod
    def _merge_category(existing: str | None, new) -> str:
        merged = SQLitePlaceRepository._category_to_list(existing)
        merged.extend(new or [])
        return SQLitePlaceRepository._list_to_category(merged)

    def _row_to_place(self, row) -> Place:
        d = dict(row._mapping)
        return Place(
            id=d["id"],
            name=d["name"],
            city=d["city"],
            category=tuple(self._category_to_list(d["category"])),
            price_level=d["price_level"],
            location=GeoPoint(lng=d["lng"], lat=d["lat"]),
            ratings_average=d["ratings_average"],
            ratings_quantity=d["ratings_quantity"],
            address=d["address"],
            phone=d["phone"],
            website=d["website"],
            external_id=d["external_id"],
            published=bool(d["published"]),
            created_at=d["created_at"],
            updated_at=d["updated_at"],
        )

    def _payload(self, values: dict[str, Any]) -> dict[str, Any]:
        payload = dict(values)
        payload["category"] = self._list_to_category(values["category"])
        return payload

    def _get(self, conn, place_id: int) -> Place:
        row = conn.execute(text(SELECT_ONE_SQL), {"id": place_id}).one_or_none()
        if not row:
            raise NotFound(f"place {place_id} does not exist")
        return self._row_to_place(row)

    def create(self, data: Mapping[str, Any], *, published: bool = False) -> Place:
        values = normalize_place_data(data)
        with self.engine.begin() as conn:
            payload = self._payload(values)
            payload["published"] = int(published)
            result = conn.execute(text(INSERT_SQL), payload)
            place = self._get(conn, result.lastrowid)
        self.logger.info("Created place %s (%s)", place.id, place.name)
        return place

    def get(self, place_id: int) -> Place:
        with self.engine.begin() as conn:
            return self._get(conn, place_id)

    def get_by_external_id(self, external_id: str) -> Place | None:
        with self.engine.begin() as conn:
            row = conn.execute(
                text(SELECT_BY_EXTERNAL_SQL), {"external_id": external_id}
            ).one_or_none()
            return self._row_to_place(row) if row else None

    def update(
        self, place_id: int, patch: Mapping[str, Any], *, published: bool | None = None
    ) -> Place:
        # read, merge, validate and write inside one transaction
        with self.engine.begin() as conn:
            current = self._get(conn, place_id)
            values = merge_place_patch(current, patch)
            payload = self._payload(values)
            payload["id"] = place_id
            payload["published"] = int(current.published if published is None else published)
            conn.execute(text(UPDATE_SQL), payload)
            return self._get(conn, place_id)

    def delete(self, place_id: int) -> None:
        with self.engine.begin() as conn:
            result = conn.execute(text("DELETE FROM places WHERE id=:id"), {"id": place_id})
            if result.rowcount == 0:
                raise NotFound(f"place {place_id} does not exist")
        self.logger.info("Deleted place %s", place_id)

    def _candidates(
        self, point: GeoPoint, radius_m: float, published_only: bool
    ) -> list[tuple[Place, float]]:
        min_lat, max_lat, lng_ranges = bounding_box(point, radius_m)
        params: dict[str, Any] = {
            "published_only": int(published_only),
            "min_lat": min_lat,
            "max_lat": max_lat,
        }
        clauses = []
        for i, (lo, hi) in enumerate(lng_ranges):
            params[f"lng_lo{i}"], params[f"lng_hi{i}"] = lo, hi
            clauses.append(f"lng BETWEEN :lng_lo{i} AND :lng_hi{i}")
        sql = (
            f"SELECT {COLUMNS} FROM places "
            f"WHERE lat BETWEEN :min_lat AND :max_lat AND ({' OR '.join(clauses)}) "
            "AND (:published_only = 0 OR published = 1);"
        )
        with self.engine.begin() as conn:
            rows = conn.execute(text(sql), params).all()
        out = []
        for row in rows:
            place = self._row_to_place(row)
            out.append((place, distance_m(point, place.location)))
        return out

    def find_near(
        self, point: GeoPoint, max_distance_m: float | None, *, published_only: bool = True
    ) -> Iterator[tuple[Place, float]]:
        """
        Places by ascending distance from ``point`` (ties by id), lazily.

        Without a radius the search box starts at NEAR_START_RADIUS_M and grows
        fourfold per ring; a candidate is yielded once the current ring proves
        nothing unseen can be closer.
        """
        if max_distance_m is not None:
            hits = [
                h
                for h in self._candidates(point, max_distance_m, published_only)
                if h[1] <= max_distance_m
            ]
            hits.sort(key=lambda h: (h[1], h[0].id))
            for place, d in hits:
                yield place, d
            return

        heap: list[tuple[float, int, Place]] = []
        seen: set[int] = set()
        radius = NEAR_START_RADIUS_M
        while True:
            last = radius >= MAX_RADIUS_M
            for place, d in self._candidates(point, radius, published_only):
                if place.id not in seen:
                    seen.add(place.id)
                    heapq.heappush(heap, (d, place.id, place))
            # everything outside the box is farther than radius
            while heap and (last or heap[0][0] <= radius):
                d, _, place = heapq.heappop(heap)
                yield place, d
            if last:
                return
            radius = min(radius * 4, MAX_RADIUS_M)

    def iter_all(self, *, published_only: bool = True) -> Iterator[Place]:
        with self.engine.begin() as conn:
            rows = conn.execute(
                text(SELECT_ALL_SQL), {"published_only": int(published_only)}
            ).all()
        return (self._row_to_place(r) for r in rows)

    def upsert_external(self, data: Mapping[str, Any]) -> Place:
        values = normalize_place_data(data)
        if not values["external_id"]:
            raise ValueError("upsert_external requires an external_id")
        with self.engine.begin() as conn:
            row = conn.execute(
                text("SELECT category FROM places WHERE external_id=:e"),
                {"e": values["external_id"]},
            ).one_or_none()
            payload = self._payload(values)
            payload["category"] = self._merge_category(row[0] if row else None, values["category"])
            conn.execute(text(UPSERT_SQL), payload)
            row = conn.execute(
                text(SELECT_BY_EXTERNAL_SQL), {"external_id": values["external_id"]}
            ).one()
            return self._row_to_place(row)

    def cities(self, *, published_only: bool = True) -> list[str]:
        with self.engine.begin() as conn:
            rows = conn.execute(
                text(SELECT_CITIES_SQL), {"published_only": int(published_only)}
            ).all()
        return [r[0] for r in rows]

    def close(self):
        self.engine.dispose()
