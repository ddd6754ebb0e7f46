from __future__ import annotations

import logging
import math
import os
import time
from typing import Any

import backoff
import requests

from placedir.core.entities import ProviderPlace
from placedir.core.ports import PlacesProvider

BASE_V1 = "https://places.googleapis.com/v1"
API_KEY_ENV = "GOOGLE_MAPS_API_KEY"

SEARCH_FIELDS = (
    "places.name,places.displayName,places.formattedAddress,places.location,places.types"
)
DETAIL_FIELDS = (
    "name,displayName,formattedAddress,websiteUri,internationalPhoneNumber,location,types,"
    "rating,userRatingCount,priceLevel,addressComponents"
)


def _api_key() -> str:
    k = os.getenv(API_KEY_ENV)
    if not k:
        raise RuntimeError(f"Missing {API_KEY_ENV} in environment (.env).")
    return k


def _headers(field_mask: str) -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "X-Goog-Api-Key": _api_key(),
        "X-Goog-FieldMask": field_mask,
    }


def _pid(name: str | None) -> str | None:
    return name.split("/", 1)[1] if name and "/" in name else name


def _city(components: list[dict[str, Any]] | None) -> str | None:
    for c in components or []:
        if "locality" in (c.get("types") or []):
            return c.get("longText") or c.get("shortText")
    return None


def _deg_lat(m):
    return m / 111_320.0


def _deg_lng(m, lat):
    return m / (111_320.0 * max(0.2, math.cos(math.radians(lat))))


def _to_provider_place(p: dict[str, Any], place_id: str | None = None) -> ProviderPlace:
    loc = p.get("location") or {}
    return ProviderPlace(
        external_id=place_id or _pid(p.get("name")) or "",
        name=(p.get("displayName") or {}).get("text") or "",
        address=p.get("formattedAddress"),
        website=p.get("websiteUri"),
        phone=p.get("internationalPhoneNumber"),
        lat=loc.get("latitude"),
        lng=loc.get("longitude"),
        city=_city(p.get("addressComponents")),
        rating=p.get("rating"),
        user_rating_count=p.get("userRatingCount"),
        price_level=p.get("priceLevel"),
        types=p.get("types", []),
    )


class PlacesV1Client(PlacesProvider):
    logger = logging.getLogger(__name__)

    def _paged(self, url: str, body: dict[str, Any], max_results: int, label: str):
        out: list[ProviderPlace] = []
        token: str | None = None
        while True:
            payload = dict(body)
            if token:
                payload["pageToken"] = token
            r = requests.post(url, headers=_headers(SEARCH_FIELDS), json=payload, timeout=30)
            data = r.json()
            if r.status_code >= 400:
                raise RuntimeError(f"{label} v1 error: {data}")
            for p in data.get("places", []):
                out.append(_to_provider_place(p))
                if len(out) >= max_results:
                    return out
            token = data.get("nextPageToken")
            if not token:
                return out
            time.sleep(1.6)

    @backoff.on_exception(backoff.expo, (requests.RequestException,), max_time=60)
    def text_search(
        self,
        *,
        query: str,
        location: str | None,
        radius_m: int | None,
        types: list[str] | None,
        max_results: int = 120,
    ) -> list[ProviderPlace]:
        body: dict[str, Any] = {"textQuery": query, "pageSize": 20}
        if types:
            body["includedType"] = types[0]
        if location and radius_m:
            lat, lng = map(float, location.split(","))
            body["locationBias"] = {
                "circle": {"center": {"latitude": lat, "longitude": lng}, "radius": int(radius_m)}
            }
        return self._paged(f"{BASE_V1}/places:searchText", body, max_results, "Text Search")

    @backoff.on_exception(backoff.expo, (requests.RequestException,), max_time=60)
    def place_details(self, place_id: str) -> ProviderPlace:
        url = f"{BASE_V1}/places/{place_id}"
        r = requests.get(url, headers=_headers(DETAIL_FIELDS), timeout=30)
        d = r.json()
        if r.status_code >= 400:
            raise RuntimeError(f"Place Details v1 error: {d}")
        return _to_provider_place(d, place_id)

    @backoff.on_exception(backoff.expo, (requests.RequestException,), max_time=60)
    def _nearby_circle(
        self,
        *,
        center_lat: float,
        center_lng: float,
        radius_m: int,
        types: list[str],
        rank_preference: str = "DISTANCE",
    ) -> list[ProviderPlace]:
        body = {
            "includedTypes": types,
            "locationRestriction": {
                "circle": {
                    "center": {"latitude": center_lat, "longitude": center_lng},
                    "radius": int(radius_m),
                }
            },
            "maxResultCount": 20,
            "rankPreference": rank_preference,
        }
        r = requests.post(
            f"{BASE_V1}/places:searchNearby", headers=_headers(SEARCH_FIELDS), json=body, timeout=30
        )
        data = r.json()
        if r.status_code >= 400:
            raise RuntimeError(f"Nearby v1 error: {data}")
        return [_to_provider_place(p) for p in data.get("places", [])]

    def _grid_centers(
        self, *, center_lat: float, center_lng: float, radius_m: int, cell_radius_m: int
    ) -> list[tuple[float, float]]:
        step_m = cell_radius_m * 1.4  # ~30% overlap
        lat_step = _deg_lat(step_m)
        lng_step = _deg_lng(step_m, center_lat)
        rings = max(1, math.ceil(radius_m / step_m))
        centers = []
        for dy in range(-rings, rings + 1):
            for dx in range(-rings, rings + 1):
                centers.append((center_lat + dy * lat_step, center_lng + dx * lng_step))
        return centers

    def nearby_grid_search(
        self,
        *,
        center_lat: float,
        center_lng: float,
        radius_m: int,
        types: list[str],
        cell_radius_m: int = 600,
        overall_max: int = 2000,
    ) -> list[ProviderPlace]:
        centers = self._grid_centers(
            center_lat=center_lat,
            center_lng=center_lng,
            radius_m=radius_m,
            cell_radius_m=cell_radius_m,
        )
        seen, out = set(), []
        for lat, lng in centers:
            batch = self._nearby_circle(
                center_lat=lat, center_lng=lng, radius_m=cell_radius_m, types=types
            )
            for p in batch:
                if p.external_id and p.external_id not in seen:
                    self.logger.debug("[BATCH] %s -> %s", p.name, p.external_id)
                    seen.add(p.external_id)
                    out.append(p)
                    if len(out) >= overall_max:
                        return out
            time.sleep(0.2)
        return out
