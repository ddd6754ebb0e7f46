from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from placedir.core.entities import Place, ProviderPlace
from placedir.core.errors import ValidationError
from placedir.core.ports import PlaceRepository, PlacesProvider
from placedir.core.validation import DEFAULT_RATING

PRICE_LEVELS = {
    "PRICE_LEVEL_INEXPENSIVE": 1,
    "PRICE_LEVEL_MODERATE": 2,
    "PRICE_LEVEL_EXPENSIVE": 3,
    "PRICE_LEVEL_VERY_EXPENSIVE": 4,
}


@dataclass
class ImportReport:
    saved: list[Place] = field(default_factory=list)
    skipped: int = 0
    existing: int = 0
    invalid: int = 0


def to_place_data(p: ProviderPlace, default_city: str) -> dict[str, Any] | None:
    """Provider record -> place payload, or None when name or coordinates are missing."""
    if not p.name or p.lat is None or p.lng is None:
        return None
    rating = p.rating or 0
    if rating < 1:
        rating = DEFAULT_RATING
    return {
        "external_id": p.external_id,
        "name": p.name,
        "city": p.city or default_city,
        "category": list(p.types) or ["Unknown"],
        "price_level": PRICE_LEVELS.get(p.price_level or "", 1),
        "ratings_average": rating,
        "ratings_quantity": p.user_rating_count or 0,
        "address": p.address,
        "phone": p.phone,
        "website": p.website,
        "location": {"lng": p.lng, "lat": p.lat},
    }


class ImportPlacesUseCase:
    logger = logging.getLogger(__name__)

    def __init__(self, repo: PlaceRepository, provider: PlacesProvider, default_city: str):
        self.repo = repo
        self.provider = provider
        self.default_city = default_city

    def run_text(
        self,
        *,
        query: str,
        location: str | None,
        radius_m: int | None,
        types: list[str] | None,
        max_results: int,
    ) -> ImportReport:
        hits = self.provider.text_search(
            query=query, location=location, radius_m=radius_m, types=types, max_results=max_results
        )
        return self._details_and_store(hits)

    def run_nearby_grid(
        self,
        *,
        center_lat: float,
        center_lng: float,
        radius_m: int,
        types: list[str],
        cell_radius_m: int,
        overall_max: int,
    ) -> ImportReport:
        hits = self.provider.nearby_grid_search(
            center_lat=center_lat,
            center_lng=center_lng,
            radius_m=radius_m,
            types=types,
            cell_radius_m=cell_radius_m,
            overall_max=overall_max,
        )
        return self._details_and_store(hits)

    def _details_and_store(self, hits: list[ProviderPlace]) -> ImportReport:
        report = ImportReport()
        for h in hits:
            if not h.external_id:
                report.skipped += 1
                continue
            if self.repo.get_by_external_id(h.external_id):
                report.existing += 1
                continue  # ya existe
            d = to_place_data(self.provider.place_details(h.external_id), self.default_city)
            if d is None:
                self.logger.warning("Skipping %s: missing name or coordinates", h.external_id)
                report.skipped += 1
                continue
            try:
                report.saved.append(self.repo.upsert_external(d))
            except ValidationError as e:
                self.logger.warning("Invalid place %s (%s): %s", h.external_id, h.name, e.reason)
                report.invalid += 1
        self.logger.info(
            "Import done: %d saved, %d existing, %d skipped, %d invalid",
            len(report.saved),
            report.existing,
            report.skipped,
            report.invalid,
        )
        return report
