from __future__ import annotations

import logging
from typing import Any, Mapping

from placedir.core.authorization import require
from placedir.core.entities import Action, Place, Principal
from placedir.core.errors import ConflictError
from placedir.core.ports import CollectionsRepository, ListingRepository, PlaceRepository


class ManagePlacesUseCase:
    """Admin direct-create/edit/delete of places, outside moderation."""

    logger = logging.getLogger(__name__)

    def __init__(
        self,
        places: PlaceRepository,
        listings: ListingRepository,
        collections: CollectionsRepository | None = None,
    ):
        self.places = places
        self.listings = listings
        self.collections = collections

    def create_place(self, principal: Principal, data: Mapping[str, Any]) -> Place:
        require(principal, Action.ADMIN_EDIT)
        return self.places.create(data, published=True)

    def update_place(self, principal: Principal, place_id: int, patch: Mapping[str, Any]) -> Place:
        require(principal, Action.ADMIN_EDIT)
        return self.places.update(place_id, patch)

    def delete_place(self, principal: Principal, place_id: int) -> None:
        require(principal, Action.ADMIN_DELETE)
        self.places.get(place_id)
        refs = self.listings.count_referencing(place_id)
        if refs:
            raise ConflictError(f"place {place_id} is referenced by {refs} listing(s)")
        self.places.delete(place_id)
        if self.collections is not None:
            self.collections.forget_place(place_id)
        self.logger.info("Place %s deleted by admin %s", place_id, principal.id)
