from __future__ import annotations

import threading

from placedir.core.entities import Place, Principal
from placedir.core.errors import NotFound
from placedir.core.ports import CollectionsRepository, PlaceRepository


class UserCollectionsUseCase:
    """Favorites and browsing history of the acting principal.

    Mutations on the same user are serialized with a per-user lock.
    """

    def __init__(self, places: PlaceRepository, collections: CollectionsRepository):
        self.places = places
        self.collections = collections
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _user_lock(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(user_id, threading.Lock())

    def _published(self, place_id: int) -> Place:
        place = self.places.get(place_id)
        if not place.published:
            raise NotFound(f"place {place_id} does not exist")
        return place

    def add_favorite(self, principal: Principal, place_id: int) -> None:
        self._published(place_id)
        with self._user_lock(principal.id):
            self.collections.add_favorite(principal.id, place_id)

    def remove_favorite(self, principal: Principal, place_id: int) -> None:
        with self._user_lock(principal.id):
            self.collections.remove_favorite(principal.id, place_id)

    def favorites(self, principal: Principal) -> list[Place]:
        return self._resolve(self.collections.favorite_ids(principal.id))

    def append_history(self, principal: Principal, place_id: int) -> None:
        with self._user_lock(principal.id):
            self.collections.append_history(principal.id, place_id)

    def clear_history(self, principal: Principal) -> None:
        with self._user_lock(principal.id):
            self.collections.clear_history(principal.id)

    def history(self, principal: Principal) -> list[Place]:
        return self._resolve(self.collections.history_ids(principal.id))

    def _resolve(self, place_ids: list[int]) -> list[Place]:
        out = []
        for pid in place_ids:
            try:
                out.append(self._published(pid))
            except NotFound:
                continue  # deleted or not published
        return out
