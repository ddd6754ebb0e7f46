from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterator, Mapping, Protocol

from .entities import GeoPoint, Listing, ListingStatus, Place, ProviderPlace


class PlaceRepository(ABC):
    @abstractmethod
    def create(self, data: Mapping[str, Any], *, published: bool = False) -> Place: ...
    @abstractmethod
    def get(self, place_id: int) -> Place: ...
    @abstractmethod
    def get_by_external_id(self, external_id: str) -> Place | None: ...
    @abstractmethod
    def update(
        self, place_id: int, patch: Mapping[str, Any], *, published: bool | None = None
    ) -> Place: ...
    @abstractmethod
    def delete(self, place_id: int) -> None: ...
    @abstractmethod
    def find_near(
        self, point: GeoPoint, max_distance_m: float | None, *, published_only: bool = True
    ) -> Iterator[tuple[Place, float]]: ...
    @abstractmethod
    def iter_all(self, *, published_only: bool = True) -> Iterator[Place]: ...
    @abstractmethod
    def upsert_external(self, data: Mapping[str, Any]) -> Place: ...
    @abstractmethod
    def cities(self, *, published_only: bool = True) -> list[str]: ...


class ListingRepository(ABC):
    @abstractmethod
    def add(
        self,
        *,
        place_id: int,
        owner_id: str,
        title: str,
        description: str,
        target_place_id: int | None = None,
    ) -> Listing: ...
    @abstractmethod
    def get(self, listing_id: int) -> Listing: ...
    @abstractmethod
    def list_by_owner(self, owner_id: str) -> list[Listing]: ...
    @abstractmethod
    def list_all(self, status: ListingStatus | None = None) -> list[Listing]: ...
    @abstractmethod
    def compare_and_set(self, listing: Listing, **changes: Any) -> Listing: ...
    @abstractmethod
    def delete_if_current(self, listing: Listing) -> None: ...
    @abstractmethod
    def count_by_status(self) -> dict[ListingStatus, int]: ...
    @abstractmethod
    def count_referencing(self, place_id: int, *, exclude_id: int | None = None) -> int: ...


class CollectionsRepository(ABC):
    @abstractmethod
    def add_favorite(self, user_id: str, place_id: int) -> None: ...
    @abstractmethod
    def remove_favorite(self, user_id: str, place_id: int) -> None: ...
    @abstractmethod
    def favorite_ids(self, user_id: str) -> list[int]: ...
    @abstractmethod
    def append_history(self, user_id: str, place_id: int) -> None: ...
    @abstractmethod
    def clear_history(self, user_id: str) -> None: ...
    @abstractmethod
    def history_ids(self, user_id: str) -> list[int]: ...
    @abstractmethod
    def forget_place(self, place_id: int) -> None: ...


class PlacesProvider(Protocol):
    def text_search(
        self,
        *,
        query: str,
        location: str | None,
        radius_m: int | None,
        types: list[str] | None,
        max_results: int,
    ) -> list[ProviderPlace]: ...

    def nearby_grid_search(
        self,
        *,
        center_lat: float,
        center_lng: float,
        radius_m: int,
        types: list[str],
        cell_radius_m: int,
        overall_max: int,
    ) -> list[ProviderPlace]: ...

    def place_details(self, place_id: str) -> ProviderPlace: ...
