from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Role(str, Enum):
    USER = "user"
    OWNER = "owner"
    ADMIN = "admin"


class Action(str, Enum):
    SUBMIT = "submit"
    MODERATE = "moderate"
    SELF_EDIT = "selfEdit"
    SELF_DELETE = "selfDelete"
    ADMIN_DELETE = "adminDelete"
    ADMIN_EDIT = "adminEdit"


class ListingStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class SortMode(str, Enum):
    DEFAULT = "default"
    NEAREST = "nearest"
    HIGH_RATING = "highRating"


@dataclass(frozen=True)
class Principal:
    id: str
    role: Role


@dataclass(frozen=True)
class GeoPoint:
    lng: float
    lat: float


@dataclass(frozen=True)
class Place:
    id: int
    name: str
    city: str
    category: tuple[str, ...]
    price_level: int
    location: GeoPoint
    ratings_average: float = 4.0
    ratings_quantity: int = 0
    address: str | None = None
    phone: str | None = None
    website: str | None = None
    external_id: str | None = None
    published: bool = False
    created_at: str | None = None
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Wire projection of the place (camelCase keys)."""
        return {
            "id": self.id,
            "name": self.name,
            "city": self.city,
            "category": list(self.category),
            "priceLevel": self.price_level,
            "ratingsAverage": self.ratings_average,
            "ratingsQuantity": self.ratings_quantity,
            "address": self.address,
            "phone": self.phone,
            "website": self.website,
            "location": {"lng": self.location.lng, "lat": self.location.lat},
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class Listing:
    id: int
    place_id: int
    owner_id: str
    status: ListingStatus
    title: str = ""
    description: str = ""
    admin_note: str | None = None
    target_place_id: int | None = None
    version: int = 0
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class ProviderPlace:
    """A place as returned by an external places provider."""

    external_id: str
    name: str
    address: str | None = None
    website: str | None = None
    phone: str | None = None
    lat: float | None = None
    lng: float | None = None
    city: str | None = None
    rating: float | None = None
    user_rating_count: int | None = None
    price_level: str | None = None
    types: list[str] = field(default_factory=list)
