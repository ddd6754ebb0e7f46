from __future__ import annotations

import logging
from typing import Any, Mapping

from placedir.core.authorization import can_perform, require
from placedir.core.entities import Action, Listing, ListingStatus, Place, Principal
from placedir.core.errors import Forbidden, NotFound, ValidationError
from placedir.core.ports import CollectionsRepository, ListingRepository, PlaceRepository
from placedir.core.validation import (
    canonical_keys,
    merge_place_patch,
    normalize_place_data,
    place_data,
)

# status edges a moderator may request; everything else is refused
TRANSITIONS = {
    (ListingStatus.PENDING, ListingStatus.ACCEPTED),
    (ListingStatus.PENDING, ListingStatus.REJECTED),
}

OWNER_EDITABLE = {ListingStatus.PENDING, ListingStatus.REJECTED}


def _status(value: Any) -> ListingStatus:
    try:
        return ListingStatus(value)
    except ValueError:
        choices = ", ".join(s.value for s in ListingStatus)
        raise ValidationError(f"status must be one of {choices}, got {value!r}")


def _listing_patch(place: Mapping[str, Any] | None) -> dict[str, Any]:
    if not place:
        return {}
    patch = canonical_keys(place)
    if "external_id" in patch:
        raise ValidationError("externalId cannot be set through a listing")
    return patch


class ListingLifecycleUseCase:
    """
    Moderation state machine for owner-submitted listings.

    A listing owns a draft place (unpublished) while pending or rejected. On
    acceptance the draft is published, or merged into the place the listing
    targets. Status changes only happen through ``transition``, which
    compare-and-swaps on the listing's status and version.
    """

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

    # -- submission -----------------------------------------------------------

    def submit(
        self,
        principal: Principal,
        *,
        title: str = "",
        description: str = "",
        place: Mapping[str, Any] | None = None,
        place_id: int | None = None,
    ) -> Listing:
        require(principal, Action.SUBMIT)
        if place is None and place_id is None:
            raise ValidationError("a listing needs inline place fields or a place reference")

        patch = _listing_patch(place)
        if place_id is not None:
            target = self.places.get(place_id)
            if not target.published:
                # drafts belong to their own listing
                raise NotFound(f"place {place_id} does not exist")
            raw = place_data(target)
            raw.update(patch)
        else:
            raw = patch
        raw["external_id"] = None
        normalize_place_data(raw)

        return self._create(principal, raw, title, description, target_place_id=place_id)

    def resubmit(
        self,
        principal: Principal,
        listing_id: int,
        *,
        title: str | None = None,
        description: str | None = None,
        place: Mapping[str, Any] | None = None,
    ) -> Listing:
        """Create a new pending listing from a rejected one; the rejected one is kept."""
        require(principal, Action.SUBMIT)
        old = self.listings.get(listing_id)
        if old.owner_id != principal.id:
            raise Forbidden(f"listing {listing_id} belongs to another owner")
        if old.status is not ListingStatus.REJECTED:
            raise Forbidden(f"only rejected listings can be resubmitted (is {old.status.value})")

        raw = place_data(self.places.get(old.place_id))
        raw.update(_listing_patch(place))
        raw["external_id"] = None
        normalize_place_data(raw)

        return self._create(
            principal,
            raw,
            old.title if title is None else title,
            old.description if description is None else description,
            target_place_id=old.target_place_id,
        )

    def _create(
        self,
        principal: Principal,
        raw: dict[str, Any],
        title: str,
        description: str,
        *,
        target_place_id: int | None,
    ) -> Listing:
        draft = self.places.create(raw, published=False)
        try:
            listing = self.listings.add(
                place_id=draft.id,
                owner_id=principal.id,
                title=title or "",
                description=description or "",
                target_place_id=target_place_id,
            )
        except Exception:
            self.places.delete(draft.id)
            raise
        self.logger.info("Listing %s submitted by %s (draft place %s)", listing.id, principal.id, draft.id)
        return listing

    # -- moderation -----------------------------------------------------------

    def transition(
        self,
        principal: Principal,
        listing_id: int,
        to_status: ListingStatus | str,
        note: str | None = None,
    ) -> Listing:
        require(principal, Action.MODERATE)
        to_status = _status(to_status)
        listing = self.listings.get(listing_id)

        if (listing.status, to_status) not in TRANSITIONS:
            raise Forbidden(
                f"listing {listing_id} cannot move from {listing.status.value} to {to_status.value}"
            )

        if to_status is ListingStatus.REJECTED:
            note = (note or "").strip()
            if not note:
                raise ValidationError("rejecting a listing requires an adminNote")
            updated = self.listings.compare_and_set(listing, status=to_status, admin_note=note)
            self.logger.info("Listing %s rejected by %s: %s", listing_id, principal.id, note)
            return updated

        return self._accept(principal, listing)

    def accept(self, principal: Principal, listing_id: int) -> Listing:
        return self.transition(principal, listing_id, ListingStatus.ACCEPTED)

    def reject(self, principal: Principal, listing_id: int, note: str) -> Listing:
        return self.transition(principal, listing_id, ListingStatus.REJECTED, note)

    def _accept(self, principal: Principal, listing: Listing) -> Listing:
        draft = self.places.get(listing.place_id)
        merged = place_data(draft)
        merged.pop("external_id")

        target: Place | None = None
        if listing.target_place_id is not None:
            target = self.places.get(listing.target_place_id)
            merge_place_patch(target, merged)

        # the status swap decides the race; the loser never touches the place
        updated = self.listings.compare_and_set(
            listing,
            status=ListingStatus.ACCEPTED,
            admin_note=None,
            place_id=target.id if target else draft.id,
        )
        if target is not None:
            self.places.update(target.id, merged, published=True)
            self.places.delete(draft.id)
        else:
            self.places.update(draft.id, {}, published=True)

        self.logger.info(
            "Listing %s accepted by %s, place %s published", listing.id, principal.id, updated.place_id
        )
        return updated

    # -- owner self-service ---------------------------------------------------

    def _owned_editable(self, principal: Principal, action: Action, listing_id: int) -> Listing:
        listing = self.listings.get(listing_id)
        require(principal, action, resource_owner_id=listing.owner_id)
        if listing.owner_id != principal.id:
            raise Forbidden(f"listing {listing_id} belongs to another owner")
        if listing.status not in OWNER_EDITABLE:
            raise Forbidden(f"{listing.status.value} listings can only be changed by an admin")
        return listing

    def update_own(
        self,
        principal: Principal,
        listing_id: int,
        *,
        title: str | None = None,
        description: str | None = None,
        place: Mapping[str, Any] | None = None,
    ) -> Listing:
        """
        Owner edit of a pending or rejected listing.

        The status is left as is: a rejected listing stays rejected until the
        owner resubmits it.
        """
        listing = self._owned_editable(principal, Action.SELF_EDIT, listing_id)
        patch = _listing_patch(place)
        if patch:
            merge_place_patch(self.places.get(listing.place_id), patch)

        changes = {k: v for k, v in (("title", title), ("description", description)) if v is not None}
        updated = self.listings.compare_and_set(listing, **changes)
        if patch:
            self.places.update(listing.place_id, patch)
        return updated

    def delete_own(self, principal: Principal, listing_id: int) -> None:
        listing = self._owned_editable(principal, Action.SELF_DELETE, listing_id)
        self.listings.delete_if_current(listing)
        self._drop_place_if_orphaned(listing.place_id)
        self.logger.info("Listing %s deleted by owner %s", listing_id, principal.id)

    # -- admin ----------------------------------------------------------------

    def admin_update(
        self,
        principal: Principal,
        listing_id: int,
        *,
        title: str | None = None,
        description: str | None = None,
        admin_note: str | None = None,
        place: Mapping[str, Any] | None = None,
        status: ListingStatus | str | None = None,
    ) -> Listing:
        require(principal, Action.ADMIN_EDIT)
        listing = self.listings.get(listing_id)
        patch = _listing_patch(place)
        if patch:
            merge_place_patch(self.places.get(listing.place_id), patch)

        if status is not None and _status(status) is not listing.status:
            listing = self.transition(principal, listing_id, status, note=admin_note)
            admin_note = None

        changes: dict[str, Any] = {
            k: v for k, v in (("title", title), ("description", description)) if v is not None
        }
        if admin_note is not None:
            if listing.status is not ListingStatus.REJECTED:
                raise ValidationError("adminNote only applies to rejected listings")
            if not admin_note.strip():
                raise ValidationError("adminNote must not be empty")
            changes["admin_note"] = admin_note.strip()

        if changes:
            listing = self.listings.compare_and_set(listing, **changes)
        if patch:
            self.places.update(listing.place_id, patch)
        return listing

    def admin_delete(self, principal: Principal, listing_id: int) -> None:
        require(principal, Action.ADMIN_DELETE)
        listing = self.listings.get(listing_id)
        self.listings.delete_if_current(listing)
        # a place the listing merged into existed before it; leave it alone
        if listing.place_id != listing.target_place_id:
            self._drop_place_if_orphaned(listing.place_id)
        self.logger.info("Listing %s deleted by admin %s", listing_id, principal.id)

    def _drop_place_if_orphaned(self, place_id: int) -> None:
        if self.listings.count_referencing(place_id):
            return
        try:
            self.places.delete(place_id)
        except NotFound:
            return
        if self.collections is not None:
            self.collections.forget_place(place_id)

    # -- reads ----------------------------------------------------------------

    def my_listings(self, principal: Principal) -> list[Listing]:
        return self.listings.list_by_owner(principal.id)

    def all_listings(
        self, principal: Principal, status: ListingStatus | str | None = None
    ) -> list[Listing]:
        require(principal, Action.MODERATE)
        return self.listings.list_all(_status(status) if status is not None else None)

    def get_listing(self, principal: Principal, listing_id: int) -> Listing:
        listing = self.listings.get(listing_id)
        if listing.owner_id != principal.id and not can_perform(principal, Action.MODERATE):
            raise Forbidden(f"listing {listing_id} belongs to another owner")
        return listing

    def listing_place(self, principal: Principal, listing_id: int) -> Place:
        return self.places.get(self.get_listing(principal, listing_id).place_id)

    def listing_stats(self, principal: Principal) -> dict[str, int]:
        require(principal, Action.MODERATE)
        return {s.value: n for s, n in self.listings.count_by_status().items()}
