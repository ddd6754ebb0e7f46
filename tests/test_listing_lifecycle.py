import pytest

from placedir.app.use_cases.search_places import SearchQuery
from placedir.core.entities import ListingStatus
from placedir.core.errors import ConflictError, Forbidden, NotFound, ValidationError


def search_ids(search):
    return [p.id for p in search.search(SearchQuery())]


@pytest.fixture
def pending(lifecycle, owner, make_data):
    return lifecycle.submit(owner, title="New spot", description="Fresh fish", place=make_data())


def test_submit_creates_pending_draft(lifecycle, places, search, pending, owner):
    assert pending.status is ListingStatus.PENDING
    assert pending.owner_id == owner.id
    assert pending.admin_note is None
    draft = places.get(pending.place_id)
    assert draft.published is False
    assert search_ids(search) == []
    assert lifecycle.my_listings(owner) == [pending]


def test_admin_can_submit(lifecycle, admin, make_data):
    assert lifecycle.submit(admin, place=make_data()).status is ListingStatus.PENDING


def test_user_cannot_submit(lifecycle, user, make_data):
    with pytest.raises(Forbidden):
        lifecycle.submit(user, place=make_data())


def test_submit_needs_place(lifecycle, owner):
    with pytest.raises(ValidationError):
        lifecycle.submit(owner, title="empty")


def test_invalid_submission_writes_nothing(lifecycle, listings, places, owner, make_data):
    with pytest.raises(ValidationError):
        lifecycle.submit(owner, place=make_data(priceLevel=9))
    with pytest.raises(ValidationError):
        lifecycle.submit(owner, place=make_data(externalId="g-1"))
    assert listings.list_all() == []
    assert list(places.iter_all(published_only=False)) == []


def test_submit_reference_to_missing_place(lifecycle, owner):
    with pytest.raises(NotFound):
        lifecycle.submit(owner, place_id=999)


def test_accept_publishes_place(lifecycle, search, pending, admin):
    accepted = lifecycle.accept(admin, pending.id)
    assert accepted.status is ListingStatus.ACCEPTED
    assert accepted.version == pending.version + 1
    assert search_ids(search) == [pending.place_id]


@pytest.mark.parametrize("role_fixture", ["owner", "user"])
def test_only_admin_moderates(request, lifecycle, pending, role_fixture):
    principal = request.getfixturevalue(role_fixture)
    with pytest.raises(Forbidden):
        lifecycle.accept(principal, pending.id)
    with pytest.raises(Forbidden):
        lifecycle.reject(principal, pending.id, "no")


def test_reject_requires_note(lifecycle, listings, pending, admin):
    for note in (None, "", "   "):
        with pytest.raises(ValidationError):
            lifecycle.transition(admin, pending.id, "rejected", note)
    assert listings.get(pending.id).status is ListingStatus.PENDING


def test_unknown_status(lifecycle, pending, admin):
    with pytest.raises(ValidationError):
        lifecycle.transition(admin, pending.id, "archived")


def test_rejected_cannot_be_accepted_directly(lifecycle, search, pending, admin):
    lifecycle.reject(admin, pending.id, "duplicate")
    with pytest.raises(Forbidden):
        lifecycle.accept(admin, pending.id)
    assert search_ids(search) == []


def test_accepted_cannot_be_rejected(lifecycle, pending, admin):
    lifecycle.accept(admin, pending.id)
    with pytest.raises(Forbidden):
        lifecycle.reject(admin, pending.id, "changed my mind")


def test_reject_then_owner_delete(lifecycle, places, published, owner, admin):
    place_a = published(name="A")
    listing = lifecycle.submit(owner, title="A", place_id=place_a.id)
    assert listing.status is ListingStatus.PENDING

    rejected = lifecycle.reject(admin, listing.id, "duplicate")
    assert rejected.status is ListingStatus.REJECTED
    assert rejected.admin_note == "duplicate"

    lifecycle.delete_own(owner, listing.id)
    assert lifecycle.my_listings(owner) == []
    with pytest.raises(NotFound):
        places.get(listing.place_id)
    assert places.get(place_a.id) == place_a


def test_owner_delete_rules(lifecycle, pending, owner, other_owner, admin, make_data):
    with pytest.raises(Forbidden):
        lifecycle.delete_own(other_owner, pending.id)

    lifecycle.delete_own(owner, pending.id)
    assert lifecycle.my_listings(owner) == []

    accepted = lifecycle.submit(owner, place=make_data())
    lifecycle.accept(admin, accepted.id)
    with pytest.raises(Forbidden):
        lifecycle.delete_own(owner, accepted.id)


def test_accept_merges_into_target_place(lifecycle, places, search, published, owner, admin):
    target = published(name="Old name", phone=None)
    listing = lifecycle.submit(owner, place_id=target.id, place={"name": "New name", "phone": "555"})
    draft_id = listing.place_id
    assert places.get(target.id).name == "Old name"

    accepted = lifecycle.accept(admin, listing.id)
    assert accepted.place_id == target.id
    merged = places.get(target.id)
    assert (merged.name, merged.phone) == ("New name", "555")
    with pytest.raises(NotFound):
        places.get(draft_id)
    assert search_ids(search) == [target.id]


def test_losing_moderation_race_gets_conflict(
    lifecycle, listings, places, pending, admin, monkeypatch
):
    stale = listings.get(pending.id)
    lifecycle.accept(admin, pending.id)

    # second moderator still holds the pre-acceptance snapshot
    monkeypatch.setattr(listings, "get", lambda listing_id: stale)
    with pytest.raises(ConflictError):
        lifecycle.reject(admin, pending.id, "late")
    monkeypatch.undo()

    assert listings.get(pending.id).status is ListingStatus.ACCEPTED
    assert places.get(pending.place_id).published is True


def test_compare_and_set_rejects_stale_version(listings, pending):
    listings.compare_and_set(pending, title="first")
    with pytest.raises(ConflictError):
        listings.compare_and_set(pending, title="second")
    assert listings.get(pending.id).title == "first"


def test_owner_edit_keeps_rejected_status(lifecycle, places, pending, owner, admin):
    lifecycle.reject(admin, pending.id, "missing phone")
    edited = lifecycle.update_own(owner, pending.id, title="Fixed", place={"phone": "123"})
    assert edited.status is ListingStatus.REJECTED
    assert edited.admin_note == "missing phone"
    assert edited.title == "Fixed"
    assert places.get(pending.place_id).phone == "123"


def test_owner_edit_rules(lifecycle, pending, owner, other_owner, admin):
    with pytest.raises(Forbidden):
        lifecycle.update_own(other_owner, pending.id, title="mine now")
    lifecycle.accept(admin, pending.id)
    with pytest.raises(Forbidden):
        lifecycle.update_own(owner, pending.id, title="too late")


def test_invalid_owner_edit_is_not_applied(lifecycle, listings, places, pending, owner):
    with pytest.raises(ValidationError):
        lifecycle.update_own(owner, pending.id, title="Renamed", place={"priceLevel": 0})
    assert listings.get(pending.id).title == "New spot"
    assert places.get(pending.place_id).price_level == 2


def test_resubmit_creates_new_pending_listing(lifecycle, places, pending, owner, other_owner, admin):
    with pytest.raises(Forbidden):
        lifecycle.resubmit(owner, pending.id)

    lifecycle.reject(admin, pending.id, "blurry")
    with pytest.raises(Forbidden):
        lifecycle.resubmit(other_owner, pending.id)

    fresh = lifecycle.resubmit(owner, pending.id, place={"website": "https://fish.example"})
    assert fresh.id != pending.id
    assert fresh.status is ListingStatus.PENDING
    assert fresh.title == pending.title
    assert fresh.place_id != pending.place_id
    assert places.get(fresh.place_id).website == "https://fish.example"
    assert lifecycle.get_listing(owner, pending.id).status is ListingStatus.REJECTED


def test_admin_update_routes_status_through_transition(lifecycle, pending, admin):
    rejected = lifecycle.admin_update(admin, pending.id, status="rejected", admin_note="closed")
    assert rejected.status is ListingStatus.REJECTED
    assert rejected.admin_note == "closed"
    with pytest.raises(Forbidden):
        lifecycle.admin_update(admin, pending.id, status="accepted")


def test_admin_update_fields(lifecycle, places, pending, admin, owner):
    lifecycle.accept(admin, pending.id)
    updated = lifecycle.admin_update(admin, pending.id, title="Curated", place={"priceLevel": 3})
    assert updated.title == "Curated"
    assert places.get(pending.place_id).price_level == 3
    with pytest.raises(ValidationError):
        lifecycle.admin_update(admin, pending.id, admin_note="only for rejected")
    with pytest.raises(Forbidden):
        lifecycle.admin_update(owner, pending.id, title="nope")


def test_admin_delete_removes_orphaned_place(lifecycle, places, pending, admin, owner):
    lifecycle.accept(admin, pending.id)
    with pytest.raises(Forbidden):
        lifecycle.admin_delete(owner, pending.id)
    lifecycle.admin_delete(admin, pending.id)
    with pytest.raises(NotFound):
        lifecycle.get_listing(admin, pending.id)
    with pytest.raises(NotFound):
        places.get(pending.place_id)


def test_admin_delete_keeps_merged_target(lifecycle, places, published, owner, admin):
    target = published()
    listing = lifecycle.submit(owner, place_id=target.id, place={"phone": "1"})
    lifecycle.accept(admin, listing.id)
    lifecycle.admin_delete(admin, listing.id)
    assert places.get(target.id).phone == "1"


def test_read_paths(lifecycle, pending, owner, other_owner, admin, make_data):
    other = lifecycle.submit(other_owner, place=make_data(name="Other"))
    lifecycle.reject(admin, other.id, "spam")

    assert [l.id for l in lifecycle.my_listings(other_owner)] == [other.id]
    assert {l.id for l in lifecycle.all_listings(admin)} == {pending.id, other.id}
    assert [l.id for l in lifecycle.all_listings(admin, "rejected")] == [other.id]
    with pytest.raises(Forbidden):
        lifecycle.all_listings(owner)

    assert lifecycle.get_listing(admin, pending.id).id == pending.id
    with pytest.raises(Forbidden):
        lifecycle.get_listing(other_owner, pending.id)
    assert lifecycle.listing_place(owner, pending.id).id == pending.place_id

    assert lifecycle.listing_stats(admin) == {"pending": 1, "accepted": 0, "rejected": 1}
    with pytest.raises(Forbidden):
        lifecycle.listing_stats(owner)


def test_draft_cannot_be_referenced_by_another_listing(
    lifecycle, places, listings, pending, owner, other_owner, admin
):
    for principal in (other_owner, owner, admin):
        with pytest.raises(NotFound):
            lifecycle.submit(principal, title="copy", place_id=pending.place_id)
    assert [l.id for l in listings.list_all()] == [pending.id]
    assert listings.count_referencing(pending.place_id) == 1

    with pytest.raises(Forbidden):
        lifecycle.listing_place(other_owner, pending.id)

    # the owner can still drop the draft; nothing else keeps it alive
    lifecycle.delete_own(owner, pending.id)
    with pytest.raises(NotFound):
        places.get(pending.place_id)
    assert list(places.iter_all(published_only=False)) == []


def test_rejected_draft_cannot_be_referenced(lifecycle, search, pending, other_owner, admin):
    lifecycle.reject(admin, pending.id, "duplicate")
    with pytest.raises(NotFound):
        lifecycle.submit(other_owner, place_id=pending.place_id, place={"name": "Mine"})
    assert search_ids(search) == []
