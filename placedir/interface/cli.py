import argparse
import json
import logging
import sys

from placedir.app.use_cases.import_places import ImportPlacesUseCase
from placedir.app.use_cases.listing_lifecycle import ListingLifecycleUseCase
from placedir.app.use_cases.search_places import SearchPlacesUseCase, SearchQuery
from placedir.core.entities import Principal, Role
from placedir.core.errors import PlaceDirectoryError
from placedir.infrastructure.persistence.sqlite.collections_repository import (
    SQLiteCollectionsRepository,
)
from placedir.infrastructure.persistence.sqlite.db import make_engine
from placedir.infrastructure.persistence.sqlite.listing_repository import SQLiteListingRepository
from placedir.infrastructure.persistence.sqlite.place_repository import SQLitePlaceRepository
from placedir.infrastructure.providers.places.client import PlacesV1Client
from placedir.utils.config import Settings
from placedir.utils.logging import setup_logging

logger = logging.getLogger(__name__)


def build_container(dbpath: str):
    engine = make_engine(dbpath)
    places = SQLitePlaceRepository(engine=engine)
    listings = SQLiteListingRepository(engine=engine)
    collections = SQLiteCollectionsRepository(engine=engine)
    return engine, places, listings, collections


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Place directory: ingestion, search and moderation")
    ap.add_argument("--dbpath", default=settings.db_path)
    sub = ap.add_subparsers(dest="cmd", required=True)

    p1 = sub.add_parser("collect-text")
    p1.add_argument("--query", required=True)
    p1.add_argument("--location", default=None, help="lat,lng")
    p1.add_argument("--radius", type=int, default=None)
    p1.add_argument("--types", default="")
    p1.add_argument("--max", type=int, default=120)

    p2 = sub.add_parser("collect-nearby")
    p2.add_argument("--location", required=True, help="lat,lng")
    p2.add_argument("--radius", type=int, required=True)
    p2.add_argument("--types", required=True)
    p2.add_argument("--cell-radius", type=int, default=600)
    p2.add_argument("--max", type=int, default=1000)

    p3 = sub.add_parser("search")
    p3.add_argument("--city", default=None)
    p3.add_argument("--price-level", default=None)
    p3.add_argument("--sort-by", default="default", choices=["default", "nearest", "highRating"])
    p3.add_argument("--origin", default=None, help="lat,lng")
    p3.add_argument("--radius", default=None, help="meters")
    p3.add_argument("--limit", type=int, default=20)

    for name in ("listings", "moderate"):
        p = sub.add_parser(name)
        p.add_argument("--user-id", required=True)
        p.add_argument("--role", choices=[r.value for r in Role], default=Role.ADMIN.value)
        if name == "listings":
            p.add_argument("--status", default=None, choices=["pending", "accepted", "rejected"])
            p.add_argument("--mine", action="store_true")
        else:
            p.add_argument("listing_id", type=int)
            p.add_argument("decision", choices=["accept", "reject"])
            p.add_argument("--note", default=None)
    return ap


def _types(raw: str) -> list[str]:
    return [t.strip() for t in (raw or "").split(",") if t.strip()]


def run(args, settings: Settings, places, listings, collections) -> None:
    if args.cmd in ("collect-text", "collect-nearby"):
        uc = ImportPlacesUseCase(places, PlacesV1Client(), settings.default_city)
        if args.cmd == "collect-text":
            report = uc.run_text(
                query=args.query,
                location=args.location,
                radius_m=args.radius,
                types=_types(args.types),
                max_results=args.max,
            )
        else:
            lat, lng = map(float, args.location.split(","))
            report = uc.run_nearby_grid(
                center_lat=lat,
                center_lng=lng,
                radius_m=args.radius,
                types=_types(args.types),
                cell_radius_m=args.cell_radius,
                overall_max=args.max,
            )
        for p in report.saved:
            print(f"OK: {p.name} | {p.city} | {p.website or '-'}")

    elif args.cmd == "search":
        params = {
            "city": args.city,
            "priceLevel": args.price_level,
            "sortBy": args.sort_by,
            "radius": args.radius,
        }
        if args.origin:
            lat, lng = args.origin.split(",")
            params["origin"] = {"lat": lat, "lng": lng}
        results = SearchPlacesUseCase(places).search(SearchQuery.from_params(params))
        for i, place in enumerate(results):
            if i >= args.limit:
                break
            print(json.dumps(place.to_dict(), ensure_ascii=False))

    elif args.cmd == "listings":
        principal = Principal(id=args.user_id, role=Role(args.role))
        uc = ListingLifecycleUseCase(places, listings, collections)
        rows = uc.my_listings(principal) if args.mine else uc.all_listings(principal, args.status)
        for listing in rows:
            note = f" ({listing.admin_note})" if listing.admin_note else ""
            print(f"{listing.id}\t{listing.status.value}\t{listing.owner_id}\t{listing.title}{note}")

    elif args.cmd == "moderate":
        principal = Principal(id=args.user_id, role=Role(args.role))
        uc = ListingLifecycleUseCase(places, listings, collections)
        if args.decision == "accept":
            listing = uc.accept(principal, args.listing_id)
        else:
            listing = uc.reject(principal, args.listing_id, args.note or "")
        print(f"{listing.id} -> {listing.status.value}")


def main(argv=None):
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    args = build_parser(settings).parse_args(argv)

    engine, places, listings, collections = build_container(args.dbpath)
    try:
        run(args, settings, places, listings, collections)
    except PlaceDirectoryError as e:
        logger.error("%s", e)
        sys.exit(1)
    finally:
        engine.dispose()


if __name__ == "__main__":
    main()
