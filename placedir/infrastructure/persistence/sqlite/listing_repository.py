from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import text

from placedir.core.entities import Listing, ListingStatus
from placedir.core.errors import ConflictError, NotFound
from placedir.core.ports import ListingRepository

from .db import NOW_SQL, make_engine

COLUMNS = (
    "id,place_id,owner_id,status,title,description,admin_note,target_place_id,"
    "version,created_at,updated_at"
)

INSERT_SQL = f"""
INSERT INTO listings (place_id, owner_id, status, title, description, target_place_id,
    version, created_at, updated_at)
VALUES (:place_id, :owner_id, :status, :title, :description, :target_place_id,
    0, {NOW_SQL}, {NOW_SQL})
"""

SELECT_ONE_SQL = f"SELECT {COLUMNS} FROM listings WHERE id=:id;"

SELECT_BY_OWNER_SQL = f"""
SELECT {COLUMNS}
FROM listings
WHERE owner_id = :owner_id
ORDER BY created_at DESC, id DESC;
"""

SELECT_ALL_SQL = f"""
SELECT {COLUMNS}
FROM listings
WHERE (:status IS NULL OR status = :status)
ORDER BY created_at DESC, id DESC;
"""

MUTABLE_COLUMNS = ("status", "admin_note", "title", "description", "place_id")


class SQLiteListingRepository(ListingRepository):
    logger = logging.getLogger(__name__)

    def __init__(self, path: str = "places.db", engine=None):
        self.engine = engine if engine is not None else make_engine(path)

    @staticmethod
    def _row_to_listing(row) -> Listing:
        d = dict(row._mapping)
        d["status"] = ListingStatus(d["status"])
        return Listing(**d)

    def _get(self, conn, listing_id: int) -> Listing:
        row = conn.execute(text(SELECT_ONE_SQL), {"id": listing_id}).one_or_none()
        if not row:
            raise NotFound(f"listing {listing_id} does not exist")
        return self._row_to_listing(row)

    def add(
        self,
        *,
        place_id: int,
        owner_id: str,
        title: str,
        description: str,
        target_place_id: int | None = None,
    ) -> Listing:
        with self.engine.begin() as conn:
            result = conn.execute(
                text(INSERT_SQL),
                {
                    "place_id": place_id,
                    "owner_id": owner_id,
                    "status": ListingStatus.PENDING.value,
                    "title": title,
                    "description": description,
                    "target_place_id": target_place_id,
                },
            )
            return self._get(conn, result.lastrowid)

    def get(self, listing_id: int) -> Listing:
        with self.engine.begin() as conn:
            return self._get(conn, listing_id)

    def list_by_owner(self, owner_id: str) -> list[Listing]:
        with self.engine.begin() as conn:
            rows = conn.execute(text(SELECT_BY_OWNER_SQL), {"owner_id": owner_id}).all()
        return [self._row_to_listing(r) for r in rows]

    def list_all(self, status: ListingStatus | None = None) -> list[Listing]:
        with self.engine.begin() as conn:
            rows = conn.execute(
                text(SELECT_ALL_SQL), {"status": status.value if status else None}
            ).all()
        return [self._row_to_listing(r) for r in rows]

    def _stale(self, conn, listing: Listing) -> ConflictError:
        current = self._get(conn, listing.id)  # raises NotFound when deleted meanwhile
        return ConflictError(
            f"listing {listing.id} changed concurrently "
            f"(expected {listing.status.value} v{listing.version}, "
            f"found {current.status.value} v{current.version})"
        )

    def compare_and_set(self, listing: Listing, **changes: Any) -> Listing:
        """
        Apply ``changes`` only if the stored listing still has the status and
        version of ``listing``; bumps the version.
        """
        unknown = set(changes) - set(MUTABLE_COLUMNS)
        if unknown:
            raise ValueError(f"cannot update listing columns {sorted(unknown)}")
        params: dict[str, Any] = {
            "id": listing.id,
            "expected_status": listing.status.value,
            "expected_version": listing.version,
        }
        sets = []
        for col, value in changes.items():
            params[col] = value.value if isinstance(value, ListingStatus) else value
            sets.append(f"{col} = :{col}")
        sets.append("version = version + 1")
        sets.append(f"updated_at = {NOW_SQL}")
        sql = (
            f"UPDATE listings SET {', '.join(sets)} "
            "WHERE id = :id AND status = :expected_status AND version = :expected_version"
        )
        with self.engine.begin() as conn:
            result = conn.execute(text(sql), params)
            if result.rowcount == 0:
                raise self._stale(conn, listing)
            return self._get(conn, listing.id)

    def delete_if_current(self, listing: Listing) -> None:
        with self.engine.begin() as conn:
            result = conn.execute(
                text(
                    "DELETE FROM listings "
                    "WHERE id = :id AND status = :status AND version = :version"
                ),
                {"id": listing.id, "status": listing.status.value, "version": listing.version},
            )
            if result.rowcount == 0:
                raise self._stale(conn, listing)

    def count_by_status(self) -> dict[ListingStatus, int]:
        counts = {s: 0 for s in ListingStatus}
        with self.engine.begin() as conn:
            rows = conn.execute(
                text("SELECT status, COUNT(*) FROM listings GROUP BY status")
            ).all()
        for status, n in rows:
            counts[ListingStatus(status)] = n
        return counts

    def count_referencing(self, place_id: int, *, exclude_id: int | None = None) -> int:
        with self.engine.begin() as conn:
            return conn.execute(
                text(
                    "SELECT COUNT(*) FROM listings "
                    "WHERE (place_id = :p OR target_place_id = :p) "
                    "AND (:exclude IS NULL OR id != :exclude)"
                ),
                {"p": place_id, "exclude": exclude_id},
            ).scalar_one()

    def close(self):
        self.engine.dispose()
