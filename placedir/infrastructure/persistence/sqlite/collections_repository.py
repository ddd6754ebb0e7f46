from sqlalchemy import text

from placedir.core.ports import CollectionsRepository

from .db import NOW_SQL, make_engine

ADD_FAVORITE_SQL = f"""
INSERT INTO favorites (user_id, place_id, created_at)
VALUES (:user_id, :place_id, {NOW_SQL})
ON CONFLICT(user_id, place_id) DO NOTHING
"""

# Moves an existing entry to the most-recent end instead of duplicating it.
APPEND_HISTORY_SQL = f"""
INSERT INTO history (user_id, place_id, seq, viewed_at)
VALUES (
    :user_id,
    :place_id,
    (SELECT COALESCE(MAX(seq), 0) + 1 FROM history WHERE user_id = :user_id),
    {NOW_SQL}
)
ON CONFLICT(user_id, place_id) DO UPDATE SET
    seq = excluded.seq,
    viewed_at = excluded.viewed_at
"""


class SQLiteCollectionsRepository(CollectionsRepository):
    def __init__(self, path: str = "places.db", engine=None):
        self.engine = engine if engine is not None else make_engine(path)

    def add_favorite(self, user_id: str, place_id: int) -> None:
        with self.engine.begin() as conn:
            conn.execute(text(ADD_FAVORITE_SQL), {"user_id": user_id, "place_id": place_id})

    def remove_favorite(self, user_id: str, place_id: int) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                text("DELETE FROM favorites WHERE user_id=:u AND place_id=:p"),
                {"u": user_id, "p": place_id},
            )

    def favorite_ids(self, user_id: str) -> list[int]:
        with self.engine.begin() as conn:
            rows = conn.execute(
                text(
                    "SELECT place_id FROM favorites WHERE user_id=:u "
                    "ORDER BY created_at DESC, rowid DESC"
                ),
                {"u": user_id},
            ).all()
        return [r[0] for r in rows]

    def append_history(self, user_id: str, place_id: int) -> None:
        with self.engine.begin() as conn:
            conn.execute(text(APPEND_HISTORY_SQL), {"user_id": user_id, "place_id": place_id})

    def clear_history(self, user_id: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(text("DELETE FROM history WHERE user_id=:u"), {"u": user_id})

    def history_ids(self, user_id: str) -> list[int]:
        with self.engine.begin() as conn:
            rows = conn.execute(
                text("SELECT place_id FROM history WHERE user_id=:u ORDER BY seq"),
                {"u": user_id},
            ).all()
        return [r[0] for r in rows]

    def forget_place(self, place_id: int) -> None:
        with self.engine.begin() as conn:
            conn.execute(text("DELETE FROM favorites WHERE place_id=:p"), {"p": place_id})
            conn.execute(text("DELETE FROM history WHERE place_id=:p"), {"p": place_id})

    def close(self):
        self.engine.dispose()
