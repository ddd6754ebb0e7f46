# placedir/infrastructure/persistence/sqlite/db.py
from sqlalchemy import create_engine, text

SCHEMA_SQL = [
    """
    CREATE TABLE IF NOT EXISTS places (
        id               INTEGER PRIMARY KEY AUTOINCREMENT,
        external_id      TEXT UNIQUE,
        name             TEXT NOT NULL,
        city             TEXT NOT NULL,
        category         TEXT NOT NULL,
        price_level      INTEGER NOT NULL,
        ratings_average  REAL NOT NULL,
        ratings_quantity INTEGER NOT NULL,
        address          TEXT,
        phone            TEXT,
        website          TEXT,
        lat              REAL NOT NULL,
        lng              REAL NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS listings (
        id              INTEGER PRIMARY KEY AUTOINCREMENT,
        place_id        INTEGER NOT NULL,
        owner_id        TEXT NOT NULL,
        status          TEXT NOT NULL,
        title           TEXT NOT NULL DEFAULT '',
        description     TEXT NOT NULL DEFAULT '',
        admin_note      TEXT,
        target_place_id INTEGER
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS favorites (
        user_id    TEXT NOT NULL,
        place_id   INTEGER NOT NULL,
        created_at TEXT NOT NULL,
        PRIMARY KEY (user_id, place_id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS history (
        user_id   TEXT NOT NULL,
        place_id  INTEGER NOT NULL,
        seq       INTEGER NOT NULL,
        viewed_at TEXT NOT NULL,
        PRIMARY KEY (user_id, place_id)
    );
    """,
]

NOW_SQL = "strftime('%Y-%m-%d %H:%M:%f', 'now')"

MIGRATIONS = {
    "places": [
        ("published", "ALTER TABLE places ADD COLUMN published INTEGER NOT NULL DEFAULT 0;"),
        ("created_at", "ALTER TABLE places ADD COLUMN created_at TEXT;"),
        ("updated_at", "ALTER TABLE places ADD COLUMN updated_at TEXT;"),
    ],
    "listings": [
        ("version", "ALTER TABLE listings ADD COLUMN version INTEGER NOT NULL DEFAULT 0;"),
        ("created_at", "ALTER TABLE listings ADD COLUMN created_at TEXT;"),
        ("updated_at", "ALTER TABLE listings ADD COLUMN updated_at TEXT;"),
    ],
}

INDEXES = [
    # geospatial lookups: bounding-box range scans
    "CREATE INDEX IF NOT EXISTS idx_places_lat_lng ON places(lat, lng);",
    "CREATE INDEX IF NOT EXISTS idx_places_created ON places(created_at, id);",
    "CREATE INDEX IF NOT EXISTS idx_places_city ON places(city);",
    "CREATE INDEX IF NOT EXISTS idx_listings_owner ON listings(owner_id);",
    "CREATE INDEX IF NOT EXISTS idx_listings_place ON listings(place_id);",
    "CREATE INDEX IF NOT EXISTS idx_history_seq ON history(user_id, seq);",
]


def make_engine(path: str = "places.db"):
    engine = create_engine(f"sqlite:///{path}", future=True)
    with engine.begin() as conn:
        for sql in SCHEMA_SQL:
            conn.execute(text(sql))

        # Add missing columns; defaults must be constants, not expressions
        for table, migrations in MIGRATIONS.items():
            cols = {row[1] for row in conn.execute(text(f"PRAGMA table_info('{table}');")).all()}
            for col, sql in migrations:
                if col not in cols:
                    conn.execute(text(sql))
                    if col in ("created_at", "updated_at"):
                        # one-time backfill
                        conn.execute(
                            text(f"UPDATE {table} SET {col} = {NOW_SQL} WHERE {col} IS NULL;")
                        )

        for sql in INDEXES:
            conn.execute(text(sql))

    return engine
