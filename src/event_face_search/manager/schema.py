"""DuckDB schema definition."""

import duckdb


def ensure_schema(conn: duckdb.DuckDBPyConnection) -> None:
    """Create tables and indexes if they do not exist.

    Referential integrity (photo -> event, embedding -> photo) and cascades
    are enforced by the repositories inside a transaction, since DuckDB
    foreign keys support neither ON DELETE CASCADE nor deleting a parent and
    its children in the same transaction.
    """
    conn.execute("""
        CREATE TABLE IF NOT EXISTS events (
            id          VARCHAR PRIMARY KEY,
            name        VARCHAR NOT NULL,
            banner      VARCHAR,
            created_at  TIMESTAMP NOT NULL
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS photos (
            id          VARCHAR PRIMARY KEY,
            event_id    VARCHAR NOT NULL,
            url         VARCHAR NOT NULL,
            visibility  VARCHAR NOT NULL DEFAULT 'public'
                        CHECK (visibility IN ('public', 'private')),
            created_at  TIMESTAMP NOT NULL
        )
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_photos_event ON photos(event_id)")

    # face_embeddings table (1:N relationship with photos). event_id is
    # denormalized so matching scans a single event without a join.
    conn.execute("""
        CREATE TABLE IF NOT EXISTS face_embeddings (
            id            VARCHAR PRIMARY KEY,
            photo_id      VARCHAR NOT NULL,
            event_id      VARCHAR NOT NULL,
            embedding     DOUBLE[] NOT NULL,
            quality_hash  VARCHAR,
            created_at    TIMESTAMP DEFAULT current_timestamp
        )
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_face_photo_id ON face_embeddings(photo_id)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_face_event_id ON face_embeddings(event_id)")
