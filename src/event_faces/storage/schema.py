"""DuckDB schema definition for the activity log."""

import duckdb


def ensure_schema(conn: duckdb.DuckDBPyConnection) -> None:
    """Create tables and indexes if they do not exist."""
    conn.execute("CREATE SEQUENCE IF NOT EXISTS system_log_id_seq START 1")
    conn.execute("""
        CREATE TABLE IF NOT EXISTS system_log (
            id          INTEGER PRIMARY KEY DEFAULT nextval('system_log_id_seq'),
            timestamp   TIMESTAMP DEFAULT current_timestamp,
            level       VARCHAR NOT NULL,
            module      VARCHAR NOT NULL,
            action      VARCHAR NOT NULL,
            user_id     VARCHAR,
            event_id    VARCHAR,
            ip_address  VARCHAR,
            details     JSON
        )
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_system_log_level ON system_log(level)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_system_log_module ON system_log(module)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_system_log_event ON system_log(event_id)")
