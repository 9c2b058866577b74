import os
import sqlite3
from urllib.parse import urlparse

import psycopg2
from psycopg2.extras import RealDictCursor


class DatabaseManager:
    def __init__(self, db_url: str):
        self.db_url = db_url
        self.parsed_url = urlparse(db_url)
        self.db_type = self.parsed_url.scheme

    @property
    def placeholder(self) -> str:
        return "?" if self.db_type == "sqlite" else "%s"

    def get_connection(self):
        """Get a raw database connection."""
        if self.db_type == 'sqlite':
            # Remove 'sqlite:///' or 'sqlite://' prefix
            path = self.db_url.replace('sqlite:///', '').replace('sqlite://', '')
            if path != ":memory:":
                directory = os.path.dirname(path)
                if directory:
                    os.makedirs(directory, exist_ok=True)
            conn = sqlite3.connect(path)
            conn.row_factory = sqlite3.Row  # Access columns by name
            return conn
        elif self.db_type == 'postgresql' or self.db_type == 'postgres':
            return psycopg2.connect(self.db_url, cursor_factory=RealDictCursor)
        else:
            raise ValueError(f"Unsupported database type: {self.db_type}")

    def execute_script(self, script: str):
        """Execute a raw SQL script."""
        conn = self.get_connection()
        try:
            cursor = conn.cursor()
            cursor.executescript(script) if self.db_type == 'sqlite' else cursor.execute(script)
            conn.commit()
        finally:
            conn.close()

    def init_db(self):
        """Create the schema if it does not exist yet."""
        self.execute_script(self._create_script(if_not_exists=True))

    def reset_db(self):
        """Reset the database by dropping and recreating all tables."""
        drop_script = """
        DROP TABLE IF EXISTS key_value;
        """
        self.execute_script(drop_script + self._create_script(if_not_exists=False))

    def _create_script(self, if_not_exists: bool) -> str:
        guard = "IF NOT EXISTS " if if_not_exists else ""
        # value holds JSON text; expire is a unix timestamp or NULL.
        return f"""
        CREATE TABLE {guard}key_value (
            collection TEXT NOT NULL,
            name TEXT NOT NULL,
            value TEXT NOT NULL,
            expire BIGINT,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (collection, name)
        );
        """
