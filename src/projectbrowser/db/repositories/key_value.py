import json
import time
from typing import Any, Callable, Dict, Iterable, Optional


class KeyValueStore:
    """Durable key/value storage scoped to one collection.

    Values are JSON encoded. Entries written with ``expire`` stop being
    visible once that many seconds have passed.
    """

    def __init__(
        self,
        manager,
        collection: str,
        time_source: Callable[[], float] = time.time,
    ):
        self.manager = manager
        self.collection = collection
        self.time_source = time_source

    def _now(self) -> int:
        return int(self.time_source())

    def _live_clause(self) -> str:
        p = self.manager.placeholder
        return f"(expire IS NULL OR expire > {p})"

    def _expire_at(self, expire: Optional[int]) -> Optional[int]:
        return self._now() + int(expire) if expire else None

    def get(self, name: str, default: Any = None) -> Any:
        p = self.manager.placeholder
        conn = self.manager.get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT value FROM key_value WHERE collection = {p} AND name = {p} AND {self._live_clause()}",
                (self.collection, name, self._now()),
            )
            row = cursor.fetchone()
            return json.loads(dict(row)["value"]) if row else default
        finally:
            conn.close()

    def get_multiple(self, names: Iterable[str]) -> Dict[str, Any]:
        names = list(names)
        if not names:
            return {}
        p = self.manager.placeholder
        in_clause = ", ".join([p] * len(names))
        conn = self.manager.get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT name, value FROM key_value WHERE collection = {p} AND name IN ({in_clause}) AND {self._live_clause()}",
                (self.collection, *names, self._now()),
            )
            return {
                dict(row)["name"]: json.loads(dict(row)["value"])
                for row in cursor.fetchall()
            }
        finally:
            conn.close()

    def get_all(self) -> Dict[str, Any]:
        p = self.manager.placeholder
        conn = self.manager.get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT name, value FROM key_value WHERE collection = {p} AND {self._live_clause()} ORDER BY name",
                (self.collection, self._now()),
            )
            return {
                dict(row)["name"]: json.loads(dict(row)["value"])
                for row in cursor.fetchall()
            }
        finally:
            conn.close()

    def has(self, name: str) -> bool:
        p = self.manager.placeholder
        conn = self.manager.get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT 1 FROM key_value WHERE collection = {p} AND name = {p} AND {self._live_clause()}",
                (self.collection, name, self._now()),
            )
            return cursor.fetchone() is not None
        finally:
            conn.close()

    def set(self, name: str, value: Any, expire: Optional[int] = None):
        self.set_multiple({name: value}, expire=expire)

    def set_multiple(self, data: Dict[str, Any], expire: Optional[int] = None):
        if not data:
            return
        p = self.manager.placeholder
        expire_at = self._expire_at(expire)
        conn = self.manager.get_connection()
        try:
            cursor = conn.cursor()
            for name, value in data.items():
                cursor.execute(
                    f"""
                    INSERT INTO key_value (collection, name, value, expire, updated_at)
                    VALUES ({p}, {p}, {p}, {p}, CURRENT_TIMESTAMP)
                    ON CONFLICT (collection, name) DO UPDATE SET
                        value = EXCLUDED.value,
                        expire = EXCLUDED.expire,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    (self.collection, name, json.dumps(value), expire_at),
                )
            conn.commit()
        finally:
            conn.close()

    def set_if_not_exists(
        self, name: str, value: Any, expire: Optional[int] = None
    ) -> bool:
        """Insert ``value`` unless a live entry already exists.

        Returns True when this call wrote the entry.
        """
        p = self.manager.placeholder
        conn = self.manager.get_connection()
        try:
            cursor = conn.cursor()
            # An expired row still occupies the primary key.
            cursor.execute(
                f"DELETE FROM key_value WHERE collection = {p} AND name = {p} AND expire IS NOT NULL AND expire <= {p}",
                (self.collection, name, self._now()),
            )
            cursor.execute(
                f"""
                INSERT INTO key_value (collection, name, value, expire, updated_at)
                VALUES ({p}, {p}, {p}, {p}, CURRENT_TIMESTAMP)
                ON CONFLICT (collection, name) DO NOTHING
                """,
                (self.collection, name, json.dumps(value), self._expire_at(expire)),
            )
            inserted = cursor.rowcount == 1
            conn.commit()
            return inserted
        finally:
            conn.close()

    def delete(self, name: str):
        self.delete_multiple([name])

    def delete_multiple(self, names: Iterable[str]):
        names = list(names)
        if not names:
            return
        p = self.manager.placeholder
        in_clause = ", ".join([p] * len(names))
        conn = self.manager.get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                f"DELETE FROM key_value WHERE collection = {p} AND name IN ({in_clause})",
                (self.collection, *names),
            )
            conn.commit()
        finally:
            conn.close()

    def delete_all(self):
        """Drop every entry of this collection in a single statement."""
        p = self.manager.placeholder
        conn = self.manager.get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                f"DELETE FROM key_value WHERE collection = {p}", (self.collection,)
            )
            conn.commit()
        finally:
            conn.close()


class KeyValueFactory:
    def __init__(self, manager, time_source: Callable[[], float] = time.time):
        self.manager = manager
        self.time_source = time_source

    def get(self, collection: str) -> KeyValueStore:
        return KeyValueStore(self.manager, collection, time_source=self.time_source)

