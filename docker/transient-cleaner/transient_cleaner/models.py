from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Optional, Protocol


LOGGER = logging.getLogger("transient_cleaner")

OPTIONS_TABLE = "options"
TRANSIENT_FAMILIES = (
    ("_transient_timeout_", "_transient_"),
    ("_site_transient_timeout_", "_site_transient_"),
)


class SettingsStore(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any) -> bool: ...

    def add(self, key: str, value: Any) -> bool: ...


class DataStore(Protocol):
    def ping(self) -> bool: ...

    def table_exists(self, name: str) -> bool: ...

    def delete_expired(self, *, timeout_prefix: str, value_prefix: str, now: int, batch_size: int) -> tuple[int, int]: ...

    def delete_matching(self, *, substring: str, batch_size: int) -> int: ...


def _connect(db_path: str, timeout: float = 5.0) -> sqlite3.Connection:
    return sqlite3.connect(db_path, timeout=timeout)


def init_db(db_path: str) -> None:
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    with _connect(db_path) as conn:
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {OPTIONS_TABLE} (
                option_id INTEGER PRIMARY KEY AUTOINCREMENT,
                option_name TEXT NOT NULL UNIQUE,
                option_value TEXT NOT NULL,
                autoload TEXT NOT NULL DEFAULT 'yes'
            )
            """
        )


def put_option(*, db_path: str, name: str, value: str, autoload: str = "yes") -> None:
    with _connect(db_path) as conn:
        conn.execute(
            f"""
            INSERT INTO {OPTIONS_TABLE} (option_name, option_value, autoload)
            VALUES (?, ?, ?)
            ON CONFLICT(option_name)
            DO UPDATE SET option_value=excluded.option_value
            """,
            (name, value, autoload),
        )


def put_transient(*, db_path: str, name: str, value: str, expires_at: int | None, site: bool = False) -> None:
    timeout_prefix, value_prefix = TRANSIENT_FAMILIES[1 if site else 0]
    put_option(db_path=db_path, name=f"{value_prefix}{name}", value=value, autoload="no" if expires_at else "yes")
    if expires_at:
        put_option(db_path=db_path, name=f"{timeout_prefix}{name}", value=str(int(expires_at)), autoload="no")


def list_option_names(db_path: str) -> list[str]:
    with _connect(db_path) as conn:
        cursor = conn.execute(f"SELECT option_name FROM {OPTIONS_TABLE} ORDER BY option_name")
        rows = cursor.fetchall()
    return [str(row[0]) for row in rows]


class SqliteSettingsStore:
    """JSON documents kept as rows of the options table."""

    def __init__(self, db_path: str, *, timeout: float = 5.0):
        self._db_path = db_path
        self._timeout = float(timeout)

    def get(self, key: str) -> Optional[Any]:
        with _connect(self._db_path, self._timeout) as conn:
            row = conn.execute(
                f"SELECT option_value FROM {OPTIONS_TABLE} WHERE option_name = ?",
                (key,),
            ).fetchone()
        if row is None:
            return None
        try:
            return json.loads(str(row[0]))
        except ValueError:
            LOGGER.warning("[CLEANER]: Stored option '%s' is not valid JSON", key)
            return None

    def set(self, key: str, value: Any) -> bool:
        try:
            with _connect(self._db_path, self._timeout) as conn:
                cursor = conn.execute(
                    f"UPDATE {OPTIONS_TABLE} SET option_value = ? WHERE option_name = ?",
                    (json.dumps(value), key),
                )
                return int(cursor.rowcount) > 0
        except sqlite3.Error:
            LOGGER.warning("[CLEANER]: Failed to update option '%s'", key, exc_info=True)
            return False

    def add(self, key: str, value: Any) -> bool:
        try:
            with _connect(self._db_path, self._timeout) as conn:
                cursor = conn.execute(
                    f"INSERT OR IGNORE INTO {OPTIONS_TABLE} (option_name, option_value) VALUES (?, ?)",
                    (key, json.dumps(value)),
                )
                return int(cursor.rowcount) > 0
        except sqlite3.Error:
            LOGGER.warning("[CLEANER]: Failed to add option '%s'", key, exc_info=True)
            return False


class SqliteDataStore:
    def __init__(self, db_path: str, *, timeout: float = 5.0):
        self._db_path = db_path
        self._timeout = float(timeout)

    def ping(self) -> bool:
        try:
            return self.table_exists(OPTIONS_TABLE)
        except sqlite3.Error:
            LOGGER.warning("[CLEANER]: Database connectivity probe failed", exc_info=True)
            return False

    def table_exists(self, name: str) -> bool:
        with _connect(self._db_path, self._timeout) as conn:
            row = conn.execute(
                "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
                (name,),
            ).fetchone()
        return row is not None

    def delete_expired(self, *, timeout_prefix: str, value_prefix: str, now: int, batch_size: int) -> tuple[int, int]:
        """Delete expiry rows older than ``now`` together with their value rows.

        Each batch removes the expiry rows and their companions in one
        transaction, so a value row never outlives its expiry row.
        """
        timeouts_removed = 0
        values_removed = 0
        while True:
            with _connect(self._db_path, self._timeout) as conn:
                rows = conn.execute(
                    f"""
                    SELECT option_id, substr(option_name, ?)
                    FROM {OPTIONS_TABLE}
                    WHERE substr(option_name, 1, ?) = ?
                      AND CAST(option_value AS INTEGER) < ?
                    LIMIT ?
                    """,
                    (len(timeout_prefix) + 1, len(timeout_prefix), timeout_prefix, int(now), int(batch_size)),
                ).fetchall()
                if not rows:
                    break

                for option_id, transient_name in rows:
                    cursor = conn.execute(
                        f"DELETE FROM {OPTIONS_TABLE} WHERE option_name = ?",
                        (f"{value_prefix}{transient_name}",),
                    )
                    values_removed += int(cursor.rowcount)
                    cursor = conn.execute(f"DELETE FROM {OPTIONS_TABLE} WHERE option_id = ?", (option_id,))
                    timeouts_removed += int(cursor.rowcount)

            if len(rows) < batch_size:
                break
        return timeouts_removed, values_removed

    def delete_matching(self, *, substring: str, batch_size: int) -> int:
        removed = 0
        while True:
            with _connect(self._db_path, self._timeout) as conn:
                cursor = conn.execute(
                    f"""
                    DELETE FROM {OPTIONS_TABLE}
                    WHERE option_id IN (
                        SELECT option_id FROM {OPTIONS_TABLE}
                        WHERE instr(option_name, ?) > 0
                        LIMIT ?
                    )
                    """,
                    (substring, int(batch_size)),
                )
                count = int(cursor.rowcount)
            removed += count
            if count < batch_size:
                break
        return removed
