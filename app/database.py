# database.py

import sqlite3
import threading
from dataclasses import dataclass
from sqlite3 import connect, Connection
from typing import Iterable, Optional, Protocol

from app.errors import NotFound, StoreError, ValidationFailure
from app.logger import log_info, log_error

# Writable columns per table; "id" is always store-assigned
TABLE_COLUMNS = {
    "items": ("item_name", "price", "stock", "created_at"),
    "users": ("username",),
    "orders": ("user_id", "item_id", "stock_number"),
}

RECORD_KINDS = {"items": "item", "users": "user", "orders": "order"}


# Establish database connection
def create_connection(db_file: str) -> Connection:
    """ Create a database connection to the SQLite database specified by db_file. """
    try:
        conn = connect(db_file, check_same_thread=False)
    except sqlite3.Error as e:
        log_error(f"Error connecting to database {db_file}: {e}")
        raise StoreError(f"Could not open database {db_file}") from e
    # rows come back addressable by column name
    conn.row_factory = sqlite3.Row
    log_info(f"Connected to database: {db_file}")
    return conn

# Create tables if they don't exist
def create_tables(conn: Connection):
    """ Create tables for items, users and orders. """
    try:
        cursor = conn.cursor()
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                item_name TEXT NOT NULL,
                price REAL NOT NULL,
                stock INTEGER NOT NULL,
                created_at TEXT NOT NULL
            )
            """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                username TEXT NOT NULL
            )
            """
        )

        # user_id and item_id are checked by the fulfillment workflows, not by foreign keys
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS orders (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                item_id INTEGER NOT NULL,
                stock_number INTEGER NOT NULL
            )
            """
        )
        conn.commit()
        log_info("Tables created successfully.")
    except sqlite3.Error as e:
        conn.rollback()
        log_error(f"Error creating tables: {e}")
        raise StoreError("Could not create tables") from e


class RecordStore(Protocol):
    """ Capabilities the workflows need from a store of one record kind. """

    def create(self, fields: dict) -> dict: ...
    def find(self, where: Optional[dict] = None) -> list[dict]: ...
    def find_by_id(self, record_id: int) -> dict: ...
    def update_by_id(self, record_id: int, fields: dict, expected: Optional[dict] = None) -> bool: ...
    def replace_by_id(self, record_id: int, fields: dict) -> None: ...
    def update_all(self, fields: dict, ids: Optional[Iterable[int]] = None) -> int: ...
    def delete_by_id(self, record_id: int) -> None: ...
    def count(self, where: Optional[dict] = None) -> int: ...


class SqliteRecordStore:
    """
    Generic CRUD over one table of a shared SQLite connection.

    Every write is committed on its own; a failed statement is rolled back and
    surfaces as StoreError. Records are plain dicts keyed by column name.
    """

    def __init__(self, conn: Connection, table: str, lock: Optional[threading.RLock] = None):
        if table not in TABLE_COLUMNS:
            raise ValueError(f"Unknown table: {table}")
        self.conn = conn
        self.table = table
        self.kind = RECORD_KINDS[table]
        self.columns = TABLE_COLUMNS[table]
        # the connection is shared between request threads
        self._lock = lock or threading.RLock()

    def _check_columns(self, names: Iterable[str], allow_id: bool = False):
        allowed = set(self.columns) | ({"id"} if allow_id else set())
        unknown = sorted(set(names) - allowed)
        if unknown:
            raise ValidationFailure(f"Unknown {self.kind} field(s): {', '.join(unknown)}")

    def _where_clause(self, where: Optional[dict]):
        if not where:
            return "", []
        self._check_columns(where, allow_id=True)
        clause = " WHERE " + " AND ".join(f"{column} = ?" for column in where)
        return clause, list(where.values())

    def _query(self, sql: str, params: Iterable = ()) -> list:
        with self._lock:
            try:
                return self.conn.execute(sql, tuple(params)).fetchall()
            except sqlite3.Error as e:
                log_error(f"Error reading {self.table}: {e}")
                raise StoreError(f"Failed to read {self.table}") from e

    def _write(self, sql: str, params: Iterable = ()) -> sqlite3.Cursor:
        with self._lock:
            try:
                cursor = self.conn.execute(sql, tuple(params))
                self.conn.commit()
                return cursor
            except sqlite3.Error as e:
                self.conn.rollback()
                log_error(f"Error writing {self.table}: {e}")
                raise StoreError(f"Failed to write {self.table}") from e

    def _exists(self, record_id: int) -> bool:
        rows = self._query(f"SELECT 1 FROM {self.table} WHERE id = ?", (record_id,))
        return bool(rows)

    def create(self, fields: dict) -> dict:
        """ Insert a record and return it with its assigned id. """
        self._check_columns(fields)
        missing = [column for column in self.columns if column not in fields]
        if missing:
            raise ValidationFailure(f"Missing {self.kind} field(s): {', '.join(missing)}")
        columns = ", ".join(self.columns)
        placeholders = ", ".join("?" for _ in self.columns)
        cursor = self._write(
            f"INSERT INTO {self.table} ({columns}) VALUES ({placeholders})",
            [fields[column] for column in self.columns],
        )
        return self.find_by_id(cursor.lastrowid)

    def find(self, where: Optional[dict] = None) -> list[dict]:
        clause, params = self._where_clause(where)
        rows = self._query(f"SELECT * FROM {self.table}{clause} ORDER BY id", params)
        return [dict(row) for row in rows]

    def find_by_id(self, record_id: int) -> dict:
        rows = self._query(f"SELECT * FROM {self.table} WHERE id = ?", (record_id,))
        if not rows:
            raise NotFound(self.kind, record_id)
        return dict(rows[0])

    def update_by_id(self, record_id: int, fields: dict, expected: Optional[dict] = None) -> bool:
        """
        Apply a partial update to one record.

        With `expected`, the row is only written while each expected column still
        holds the given value, and False is returned when it no longer does.
        """
        self._check_columns(fields)
        if not fields:
            if not self._exists(record_id):
                raise NotFound(self.kind, record_id)
            return True
        sql = f"UPDATE {self.table} SET " + ", ".join(f"{column} = ?" for column in fields) + " WHERE id = ?"
        params = [*fields.values(), record_id]
        if expected:
            self._check_columns(expected)
            sql += "".join(f" AND {column} = ?" for column in expected)
            params.extend(expected.values())
        cursor = self._write(sql, params)
        if cursor.rowcount == 0:
            if not self._exists(record_id):
                raise NotFound(self.kind, record_id)
            return False
        return True

    def replace_by_id(self, record_id: int, fields: dict) -> None:
        missing = [column for column in self.columns if column not in fields]
        if missing:
            raise ValidationFailure(f"Missing {self.kind} field(s): {', '.join(missing)}")
        self.update_by_id(record_id, fields)

    def update_all(self, fields: dict, ids: Optional[Iterable[int]] = None) -> int:
        """ Apply a partial update to every record, or only to `ids`. Returns the number updated. """
        self._check_columns(fields)
        if ids is not None:
            ids = list(ids)
            if not ids:
                return 0
        if not fields:
            return sum(1 for record_id in ids if self._exists(record_id)) if ids is not None else self.count()
        sql = f"UPDATE {self.table} SET " + ", ".join(f"{column} = ?" for column in fields)
        params = list(fields.values())
        if ids is not None:
            sql += " WHERE id IN (" + ", ".join("?" for _ in ids) + ")"
            params.extend(ids)
        return self._write(sql, params).rowcount

    def delete_by_id(self, record_id: int) -> None:
        cursor = self._write(f"DELETE FROM {self.table} WHERE id = ?", (record_id,))
        if cursor.rowcount == 0:
            raise NotFound(self.kind, record_id)

    def count(self, where: Optional[dict] = None) -> int:
        clause, params = self._where_clause(where)
        rows = self._query(f"SELECT COUNT(*) FROM {self.table}{clause}", params)
        return rows[0][0]


@dataclass
class Stores:
    items: RecordStore
    users: RecordStore
    orders: RecordStore


def open_stores(conn: Connection) -> Stores:
    """ Build the item, user and order stores over one connection. """
    lock = threading.RLock()
    return Stores(
        items=SqliteRecordStore(conn, "items", lock),
        users=SqliteRecordStore(conn, "users", lock),
        orders=SqliteRecordStore(conn, "orders", lock),
    )
