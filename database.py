import asyncio
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, Optional, Sequence, TypeVar

from errors import ConflictError, StoreError, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT UNIQUE NOT NULL,
        email TEXT UNIQUE NOT NULL,
        password_hash TEXT NOT NULL,
        profile_image TEXT,
        role TEXT NOT NULL DEFAULT 'user' CHECK (role IN ('admin', 'user')),
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS categories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        description TEXT,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS expenses (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        description TEXT NOT NULL,
        amount_cents INTEGER NOT NULL CHECK (amount_cents > 0),
        date DATE NOT NULL,
        category_id INTEGER,
        is_fixed INTEGER NOT NULL DEFAULT 0,
        is_installment INTEGER NOT NULL DEFAULT 0,
        total_installments INTEGER,
        current_installment INTEGER,
        notes TEXT,
        user_id INTEGER NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (category_id) REFERENCES categories(id),
        FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_expenses_user_date ON expenses (user_id, date)",
    "CREATE INDEX IF NOT EXISTS ix_expenses_category ON expenses (category_id)",
)


@dataclass
class ExecResult:
    lastrowid: Optional[int]
    rowcount: int


class Database:
    """
    Handle to the record store, passed explicitly to every service.

    Each call opens its own short-lived sqlite3 connection inside a worker
    thread, so independent queries awaited together really do overlap.

    Usage:
        db = Database("expense_tracker.db")
        db.init_db()
        row = await db.fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))
    """

    def __init__(self, path: str) -> None:
        self.path = path

    def init_db(self) -> None:
        """Create tables if they do not exist yet."""
        with self.connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL;")
            for statement in SCHEMA:
                conn.execute(statement)
            conn.commit()
        logger.info("Database initialized at %s", self.path)

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row  # Access columns by name: row['username']
        conn.execute("PRAGMA foreign_keys=ON;")
        try:
            yield conn
        finally:
            conn.close()

    def _run(self, work: Callable[[sqlite3.Connection], T]) -> T:
        try:
            with self.connect() as conn:
                try:
                    result = work(conn)
                    conn.commit()
                except Exception:
                    conn.rollback()
                    raise
                return result
        except sqlite3.IntegrityError as e:
            logger.warning("Constraint violation: %s", e)
            raise ConflictError("Record conflicts with existing data") from e
        except OverflowError as e:
            # sqlite3 cannot bind integers wider than 64 bits
            logger.warning("Value out of range: %s", e)
            raise ValidationError("Value is out of range") from e
        except sqlite3.Error as e:
            logger.error("Database error: %s", e)
            raise StoreError("Database error") from e

    async def fetch_one(self, query: str, params: Sequence[Any] = ()) -> Optional[dict]:
        def work(conn: sqlite3.Connection) -> Optional[dict]:
            row = conn.execute(query, params).fetchone()
            return dict(row) if row is not None else None

        return await asyncio.to_thread(self._run, work)

    async def fetch_all(self, query: str, params: Sequence[Any] = ()) -> list[dict]:
        def work(conn: sqlite3.Connection) -> list[dict]:
            return [dict(row) for row in conn.execute(query, params).fetchall()]

        return await asyncio.to_thread(self._run, work)

    async def execute(self, query: str, params: Sequence[Any] = ()) -> ExecResult:
        def work(conn: sqlite3.Connection) -> ExecResult:
            cursor = conn.execute(query, params)
            return ExecResult(lastrowid=cursor.lastrowid, rowcount=cursor.rowcount)

        return await asyncio.to_thread(self._run, work)

    async def execute_many(self, query: str, rows: Iterable[Sequence[Any]]) -> int:
        """Run one statement for many parameter rows in a single transaction."""
        rows = list(rows)

        def work(conn: sqlite3.Connection) -> int:
            cursor = conn.executemany(query, rows)
            return cursor.rowcount

        return await asyncio.to_thread(self._run, work)
