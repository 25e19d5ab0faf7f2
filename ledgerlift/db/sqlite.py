"""SQLite persistence for categories, learned patterns and saved transactions."""

import logging
import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from uuid import uuid4

from ledgerlift.config import settings
from ledgerlift.models import Category, LearningRecord, ValidatedTransaction
from ledgerlift.services.dedup import compute_transaction_hash

logger = logging.getLogger(__name__)

# SQL schema
SCHEMA = """
CREATE TABLE IF NOT EXISTS categories (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    type TEXT,
    user_id TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_categories_user ON categories(user_id);

CREATE TABLE IF NOT EXISTS category_learning (
    user_id TEXT NOT NULL,
    pattern TEXT NOT NULL,
    category_id TEXT NOT NULL,
    hits INTEGER NOT NULL DEFAULT 1,
    last_used TEXT NOT NULL,
    UNIQUE(user_id, pattern)
);

CREATE TABLE IF NOT EXISTS transactions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    transaction_hash TEXT NOT NULL UNIQUE,
    date TEXT NOT NULL,
    narration TEXT NOT NULL,
    amount REAL NOT NULL,
    debit_credit TEXT NOT NULL,
    balance REAL,
    category_id TEXT,
    category_source TEXT,
    confidence REAL,
    transaction_ref TEXT,
    tier TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_transactions_user_date ON transactions(user_id, date);
CREATE INDEX IF NOT EXISTS idx_transactions_hash ON transactions(transaction_hash);
"""

# name, type
DEFAULT_CATEGORIES = [
    ("Groceries", "expense"),
    ("Food & Dining", "expense"),
    ("Travel", "expense"),
    ("Utilities & Bills", "expense"),
    ("Rent", "expense"),
    ("Shopping", "expense"),
    ("Investment", "expense"),
    ("Medical", "expense"),
    ("Entertainment", "expense"),
    ("Transfer", "expense"),
    ("Other", "expense"),
    ("Salary", "income"),
    ("Transfer In", "income"),
    ("Other Income", "income"),
]


class Database:
    """SQLite database manager."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = Path(db_path or settings.db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        with self._get_connection() as conn:
            conn.executescript(SCHEMA)
            conn.commit()

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    # Categories

    def add_category(self, name: str, type: str | None = None, user_id: str | None = None) -> Category:
        """Create a category. A category without user_id is visible to everyone."""
        category = Category(id=str(uuid4()), name=name, type=type, user_id=user_id)
        with self._get_connection() as conn:
            conn.execute(
                "INSERT INTO categories (id, name, type, user_id) VALUES (?, ?, ?, ?)",
                (category.id, category.name, category.type, category.user_id),
            )
            conn.commit()
        return category

    def ensure_default_categories(self) -> list[Category]:
        """Seed the global categories once. Returns the global pool."""
        with self._get_connection() as conn:
            count = conn.execute("SELECT COUNT(*) as count FROM categories WHERE user_id IS NULL").fetchone()["count"]
        if count == 0:
            for name, category_type in DEFAULT_CATEGORIES:
                self.add_category(name, category_type)
            print(f"📂 Seeded {len(DEFAULT_CATEGORIES)} default categories")
        return self.find_user_categories(None)

    def find_user_categories(self, user_id: str | None) -> list[Category]:
        """The user's own categories followed by the global ones."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT id, name, type, user_id FROM categories
                WHERE user_id = ? OR user_id IS NULL
                ORDER BY user_id IS NULL, created_at, rowid
                """,
                (user_id,),
            )
            return [Category.model_validate(dict(row)) for row in cursor.fetchall()]

    # Learning

    def find_learning_pattern(self, user_id: str, pattern: str) -> LearningRecord | None:
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT user_id, pattern, category_id, hits, last_used
                FROM category_learning WHERE user_id = ? AND pattern = ?
                """,
                (user_id, pattern),
            )
            row = cursor.fetchone()
            return LearningRecord.model_validate(dict(row)) if row else None

    def upsert_learning_pattern(self, user_id: str, pattern: str, category_id: str) -> LearningRecord:
        """Insert a learned pattern, or repoint it and bump its hit count in one statement."""
        now = datetime.now().isoformat()
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO category_learning (user_id, pattern, category_id, hits, last_used)
                VALUES (?, ?, ?, 1, ?)
                ON CONFLICT(user_id, pattern) DO UPDATE SET
                    category_id = excluded.category_id,
                    hits = category_learning.hits + 1,
                    last_used = excluded.last_used
                """,
                (user_id, pattern, category_id, now),
            )
            conn.commit()
        return self.find_learning_pattern(user_id, pattern)

    # Transactions

    def create_transaction(self, user_id: str, record: ValidatedTransaction) -> bool:
        """Save a transaction. Returns True if added, False if duplicate."""
        transaction_hash = compute_transaction_hash(user_id, record)
        category = record.category
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO transactions (id, user_id, transaction_hash,
                date, narration, amount, debit_credit, balance, category_id,
                category_source, confidence, transaction_ref, tier)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(uuid4()),
                    user_id,
                    transaction_hash,
                    record.date,
                    record.narration,
                    record.amount,
                    record.debit_credit.value if record.debit_credit else "",
                    record.balance,
                    category.category_id if category else None,
                    category.source.value if category else None,
                    record.confidence,
                    record.transaction_id,
                    record.tier,
                ),
            )
            conn.commit()
            # Duplicate transaction_hash
            return cursor.rowcount == 1

    def get_transactions(self, user_id: str, limit: int = 1000) -> list[dict]:
        """Saved transactions for a user, newest first."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT id, transaction_hash, date, narration, amount, debit_credit,
                       balance, category_id, category_source, confidence,
                       transaction_ref, tier
                FROM transactions WHERE user_id = ?
                ORDER BY date DESC, rowid
                LIMIT ?
                """,
                (user_id, limit),
            )
            return [dict(row) for row in cursor.fetchall()]

    def get_transaction_count(self, user_id: str | None = None) -> int:
        """Get total number of transactions, optionally for one user."""
        with self._get_connection() as conn:
            if user_id is None:
                cursor = conn.execute("SELECT COUNT(*) as count FROM transactions")
            else:
                cursor = conn.execute("SELECT COUNT(*) as count FROM transactions WHERE user_id = ?", (user_id,))
            return cursor.fetchone()["count"]


_db: Database | None = None


def get_db() -> Database:
    """Lazily create the global database at the configured path."""
    global _db
    if _db is None:
        _db = Database()
    return _db
