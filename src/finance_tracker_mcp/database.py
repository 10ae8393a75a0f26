"""SQLite database schema and CRUD operations for the finance snapshot cache."""

import sqlite3
from pathlib import Path
from typing import Any


SCHEMA = """
-- Catálogos del usuario
CREATE TABLE IF NOT EXISTS accounts (
    id               TEXT PRIMARY KEY,  -- UUID
    name             TEXT,
    type             TEXT,     -- 'Efectivo','Banco','Tarjeta de Crédito','Ahorros','Inversiones',...
    currency         TEXT,     -- 'MXN', 'USD', 'EUR'
    opening_balance  REAL DEFAULT 0,
    market_value     REAL,
    sold             INTEGER DEFAULT 0,  -- bool: propiedad vendida
    updated_at       TEXT
);

CREATE TABLE IF NOT EXISTS categories (
    id                  TEXT PRIMARY KEY,  -- UUID
    category            TEXT,
    subcategory         TEXT,
    type                TEXT,     -- 'Ingreso','Gastos','Aportación','Retiro','Reembolso'
    tracking_frequency  TEXT,     -- 'anual', 'mensual' o NULL
    updated_at          TEXT
);

CREATE TABLE IF NOT EXISTS transactions (
    id           TEXT PRIMARY KEY,  -- UUID
    account_id   TEXT,     -- accounts.id
    date         TEXT,     -- 'YYYY-MM-DD'
    memo         TEXT,
    income       REAL DEFAULT 0,
    expense      REAL DEFAULT 0,
    category_id  TEXT,     -- categories.id (subcategoría)
    currency     TEXT,
    updated_at   TEXT
);

-- Estado local: conjuntos de ids marcados (p. ej. pagos anuales inactivos)
CREATE TABLE IF NOT EXISTS payment_flags (
    kind  TEXT,
    id    TEXT,
    PRIMARY KEY (kind, id)
);

-- Meta-información de sincronización
CREATE TABLE IF NOT EXISTS sync_meta (
    key   TEXT PRIMARY KEY,
    value TEXT
);
"""

INDEXES = """
CREATE INDEX IF NOT EXISTS idx_accounts_type ON accounts(type);
CREATE INDEX IF NOT EXISTS idx_categories_type ON categories(type);
CREATE INDEX IF NOT EXISTS idx_tx_date ON transactions(date);
CREATE INDEX IF NOT EXISTS idx_tx_account ON transactions(account_id);
CREATE INDEX IF NOT EXISTS idx_tx_category ON transactions(category_id);
"""

SYNCED_TABLES = ("accounts", "categories", "transactions")


def _iso_date(value: Any) -> str | None:
    """Trim a PostgREST date or timestamp down to 'YYYY-MM-DD'."""
    if value is None:
        return None
    return str(value)[:10]


class Database:
    """SQLite database wrapper for the finance snapshot cache."""

    def __init__(self, db_path: str | Path | None = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite file, or None/":memory:" for in-memory DB.
        """
        if db_path is None:
            db_path = ":memory:"
        self.db_path = str(db_path)
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            if self.db_path != ":memory:":
                self._conn.execute("PRAGMA journal_mode=WAL")
        return self._conn

    def close(self) -> None:
        """Close database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def init_schema(self) -> None:
        """Create all tables and indexes."""
        conn = self.connect()
        conn.executescript(SCHEMA)
        conn.executescript(INDEXES)
        conn.commit()

    # -------------------------------------------------------------------------
    # Sync metadata
    # -------------------------------------------------------------------------

    def get_meta(self, key: str) -> str | None:
        """Get metadata value by key."""
        conn = self.connect()
        row = conn.execute(
            "SELECT value FROM sync_meta WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else None

    def set_meta(self, key: str, value: str) -> None:
        """Set metadata value."""
        conn = self.connect()
        conn.execute(
            "INSERT OR REPLACE INTO sync_meta (key, value) VALUES (?, ?)",
            (key, value),
        )
        conn.commit()

    def get_sync_cursor(self, table: str) -> str | None:
        """Get the newest `updated_at` seen for a synced table."""
        return self.get_meta(f"{table}_updated_at")

    def set_sync_cursor(self, table: str, updated_at: str) -> None:
        """Save the newest `updated_at` seen for a synced table."""
        self.set_meta(f"{table}_updated_at", updated_at)

    # -------------------------------------------------------------------------
    # Upserts from PostgREST rows (Spanish column names)
    # -------------------------------------------------------------------------

    def upsert_accounts(self, items: list[dict[str, Any]]) -> int:
        """Upsert rows of the `cuentas` table."""
        conn = self.connect()
        count = 0
        for item in items:
            conn.execute(
                """
                INSERT OR REPLACE INTO accounts
                (id, name, type, currency, opening_balance, market_value, sold, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    item["id"],
                    item.get("nombre"),
                    item.get("tipo"),
                    item.get("divisa", "MXN"),
                    item.get("saldo_inicial", 0) or 0,
                    item.get("valor_mercado"),
                    1 if item.get("vendida", False) else 0,
                    item.get("updated_at"),
                ),
            )
            count += 1
        conn.commit()
        return count

    def upsert_categories(self, items: list[dict[str, Any]]) -> int:
        """Upsert rows of the `categorias` table."""
        conn = self.connect()
        count = 0
        for item in items:
            conn.execute(
                """
                INSERT OR REPLACE INTO categories
                (id, category, subcategory, type, tracking_frequency, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    item["id"],
                    item.get("categoria"),
                    item.get("subcategoria"),
                    item.get("tipo"),
                    item.get("frecuencia_seguimiento"),
                    item.get("updated_at"),
                ),
            )
            count += 1
        conn.commit()
        return count

    def upsert_transactions(self, items: list[dict[str, Any]]) -> int:
        """Upsert rows of the `transacciones` table."""
        conn = self.connect()
        count = 0
        for item in items:
            conn.execute(
                """
                INSERT OR REPLACE INTO transactions
                (id, account_id, date, memo, income, expense, category_id,
                 currency, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    item["id"],
                    item.get("cuenta_id"),
                    _iso_date(item.get("fecha")),
                    item.get("comentario") or "",
                    item.get("ingreso", 0) or 0,
                    item.get("gasto", 0) or 0,
                    item.get("subcategoria_id"),
                    item.get("divisa", "MXN"),
                    item.get("updated_at"),
                ),
            )
            count += 1
        conn.commit()
        return count

    # -------------------------------------------------------------------------
    # Deletes
    # -------------------------------------------------------------------------

    def get_ids(self, table: str) -> set[str]:
        """Get every id cached in a synced table."""
        conn = self.connect()
        rows = conn.execute(f"SELECT id FROM {table}").fetchall()  # noqa: S608
        return {row["id"] for row in rows}

    def delete_by_ids(self, table: str, ids: list[str]) -> int:
        """Delete records by IDs."""
        if not ids:
            return 0
        conn = self.connect()
        placeholders = ",".join("?" * len(ids))
        cursor = conn.execute(
            f"DELETE FROM {table} WHERE id IN ({placeholders})", ids  # noqa: S608
        )
        conn.commit()
        return cursor.rowcount

    def clear_table(self, table: str) -> int:
        """Delete every row of a synced table (before a full sync)."""
        conn = self.connect()
        cursor = conn.execute(f"DELETE FROM {table}")  # noqa: S608
        conn.commit()
        return cursor.rowcount

    # -------------------------------------------------------------------------
    # Flag sets
    # -------------------------------------------------------------------------

    def get_flags(self, kind: str) -> set[str]:
        """Get all ids flagged under `kind`."""
        conn = self.connect()
        rows = conn.execute(
            "SELECT id FROM payment_flags WHERE kind = ?", (kind,)
        ).fetchall()
        return {row["id"] for row in rows}

    def set_flag(self, kind: str, flag_id: str, flagged: bool) -> None:
        """Add or remove a single id from the `kind` flag set."""
        conn = self.connect()
        if flagged:
            conn.execute(
                "INSERT OR IGNORE INTO payment_flags (kind, id) VALUES (?, ?)",
                (kind, flag_id),
            )
        else:
            conn.execute(
                "DELETE FROM payment_flags WHERE kind = ? AND id = ?",
                (kind, flag_id),
            )
        conn.commit()

    # -------------------------------------------------------------------------
    # Query helpers
    # -------------------------------------------------------------------------

    def count_table(self, table: str) -> int:
        """Count rows in a table."""
        conn = self.connect()
        row = conn.execute(f"SELECT COUNT(*) as cnt FROM {table}").fetchone()  # noqa: S608
        return row["cnt"]

    def get_accounts(self) -> list[dict[str, Any]]:
        """Get all accounts as plain dicts."""
        conn = self.connect()
        rows = conn.execute(
            "SELECT * FROM accounts ORDER BY type, name"
        ).fetchall()
        return [dict(row) for row in rows]

    def get_categories(self) -> list[dict[str, Any]]:
        """Get all categories as plain dicts."""
        conn = self.connect()
        rows = conn.execute(
            "SELECT * FROM categories ORDER BY type, category, subcategory"
        ).fetchall()
        return [dict(row) for row in rows]

    def get_transactions(
        self,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> list[dict[str, Any]]:
        """Get transactions ordered by date ascending, optionally within a date range."""
        conn = self.connect()
        query = "SELECT * FROM transactions WHERE 1 = 1"
        params: list[Any] = []
        if start_date:
            query += " AND date >= ?"
            params.append(start_date)
        if end_date:
            query += " AND date <= ?"
            params.append(end_date)
        query += " ORDER BY date ASC, id ASC"
        rows = conn.execute(query, params).fetchall()
        return [dict(row) for row in rows]
