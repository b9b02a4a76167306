from __future__ import annotations

import json
import shutil
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from crediflow.repositories.records import KINDS, kind_of, to_payload

# Column order per table, matching the record payload keys.
COLUMNS: dict[str, tuple[str, ...]] = {
    "shops": ("id", "name", "type", "color"),
    "products": ("id", "shop_id", "name", "category", "retail_price", "wholesale_price", "stock", "description"),
    "customers": (
        "id", "name", "phone", "type", "total_debt", "credit_limit",
        "address", "shop_name", "location", "whatsapp",
    ),
    "transactions": (
        "id", "shop_id", "customer_id", "customer_name", "date", "items",
        "total_amount", "paid_amount", "balance", "status", "seq",
    ),
    "payments": ("id", "shop_id", "customer_id", "amount", "date", "note", "seq"),
    "expenses": ("id", "shop_id", "customer_id", "description", "amount", "date", "seq"),
    "activities": (
        "id", "date", "action", "description", "performed_by",
        "shop_id", "customer_id", "shop_name", "seq",
    ),
}

EVENT_TABLES = ("transactions", "payments", "expenses", "activities")


class SqliteRepository:
    name = "sqlite"

    def __init__(self, db_path: Path | str):
        self.db_path = str(db_path)

    def _conn(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def init_db(self) -> None:
        self.run_migrations()

    def run_migrations(self) -> None:
        conn = self._conn()
        backup_path = self._create_pre_migration_backup()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            migrations = [
                (1, self._migration_v1_base),
                (2, self._migration_v2_event_order),
            ]

            for version, migration in migrations:
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise RuntimeError(
                "Database migration failed. Original database restored from automatic backup."
            ) from exc
        finally:
            conn.close()

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_base(self, cur: sqlite3.Cursor) -> None:
        cur.execute("CREATE TABLE IF NOT EXISTS shops (id TEXT PRIMARY KEY, name TEXT NOT NULL, type TEXT NOT NULL, color TEXT)")
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS products (
            id TEXT PRIMARY KEY,
            shop_id TEXT NOT NULL,
            name TEXT NOT NULL,
            category TEXT NOT NULL,
            retail_price REAL NOT NULL,
            wholesale_price REAL NOT NULL,
            stock INTEGER NOT NULL DEFAULT 0,
            description TEXT
        )
        """
        )
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS customers (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            phone TEXT,
            type TEXT NOT NULL CHECK(type IN ('RETAIL','WHOLESALE')),
            shop_name TEXT,
            location TEXT,
            whatsapp TEXT,
            credit_limit REAL,
            total_debt REAL NOT NULL DEFAULT 0
        )
        """
        )
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS transactions (
            id TEXT PRIMARY KEY,
            shop_id TEXT NOT NULL,
            customer_id TEXT NOT NULL,
            customer_name TEXT,
            date TEXT NOT NULL,
            items TEXT NOT NULL,
            total_amount REAL NOT NULL,
            paid_amount REAL NOT NULL,
            balance REAL NOT NULL,
            status TEXT NOT NULL CHECK(status IN ('PAID','PARTIAL','UNPAID'))
        )
        """
        )
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS payments (
            id TEXT PRIMARY KEY,
            shop_id TEXT NOT NULL,
            customer_id TEXT NOT NULL,
            amount REAL NOT NULL,
            date TEXT NOT NULL
        )
        """
        )
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS expenses (
            id TEXT PRIMARY KEY,
            shop_id TEXT NOT NULL,
            customer_id TEXT NOT NULL,
            description TEXT,
            amount REAL NOT NULL,
            date TEXT NOT NULL
        )
        """
        )
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS activities (
            id TEXT PRIMARY KEY,
            shop_id TEXT,
            customer_id TEXT,
            date TEXT NOT NULL,
            action TEXT NOT NULL,
            description TEXT,
            performed_by TEXT NOT NULL,
            shop_name TEXT
        )
        """
        )

    def _migration_v2_event_order(self, cur: sqlite3.Cursor) -> None:
        for table in EVENT_TABLES:
            self._add_column_if_missing(cur, table, "seq", "INTEGER NOT NULL DEFAULT 0")
            cur.execute(f"CREATE INDEX IF NOT EXISTS idx_{table}_seq ON {table}(seq)")
        for table in ("transactions", "payments", "expenses"):
            cur.execute(f"CREATE INDEX IF NOT EXISTS idx_{table}_customer ON {table}(customer_id)")
        self._add_column_if_missing(cur, "payments", "note", "TEXT")
        self._add_column_if_missing(cur, "customers", "address", "TEXT")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_products_shop_name ON products(shop_id, name)")

    def _add_column_if_missing(self, cur: sqlite3.Cursor, table: str, column: str, definition: str) -> None:
        cur.execute(f"PRAGMA table_info({table})")
        cols = {str(r[1]) for r in cur.fetchall()}
        if column in cols:
            return
        cur.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")

    # ---------- Mirror backend ----------
    def put(self, record: object) -> None:
        kind = kind_of(record)
        payload = to_payload(record)
        cols = COLUMNS[kind]
        values = [json.dumps(payload[c], ensure_ascii=False) if c == "items" else payload[c] for c in cols]
        updates = ", ".join(f"{c}=excluded.{c}" for c in cols if c != "id")

        conn = self._conn()
        try:
            conn.execute(
                f"""
                INSERT INTO {kind} ({", ".join(cols)}) VALUES ({", ".join("?" for _ in cols)})
                ON CONFLICT(id) DO UPDATE SET {updates}
                """,
                values,
            )
            conn.commit()
        finally:
            conn.close()

    def load(self) -> dict[str, list[dict[str, Any]]]:
        conn = self._conn()
        cur = conn.cursor()
        snapshot: dict[str, list[dict[str, Any]]] = {}
        try:
            for kind in KINDS:
                cols = COLUMNS[kind]
                order = "seq, rowid" if kind in EVENT_TABLES else "rowid"
                cur.execute(f"SELECT {', '.join(cols)} FROM {kind} ORDER BY {order}")
                rows = []
                for r in cur.fetchall():
                    row = dict(zip(cols, r))
                    if "items" in row:
                        row["items"] = json.loads(row["items"] or "[]")
                    rows.append(row)
                snapshot[kind] = rows
        finally:
            conn.close()
        if not any(snapshot.values()):
            return {}
        return snapshot

    def integrity_check(self) -> str:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("PRAGMA integrity_check")
        row = cur.fetchone()
        conn.close()
        return str(row[0]) if row else "unknown"

    def count(self, kind: str) -> int:
        if kind not in KINDS:
            raise ValueError(f"Unknown entity kind: {kind}")
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT COUNT(*) FROM {kind}")
        n = int(cur.fetchone()[0])
        conn.close()
        return n
