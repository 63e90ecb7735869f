from __future__ import annotations

import logging
import math
import shutil
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from ipd.domain.models import Owner, Product, Sale, Snapshot
from ipd.repositories.unit_of_work import SERVER_TIMESTAMP, Increment, Write

log = logging.getLogger(__name__)

PRODUCT_COLUMNS = (
    "name", "buy_price", "sold", "sold_price", "link", "description",
    "image_url", "created_at", "sold_at", "updated_at",
)
SALE_COLUMNS = (
    "product_id", "product_name", "buy_price", "sold_price", "profit",
    "sold_at", "created_at", "updated_at",
)
OWNER_COLUMNS = ("name", "contribution", "created_at", "updated_at")

COLLECTIONS: dict[str, tuple[str, ...]] = {
    "products": PRODUCT_COLUMNS,
    "sales": SALE_COLUMNS,
    "owners": OWNER_COLUMNS,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _ts(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _num(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


class SqliteRepository:
    def __init__(self, db_path: Path | str, clock: Callable[[], datetime] | None = None):
        self.db_path = str(db_path)
        self.clock = clock or utc_now
        self._listeners: list[Callable[[Snapshot], None]] = []

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

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
                (2, self._migration_v2_sales_product_index),
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
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS products (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            buy_price REAL,
            sold INTEGER NOT NULL DEFAULT 0 CHECK(sold IN (0,1)),
            sold_price REAL,
            link TEXT,
            description TEXT NOT NULL DEFAULT '',
            image_url TEXT,
            created_at TEXT,
            sold_at TEXT,
            updated_at TEXT
        )
        """
        )

        # No UNIQUE(product_id): legacy code paths wrote sales under random ids.
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS sales (
            id TEXT PRIMARY KEY,
            product_id TEXT,
            product_name TEXT NOT NULL DEFAULT '',
            buy_price REAL,
            sold_price REAL,
            profit REAL,
            sold_at TEXT,
            created_at TEXT,
            updated_at TEXT
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS owners (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            contribution REAL NOT NULL DEFAULT 0,
            created_at TEXT,
            updated_at TEXT
        )
        """
        )

    def _migration_v2_sales_product_index(self, cur: sqlite3.Cursor) -> None:
        cur.execute("CREATE INDEX IF NOT EXISTS idx_sales_product_id ON sales(product_id)")

    # ---------- Batches ----------
    def commit_batch(self, writes: Iterable[Write]) -> None:
        writes = list(writes)
        now = to_iso(self.clock())
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            for w in writes:
                self._apply_write(cur, w, now)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        self._notify()

    def _apply_write(self, cur: sqlite3.Cursor, w: Write, now_iso: str) -> None:
        columns = COLLECTIONS.get(w.collection)
        if columns is None:
            raise ValueError(f"Unknown collection: {w.collection}")
        unknown = set(w.fields) - set(columns)
        if unknown:
            raise ValueError(f"Unknown fields for {w.collection}: {sorted(unknown)}")

        if w.op == "create":
            names = list(w.fields)
            values = [self._resolve(w.fields[n], now_iso) for n in names]
            placeholders = ", ".join("?" for _ in range(len(names) + 1))
            cur.execute(
                f"INSERT INTO {w.collection} (id, {', '.join(names)}) VALUES ({placeholders})",
                (w.doc_id, *values),
            )
        elif w.op == "update":
            cur.execute(f"SELECT 1 FROM {w.collection} WHERE id=?", (w.doc_id,))
            if cur.fetchone() is None:
                raise ValueError(f"No document to update: {w.collection}/{w.doc_id}")
            if not w.fields:
                return
            assignments = []
            values = []
            for name, value in w.fields.items():
                if isinstance(value, Increment):
                    assignments.append(f"{name} = COALESCE({name}, 0) + ?")
                    values.append(float(value.amount))
                else:
                    assignments.append(f"{name} = ?")
                    values.append(self._resolve(value, now_iso))
            cur.execute(
                f"UPDATE {w.collection} SET {', '.join(assignments)} WHERE id=?",
                (*values, w.doc_id),
            )
        elif w.op == "delete":
            cur.execute(f"DELETE FROM {w.collection} WHERE id=?", (w.doc_id,))
        else:
            raise ValueError(f"Unknown write op: {w.op}")

    @staticmethod
    def _resolve(value: Any, now_iso: str) -> Any:
        if value is SERVER_TIMESTAMP:
            return now_iso
        if isinstance(value, Increment):
            return float(value.amount)
        if isinstance(value, datetime):
            return to_iso(value)
        if isinstance(value, bool):
            return int(value)
        return value

    # ---------- Subscriptions ----------
    def subscribe(self, listener: Callable[[Snapshot], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        snap = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception:
                log.exception("snapshot_listener_failed listener=%r", listener)

    def snapshot(self) -> Snapshot:
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            products = self._select_products(cur)
            sales = self._select_sales(cur)
            owners = self._select_owners(cur)
            conn.commit()
        finally:
            conn.close()
        return Snapshot(products=products, sales=sales, owners=owners)

    # ---------- Products ----------
    def _select_products(self, cur: sqlite3.Cursor, where: str = "", params: tuple = ()) -> list[Product]:
        cur.execute(f"SELECT id, {', '.join(PRODUCT_COLUMNS)} FROM products {where}", params)
        return [
            Product(
                id=str(r[0]),
                name=str(r[1] or ""),
                buy_price=_num(r[2]),
                sold=bool(r[3]),
                sold_price=_num(r[4]),
                link=(str(r[5]) if r[5] is not None else None),
                description=str(r[6] or ""),
                image_url=(str(r[7]) if r[7] is not None else None),
                created_at=_ts(r[8]),
                sold_at=_ts(r[9]),
                updated_at=_ts(r[10]),
            )
            for r in cur.fetchall()
        ]

    def get_product(self, product_id: str) -> Optional[Product]:
        conn = self._conn()
        try:
            rows = self._select_products(conn.cursor(), "WHERE id=?", (str(product_id),))
        finally:
            conn.close()
        return rows[0] if rows else None

    def list_products(self) -> list[Product]:
        conn = self._conn()
        try:
            return self._select_products(conn.cursor())
        finally:
            conn.close()

    # ---------- Sales ----------
    def _select_sales(self, cur: sqlite3.Cursor, where: str = "", params: tuple = ()) -> list[Sale]:
        cur.execute(f"SELECT id, {', '.join(SALE_COLUMNS)} FROM sales {where}", params)
        return [
            Sale(
                id=str(r[0]),
                product_id=(str(r[1]) if r[1] else None),
                product_name=str(r[2] or ""),
                buy_price=_num(r[3]),
                sold_price=_num(r[4]),
                profit=_num(r[5]),
                sold_at=_ts(r[6]),
                created_at=_ts(r[7]),
                updated_at=_ts(r[8]),
            )
            for r in cur.fetchall()
        ]

    def get_sale(self, sale_id: str) -> Optional[Sale]:
        conn = self._conn()
        try:
            rows = self._select_sales(conn.cursor(), "WHERE id=?", (str(sale_id),))
        finally:
            conn.close()
        return rows[0] if rows else None

    def list_sales(self) -> list[Sale]:
        conn = self._conn()
        try:
            return self._select_sales(conn.cursor())
        finally:
            conn.close()

    def list_sales_for_product(self, product_id: str) -> list[Sale]:
        conn = self._conn()
        try:
            return self._select_sales(conn.cursor(), "WHERE product_id=?", (str(product_id),))
        finally:
            conn.close()

    def list_product_ids_with_stray_sales(self) -> list[str]:
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT DISTINCT product_id
                FROM sales
                WHERE product_id IS NOT NULL AND product_id != '' AND id != product_id
                ORDER BY product_id
                """
            )
            return [str(r[0]) for r in cur.fetchall()]
        finally:
            conn.close()

    # ---------- Owners ----------
    def _select_owners(self, cur: sqlite3.Cursor, where: str = "", params: tuple = ()) -> list[Owner]:
        cur.execute(f"SELECT id, {', '.join(OWNER_COLUMNS)} FROM owners {where}", params)
        return [
            Owner(
                id=str(r[0]),
                name=str(r[1] or ""),
                contribution=_num(r[2]),
                created_at=_ts(r[3]),
                updated_at=_ts(r[4]),
            )
            for r in cur.fetchall()
        ]

    def get_owner(self, owner_id: str) -> Optional[Owner]:
        conn = self._conn()
        try:
            rows = self._select_owners(conn.cursor(), "WHERE id=?", (str(owner_id),))
        finally:
            conn.close()
        return rows[0] if rows else None

    def list_owners(self) -> list[Owner]:
        conn = self._conn()
        try:
            return self._select_owners(conn.cursor(), "ORDER BY created_at, name")
        finally:
            conn.close()

    def count_owners(self) -> int:
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT COUNT(*) FROM owners")
            return int(cur.fetchone()[0])
        finally:
            conn.close()
