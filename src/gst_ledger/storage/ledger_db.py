"""
SQLite-backed document store for ledger rows, invoices, orders, shop settings,
the product HSN cache and the audit log.

Records are kept as JSON documents with the columns needed for key lookups,
prefix queries and month-bucket range queries alongside them.
"""
import json
import sqlite3
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class LedgerDB:
    """SQLite store with conditional inserts and prefix / month range queries."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        """Get a new connection (sqlite3 connections are not thread-safe)."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _init_db(self):
        conn = self._get_conn()
        try:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS ledger_entries (
                    shop TEXT NOT NULL,
                    sort_key TEXT NOT NULL,
                    order_number TEXT NOT NULL,
                    line_item_idx INTEGER NOT NULL,
                    invoice_date TEXT NOT NULL,
                    year_month TEXT NOT NULL,
                    year_month_invoice_date TEXT NOT NULL,
                    status TEXT NOT NULL,
                    data TEXT NOT NULL,
                    PRIMARY KEY (shop, sort_key)
                );
                CREATE INDEX IF NOT EXISTS idx_ledger_shop_month
                    ON ledger_entries (shop, year_month, year_month_invoice_date);

                CREATE TABLE IF NOT EXISTS invoices (
                    invoice_id TEXT PRIMARY KEY,
                    shop TEXT NOT NULL,
                    order_id TEXT NOT NULL,
                    order_name TEXT,
                    status TEXT NOT NULL,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    UNIQUE (shop, order_id)
                );

                CREATE TABLE IF NOT EXISTS orders (
                    shop TEXT NOT NULL,
                    name TEXT NOT NULL,
                    order_id TEXT,
                    status TEXT,
                    processing_state TEXT,
                    data TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    ttl INTEGER,
                    PRIMARY KEY (shop, name)
                );

                CREATE TABLE IF NOT EXISTS shops (
                    shop TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS products (
                    shop_product_id TEXT PRIMARY KEY,
                    shop TEXT NOT NULL,
                    product_id TEXT NOT NULL,
                    hsn_code TEXT,
                    title TEXT,
                    sku TEXT,
                    variant_id TEXT,
                    updated_at TEXT NOT NULL,
                    ttl INTEGER NOT NULL
                );

                CREATE TABLE IF NOT EXISTS audit_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    shop TEXT NOT NULL,
                    action TEXT NOT NULL,
                    details TEXT,
                    timestamp TEXT NOT NULL,
                    ttl INTEGER NOT NULL
                );
            """)
            conn.commit()
        finally:
            conn.close()

    # ────────────────────────────────────────────────────────────
    # Ledger entries
    # ────────────────────────────────────────────────────────────

    def put_ledger_batch(self, entries: List[Dict[str, Any]]) -> None:
        """Write one batch of ledger rows in a single transaction (put semantics)."""
        conn = self._get_conn()
        try:
            with conn:
                conn.executemany(
                    """INSERT OR REPLACE INTO ledger_entries
                       (shop, sort_key, order_number, line_item_idx, invoice_date,
                        year_month, year_month_invoice_date, status, data)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    [self._ledger_row(entry) for entry in entries],
                )
        finally:
            conn.close()

    def query_ledger_prefix(self, shop: str, prefix: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """All rows of a shop whose sort key begins with prefix, in key order."""
        sql = ("SELECT data FROM ledger_entries WHERE shop = ? "
               "AND substr(sort_key, 1, ?) = ? ORDER BY sort_key")
        params: List[Any] = [shop, len(prefix), prefix]
        if limit:
            sql += " LIMIT ?"
            params.append(limit)

        conn = self._get_conn()
        try:
            rows = conn.execute(sql, params).fetchall()
            return [json.loads(row["data"]) for row in rows]
        finally:
            conn.close()

    def query_ledger_month(self, shop: str, year_month: str) -> List[Dict[str, Any]]:
        """Rows in one year-month bucket, ordered by invoice date."""
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """SELECT data FROM ledger_entries WHERE shop = ? AND year_month = ?
                   ORDER BY year_month_invoice_date, sort_key""",
                (shop, year_month),
            ).fetchall()
            return [json.loads(row["data"]) for row in rows]
        finally:
            conn.close()

    def update_ledger_entry(self, shop: str, sort_key: str, fields: Dict[str, Any]) -> bool:
        """Merge fields into a stored row. Returns False when the row is missing."""
        conn = self._get_conn()
        try:
            with conn:
                row = conn.execute(
                    "SELECT data FROM ledger_entries WHERE shop = ? AND sort_key = ?",
                    (shop, sort_key),
                ).fetchone()
                if not row:
                    return False
                entry = json.loads(row["data"])
                entry.update(fields)
                conn.execute(
                    "UPDATE ledger_entries SET status = ?, data = ? WHERE shop = ? AND sort_key = ?",
                    (entry["status"], json.dumps(entry), shop, sort_key),
                )
            return True
        finally:
            conn.close()

    @staticmethod
    def _ledger_row(entry: Dict[str, Any]) -> tuple:
        return (
            entry["shop"],
            entry["orderNumber_lineItemIdx"],
            entry["orderNumber"],
            entry["lineItemIdx"],
            entry["invoiceDate"],
            entry["yearMonth"],
            entry["yearMonth_invoiceDate"],
            entry["status"],
            json.dumps(entry),
        )

    # ────────────────────────────────────────────────────────────
    # Invoices
    # ────────────────────────────────────────────────────────────

    def find_invoice_by_order(self, shop: str, order_id: str) -> Optional[Dict[str, Any]]:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT data FROM invoices WHERE shop = ? AND order_id = ? LIMIT 1",
                (shop, order_id),
            ).fetchone()
            return json.loads(row["data"]) if row else None
        finally:
            conn.close()

    def insert_invoice_if_absent(self, record: Dict[str, Any]) -> bool:
        """
        Insert an invoice record unless one exists for the id or the order.

        Returns:
            True if inserted, False if a record was already present.
        """
        conn = self._get_conn()
        try:
            conn.execute(
                """INSERT INTO invoices (invoice_id, shop, order_id, order_name, status, data, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    record["invoiceId"],
                    record["shop"],
                    record["orderId"],
                    record.get("orderName"),
                    record["status"],
                    json.dumps(record),
                    record["createdAt"],
                ),
            )
            conn.commit()
            return True
        except sqlite3.IntegrityError:
            return False
        finally:
            conn.close()

    # ────────────────────────────────────────────────────────────
    # Orders
    # ────────────────────────────────────────────────────────────

    def put_order(self, record: Dict[str, Any]) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """INSERT OR REPLACE INTO orders
                   (shop, name, order_id, status, processing_state, data, updated_at, ttl)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    record["shop"],
                    record["name"],
                    record.get("orderId"),
                    record.get("status"),
                    record.get("processingState"),
                    json.dumps(record),
                    record.get("updatedAt") or utc_now_iso(),
                    record.get("ttl"),
                ),
            )
            conn.commit()
        finally:
            conn.close()

    def get_order(self, shop: str, name: str) -> Optional[Dict[str, Any]]:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT data FROM orders WHERE shop = ? AND name = ?", (shop, name)
            ).fetchone()
            return json.loads(row["data"]) if row else None
        finally:
            conn.close()

    def update_order(self, shop: str, name: str, fields: Dict[str, Any], upsert: bool = True) -> bool:
        """
        Merge fields into an order record.

        Missing records are created from the fields when upsert is True,
        matching the update semantics of a key-value store.
        """
        conn = self._get_conn()
        try:
            with conn:
                row = conn.execute(
                    "SELECT data FROM orders WHERE shop = ? AND name = ?", (shop, name)
                ).fetchone()
                if row:
                    record = json.loads(row["data"])
                elif upsert:
                    record = {"shop": shop, "name": name}
                else:
                    return False

                record.update(fields)
                record["updatedAt"] = fields.get("updatedAt") or utc_now_iso()
                conn.execute(
                    """INSERT OR REPLACE INTO orders
                       (shop, name, order_id, status, processing_state, data, updated_at, ttl)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        shop,
                        name,
                        record.get("orderId"),
                        record.get("status"),
                        record.get("processingState"),
                        json.dumps(record),
                        record["updatedAt"],
                        record.get("ttl"),
                    ),
                )
            return True
        finally:
            conn.close()

    # ────────────────────────────────────────────────────────────
    # Shops
    # ────────────────────────────────────────────────────────────

    def get_shop(self, shop: str) -> Optional[Dict[str, Any]]:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT data FROM shops WHERE shop = ?", (shop,)).fetchone()
            return json.loads(row["data"]) if row else None
        finally:
            conn.close()

    def upsert_shop(self, shop: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        record = self.get_shop(shop) or {"shop": shop}
        record.update(fields)
        now = utc_now_iso()
        record["updatedAt"] = now

        conn = self._get_conn()
        try:
            conn.execute(
                "INSERT OR REPLACE INTO shops (shop, data, updated_at) VALUES (?, ?, ?)",
                (shop, json.dumps(record), now),
            )
            conn.commit()
            return record
        finally:
            conn.close()

    # ────────────────────────────────────────────────────────────
    # Product HSN cache
    # ────────────────────────────────────────────────────────────

    def get_product(self, shop: str, product_id: str, now: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """Cached product, or None when missing or past its ttl."""
        now = time.time() if now is None else now
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM products WHERE shop_product_id = ? AND ttl > ?",
                (f"{shop}#{product_id}", int(now)),
            ).fetchone()
            return dict(row) if row else None
        finally:
            conn.close()

    def put_products(self, shop: str, products: Iterable[Dict[str, Any]], ttl: int) -> None:
        now = utc_now_iso()
        conn = self._get_conn()
        try:
            with conn:
                conn.executemany(
                    """INSERT OR REPLACE INTO products
                       (shop_product_id, shop, product_id, hsn_code, title, sku, variant_id, updated_at, ttl)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    [
                        (
                            f"{shop}#{p['productId']}",
                            shop,
                            str(p["productId"]),
                            p.get("hsnCode"),
                            p.get("title", ""),
                            p.get("sku"),
                            p.get("variantId"),
                            p.get("updatedAt") or now,
                            ttl,
                        )
                        for p in products
                    ],
                )
        finally:
            conn.close()

    # ────────────────────────────────────────────────────────────
    # Audit log
    # ────────────────────────────────────────────────────────────

    def add_audit_log(self, shop: str, action: str, details: Dict[str, Any], ttl: int) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                "INSERT INTO audit_logs (shop, action, details, timestamp, ttl) VALUES (?, ?, ?, ?, ?)",
                (shop, action, json.dumps(details, default=str), utc_now_iso(), ttl),
            )
            conn.commit()
        finally:
            conn.close()

    def get_audit_logs(self, shop: str, action: Optional[str] = None) -> List[Dict[str, Any]]:
        sql = "SELECT * FROM audit_logs WHERE shop = ?"
        params: List[Any] = [shop]
        if action:
            sql += " AND action = ?"
            params.append(action)
        sql += " ORDER BY id"

        conn = self._get_conn()
        try:
            rows = conn.execute(sql, params).fetchall()
            return [
                {**dict(row), "details": json.loads(row["details"]) if row["details"] else {}}
                for row in rows
            ]
        finally:
            conn.close()

    def health_check(self) -> bool:
        conn = self._get_conn()
        try:
            conn.execute("SELECT 1").fetchone()
            return True
        finally:
            conn.close()
