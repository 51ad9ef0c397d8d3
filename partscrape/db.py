"""SQLite catalog schema and helpers.

Every helper opens its own short-lived connection, so helpers are safe to
call from several job threads at once. Writes are single-row upserts;
only a variant split touches several rows in one transaction.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional, Sequence

from partscrape.config import DB_PATH, DEFAULT_CURRENCY
from partscrape.models import (
    JobStatus,
    PriceHistoryPoint,
    Product,
    ProductDraft,
    ScrapingJob,
    VendorPrice,
)

__all__ = [
    "get_connection",
    "init_db",
    "now_timestamp",
    "upsert_vendor",
    "get_vendor_id",
    "find_product_by_name_or_sku",
    "create_product",
    "update_product",
    "get_product",
    "list_products",
    "delete_product",
    "get_product_count",
    "get_products_for_price_update",
    "copy_vendor_price",
    "upsert_vendor_price",
    "get_vendor_prices",
    "get_price_targets",
    "append_price_history",
    "get_price_history",
    "replace_product_with_drafts",
    "create_job",
    "update_job",
    "get_job",
    "list_jobs",
]

_PRODUCT_COLUMNS = ("name", "category", "brand", "sku", "description", "image_url", "specifications")
_JOB_COLUMNS = (
    "status",
    "started_at",
    "completed_at",
    "products_found",
    "products_created",
    "products_updated",
    "error_count",
    "error_message",
)


def now_timestamp() -> str:
    """UTC timestamp in SQLite's CURRENT_TIMESTAMP format."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


@contextmanager
def get_connection(db_path: str = DB_PATH) -> Generator[sqlite3.Connection, None, None]:
    """Context manager for database connections."""
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=30)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: str = DB_PATH) -> None:
    """Initialize the database schema."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS vendors (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT UNIQUE NOT NULL,
                website TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS products (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                category TEXT NOT NULL,
                brand TEXT,
                sku TEXT,
                description TEXT,
                image_url TEXT,
                specs_json TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # One row per (product, vendor)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS vendor_prices (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                product_id INTEGER NOT NULL,
                vendor_id INTEGER NOT NULL,
                price REAL NOT NULL,
                currency TEXT NOT NULL DEFAULT 'USD',
                url TEXT NOT NULL,
                in_stock INTEGER NOT NULL DEFAULT 1,
                last_updated TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE (product_id, vendor_id),
                FOREIGN KEY (product_id) REFERENCES products(id) ON DELETE CASCADE,
                FOREIGN KEY (vendor_id) REFERENCES vendors(id) ON DELETE CASCADE
            )
        """)

        # Append-only
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS price_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                product_id INTEGER NOT NULL,
                vendor_id INTEGER NOT NULL,
                price REAL NOT NULL,
                recorded_at TIMESTAMP NOT NULL,
                FOREIGN KEY (product_id) REFERENCES products(id) ON DELETE CASCADE,
                FOREIGN KEY (vendor_id) REFERENCES vendors(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS scraping_jobs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                vendor TEXT NOT NULL DEFAULT 'all',
                category TEXT NOT NULL DEFAULT 'all',
                job_type TEXT NOT NULL DEFAULT 'full',
                status TEXT NOT NULL DEFAULT 'PENDING',
                started_at TIMESTAMP,
                completed_at TIMESTAMP,
                products_found INTEGER NOT NULL DEFAULT 0,
                products_created INTEGER NOT NULL DEFAULT 0,
                products_updated INTEGER NOT NULL DEFAULT 0,
                error_count INTEGER NOT NULL DEFAULT 0,
                error_message TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_products_name ON products(name COLLATE NOCASE)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_products_sku ON products(sku)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_products_category ON products(category)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_price_history_product ON price_history(product_id, recorded_at)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_scraping_jobs_status ON scraping_jobs(status)")

        conn.commit()


# =============================================================================
# Row conversion
# =============================================================================

def _row_to_product(row: sqlite3.Row) -> Product:
    specs = {}
    if row["specs_json"]:
        try:
            specs = json.loads(row["specs_json"])
        except json.JSONDecodeError:
            specs = {}
    return Product(
        id=row["id"],
        name=row["name"],
        category=row["category"],
        brand=row["brand"],
        sku=row["sku"],
        description=row["description"],
        image_url=row["image_url"],
        specifications=specs,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_job(row: sqlite3.Row) -> ScrapingJob:
    return ScrapingJob(
        id=row["id"],
        vendor=row["vendor"],
        category=row["category"],
        job_type=row["job_type"],
        status=JobStatus(row["status"]),
        started_at=row["started_at"],
        completed_at=row["completed_at"],
        products_found=row["products_found"],
        products_created=row["products_created"],
        products_updated=row["products_updated"],
        error_count=row["error_count"],
        error_message=row["error_message"],
        created_at=row["created_at"],
    )


def _to_decimal(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"))


def _specs_json(specs: Optional[Dict[str, Any]]) -> Optional[str]:
    return json.dumps(specs, ensure_ascii=False) if specs else None


# =============================================================================
# Vendors
# =============================================================================

def upsert_vendor(db_path: str, name: str, website: Optional[str] = None) -> int:
    """Return the vendor's id, creating the row if needed. Existing rows are left alone."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute(
            "INSERT INTO vendors (name, website) VALUES (?, ?) ON CONFLICT(name) DO NOTHING",
            (name, website),
        )
        cursor.execute("SELECT id FROM vendors WHERE name = ?", (name,))
        vendor_id = cursor.fetchone()["id"]
        conn.commit()
        return vendor_id


def get_vendor_id(db_path: str, name: str) -> Optional[int]:
    with get_connection(db_path) as conn:
        row = conn.execute("SELECT id FROM vendors WHERE name = ?", (name,)).fetchone()
        return row["id"] if row else None


# =============================================================================
# Products
# =============================================================================

def find_product_by_name_or_sku(
    db_path: str,
    name: str,
    sku: Optional[str] = None,
) -> Optional[Product]:
    """Find an existing product by case-insensitive name, else by SKU.

    A name match is preferred over a SKU match when both exist.
    """
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute(
            "SELECT * FROM products WHERE name = ? COLLATE NOCASE ORDER BY id LIMIT 1",
            (name,),
        )
        row = cursor.fetchone()
        if row is None and sku:
            cursor.execute(
                "SELECT * FROM products WHERE sku = ? AND sku != '' ORDER BY id LIMIT 1",
                (sku,),
            )
            row = cursor.fetchone()
        return _row_to_product(row) if row else None


def create_product(
    db_path: str,
    name: str,
    category: str,
    brand: Optional[str] = None,
    sku: Optional[str] = None,
    description: Optional[str] = None,
    image_url: Optional[str] = None,
    specifications: Optional[Dict[str, Any]] = None,
) -> int:
    """Insert a product, returning its ID."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO products (name, category, brand, sku, description, image_url, specs_json)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (name, category, brand, sku, description, image_url, _specs_json(specifications)))
        conn.commit()
        return cursor.lastrowid


def update_product(db_path: str, product_id: int, **fields: Any) -> bool:
    """Update the given product columns. Unknown keys raise ValueError."""
    unknown = set(fields) - set(_PRODUCT_COLUMNS)
    if unknown:
        raise ValueError(f"Unknown product fields: {sorted(unknown)}")

    assignments = []
    values: List[Any] = []
    for key, value in fields.items():
        if key == "specifications":
            assignments.append("specs_json = ?")
            values.append(_specs_json(value))
        else:
            assignments.append(f"{key} = ?")
            values.append(value)
    assignments.append("updated_at = ?")
    values.append(now_timestamp())
    values.append(product_id)

    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute(f"UPDATE products SET {', '.join(assignments)} WHERE id = ?", values)
        conn.commit()
        return cursor.rowcount > 0


def get_product(db_path: str, product_id: int) -> Optional[Product]:
    with get_connection(db_path) as conn:
        row = conn.execute("SELECT * FROM products WHERE id = ?", (product_id,)).fetchone()
        return _row_to_product(row) if row else None


def list_products(db_path: str = DB_PATH, category: Optional[str] = None) -> List[Product]:
    with get_connection(db_path) as conn:
        if category:
            rows = conn.execute("SELECT * FROM products WHERE category = ? ORDER BY id", (category,))
        else:
            rows = conn.execute("SELECT * FROM products ORDER BY id")
        return [_row_to_product(row) for row in rows.fetchall()]


def get_products_for_price_update(
    db_path: str,
    limit: int,
    vendor: Optional[str] = None,
) -> List[Product]:
    """The `limit` least recently updated products that have a price row.

    With `vendor`, only products priced by that vendor are considered, so
    other vendors' stale rows never use up the batch.
    """
    query = "SELECT * FROM products WHERE id IN (SELECT vp.product_id FROM vendor_prices vp"
    params: List[Any] = []
    if vendor:
        query += " JOIN vendors v ON v.id = vp.vendor_id WHERE v.name = ? COLLATE NOCASE"
        params.append(vendor)
    query += ") ORDER BY updated_at ASC, id ASC LIMIT ?"
    params.append(limit)
    with get_connection(db_path) as conn:
        return [_row_to_product(row) for row in conn.execute(query, params).fetchall()]


def delete_product(
    db_path: str,
    product_id: int,
    conn: Optional[sqlite3.Connection] = None,
) -> bool:
    """Delete a product; its price rows go with it (cascade).

    With `conn`, the delete joins that connection's open transaction and
    is not committed here.
    """
    if conn is not None:
        return conn.execute("DELETE FROM products WHERE id = ?", (product_id,)).rowcount > 0
    with get_connection(db_path) as own:
        deleted = own.execute("DELETE FROM products WHERE id = ?", (product_id,)).rowcount > 0
        own.commit()
        return deleted


def get_product_count(db_path: str = DB_PATH, category: Optional[str] = None) -> int:
    with get_connection(db_path) as conn:
        if category:
            row = conn.execute("SELECT COUNT(*) AS count FROM products WHERE category = ?", (category,))
        else:
            row = conn.execute("SELECT COUNT(*) AS count FROM products")
        return row.fetchone()["count"]


# =============================================================================
# Prices
# =============================================================================

def _write_vendor_price(
    conn: sqlite3.Connection,
    product_id: int,
    vendor_id: int,
    price: Decimal,
    url: str,
    in_stock: bool,
    currency: str,
    last_updated: str,
) -> int:
    conn.execute("""
        INSERT INTO vendor_prices (product_id, vendor_id, price, currency, url, in_stock, last_updated)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(product_id, vendor_id) DO UPDATE SET
            price = excluded.price,
            currency = excluded.currency,
            url = excluded.url,
            in_stock = excluded.in_stock,
            last_updated = excluded.last_updated
    """, (product_id, vendor_id, float(price), currency, url, int(in_stock), last_updated))
    row = conn.execute(
        "SELECT id FROM vendor_prices WHERE product_id = ? AND vendor_id = ?",
        (product_id, vendor_id),
    ).fetchone()
    return row["id"]


def upsert_vendor_price(
    db_path: str,
    product_id: int,
    vendor_id: int,
    price: Decimal,
    url: str,
    in_stock: bool = True,
    currency: str = DEFAULT_CURRENCY,
    last_updated: Optional[str] = None,
) -> int:
    """Insert or update the (product, vendor) price row, returning its ID."""
    with get_connection(db_path) as conn:
        price_id = _write_vendor_price(
            conn, product_id, vendor_id, price, url, in_stock, currency,
            last_updated or now_timestamp(),
        )
        conn.commit()
        return price_id


def _row_to_vendor_price(row: sqlite3.Row) -> VendorPrice:
    return VendorPrice(
        id=row["id"],
        product_id=row["product_id"],
        vendor_id=row["vendor_id"],
        price=_to_decimal(row["price"]),
        currency=row["currency"],
        url=row["url"],
        in_stock=bool(row["in_stock"]),
        last_updated=row["last_updated"],
    )


def copy_vendor_price(
    db_path: str,
    price: VendorPrice,
    product_id: int,
    conn: Optional[sqlite3.Connection] = None,
) -> int:
    """Copy one price row onto another product, keeping vendor/price/url/stock/last_updated.

    With `conn`, the write joins that connection's open transaction.
    """
    values = (product_id, price.vendor_id, price.price, price.url, price.in_stock,
              price.currency, price.last_updated or now_timestamp())
    if conn is not None:
        return _write_vendor_price(conn, *values)
    with get_connection(db_path) as own:
        price_id = _write_vendor_price(own, *values)
        own.commit()
        return price_id


def get_vendor_prices(db_path: str, product_id: int) -> List[VendorPrice]:
    with get_connection(db_path) as conn:
        rows = conn.execute(
            "SELECT * FROM vendor_prices WHERE product_id = ? ORDER BY vendor_id",
            (product_id,),
        ).fetchall()
        return [_row_to_vendor_price(row) for row in rows]


def get_price_targets(db_path: str, limit: int, vendor: Optional[str] = None) -> List[Dict[str, Any]]:
    """Price rows of the least recently updated products, with vendor names.

    Used by the price-only refresh. With `vendor`, both the product batch
    and the returned rows are restricted to that vendor.
    """
    products = get_products_for_price_update(db_path, limit, vendor=vendor)
    if not products:
        return []
    order = {p.id: i for i, p in enumerate(products)}
    placeholders = ", ".join("?" for _ in products)
    query = f"""
        SELECT vp.product_id, vp.vendor_id, vp.url, v.name AS vendor, p.name AS product_name
        FROM vendor_prices vp
        JOIN vendors v ON v.id = vp.vendor_id
        JOIN products p ON p.id = vp.product_id
        WHERE vp.product_id IN ({placeholders})
    """
    params: List[Any] = list(order)
    if vendor:
        query += " AND v.name = ? COLLATE NOCASE"
        params.append(vendor)
    with get_connection(db_path) as conn:
        rows = [dict(row) for row in conn.execute(query, params).fetchall()]
    return sorted(rows, key=lambda r: (order[r["product_id"]], r["vendor"]))


def append_price_history(
    db_path: str,
    product_id: int,
    vendor_id: int,
    price: Decimal,
    recorded_at: Optional[str] = None,
) -> int:
    """Append one price observation. History rows are never updated."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute(
            "INSERT INTO price_history (product_id, vendor_id, price, recorded_at) VALUES (?, ?, ?, ?)",
            (product_id, vendor_id, float(price), recorded_at or now_timestamp()),
        )
        conn.commit()
        return cursor.lastrowid


def get_price_history(
    db_path: str,
    product_id: int,
    vendor_id: Optional[int] = None,
    since: Optional[str] = None,
) -> List[PriceHistoryPoint]:
    query = "SELECT * FROM price_history WHERE product_id = ?"
    params: List[Any] = [product_id]
    if vendor_id is not None:
        query += " AND vendor_id = ?"
        params.append(vendor_id)
    if since is not None:
        query += " AND recorded_at >= ?"
        params.append(since)
    query += " ORDER BY recorded_at, id"
    with get_connection(db_path) as conn:
        return [
            PriceHistoryPoint(
                id=row["id"],
                product_id=row["product_id"],
                vendor_id=row["vendor_id"],
                price=_to_decimal(row["price"]),
                recorded_at=row["recorded_at"],
            )
            for row in conn.execute(query, params).fetchall()
        ]


# =============================================================================
# Variant split
# =============================================================================

def replace_product_with_drafts(
    db_path: str,
    product_id: int,
    drafts: Sequence[ProductDraft],
) -> List[Product]:
    """Create one product per draft, copy every vendor price row of the
    original onto each, then delete the original. One transaction.
    """
    created: List[Product] = []
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        try:
            prices = [
                _row_to_vendor_price(row)
                for row in cursor.execute(
                    "SELECT * FROM vendor_prices WHERE product_id = ?", (product_id,)
                ).fetchall()
            ]

            for draft in drafts:
                cursor.execute("""
                    INSERT INTO products (name, category, brand, sku, description, image_url, specs_json)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                """, (draft.name, draft.category, draft.brand, draft.sku, draft.description,
                      draft.image_url, _specs_json(draft.specifications)))
                new_id = cursor.lastrowid

                for price in prices:
                    copy_vendor_price(db_path, price, new_id, conn=conn)

                row = cursor.execute("SELECT * FROM products WHERE id = ?", (new_id,)).fetchone()
                created.append(_row_to_product(row))

            delete_product(db_path, product_id, conn=conn)
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            raise
    return created


# =============================================================================
# Jobs
# =============================================================================

def create_job(
    db_path: str,
    vendor: str = "all",
    category: str = "all",
    job_type: str = "full",
) -> ScrapingJob:
    """Create a PENDING job row."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute(
            "INSERT INTO scraping_jobs (vendor, category, job_type, status, created_at) VALUES (?, ?, ?, ?, ?)",
            (vendor, category, job_type, JobStatus.PENDING.value, now_timestamp()),
        )
        job_id = cursor.lastrowid
        conn.commit()
        row = cursor.execute("SELECT * FROM scraping_jobs WHERE id = ?", (job_id,)).fetchone()
        return _row_to_job(row)


def update_job(db_path: str, job_id: int, **fields: Any) -> None:
    """Update job columns (status accepts a JobStatus or its string value)."""
    unknown = set(fields) - set(_JOB_COLUMNS)
    if unknown:
        raise ValueError(f"Unknown job fields: {sorted(unknown)}")
    if not fields:
        return
    if isinstance(fields.get("status"), JobStatus):
        fields["status"] = fields["status"].value

    set_clause = ", ".join(f"{k} = ?" for k in fields)
    with get_connection(db_path) as conn:
        conn.execute(f"UPDATE scraping_jobs SET {set_clause} WHERE id = ?", [*fields.values(), job_id])
        conn.commit()


def get_job(db_path: str, job_id: int) -> Optional[ScrapingJob]:
    with get_connection(db_path) as conn:
        row = conn.execute("SELECT * FROM scraping_jobs WHERE id = ?", (job_id,)).fetchone()
        return _row_to_job(row) if row else None


def list_jobs(
    db_path: str = DB_PATH,
    limit: int = 50,
    status: Optional[JobStatus] = None,
) -> List[ScrapingJob]:
    """Most recent jobs first."""
    with get_connection(db_path) as conn:
        if status is not None:
            rows = conn.execute(
                "SELECT * FROM scraping_jobs WHERE status = ? ORDER BY id DESC LIMIT ?",
                (JobStatus(status).value, limit),
            )
        else:
            rows = conn.execute("SELECT * FROM scraping_jobs ORDER BY id DESC LIMIT ?", (limit,))
        return [_row_to_job(row) for row in rows.fetchall()]
