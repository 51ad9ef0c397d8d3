"""Price statistics and catalog export on top of the SQLite store."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from partscrape.config import DB_PATH, OUTPUT_PATH, PRICE_HISTORY_WINDOW_DAYS
from partscrape.db import get_connection

__all__ = ["get_price_stats", "catalog_frame", "export_catalog_csv", "category_breakdown"]


def _parse_specs(specs_json: Optional[str]) -> Dict[str, Any]:
    if not specs_json or pd.isna(specs_json):
        return {}
    try:
        result = json.loads(specs_json)
    except json.JSONDecodeError:
        return {}
    return dict(result) if isinstance(result, dict) else {}


def get_price_stats(
    product_id: int,
    days: int = PRICE_HISTORY_WINDOW_DAYS,
    db_path: str = DB_PATH,
) -> List[Dict[str, Any]]:
    """Per-vendor min/max/mean/latest price over the trailing `days`.

    Returns one dict per vendor, sorted by vendor name; empty when the
    product has no history in the window.
    """
    since = (datetime.now(timezone.utc) - timedelta(days=days)).strftime("%Y-%m-%d %H:%M:%S")
    query = """
        SELECT v.name AS vendor, ph.price, ph.recorded_at, ph.id
        FROM price_history ph
        JOIN vendors v ON v.id = ph.vendor_id
        WHERE ph.product_id = ? AND ph.recorded_at >= ?
        ORDER BY ph.recorded_at, ph.id
    """
    with get_connection(db_path) as conn:
        df = pd.read_sql_query(query, conn, params=[product_id, since])

    if df.empty:
        return []

    grouped = df.groupby("vendor", sort=True)
    stats = grouped["price"].agg(["min", "max", "mean", "count"])
    latest = grouped.tail(1).set_index("vendor")

    return [
        {
            "vendor": vendor,
            "min": round(float(row["min"]), 2),
            "max": round(float(row["max"]), 2),
            "mean": round(float(row["mean"]), 2),
            "latest": round(float(latest.loc[vendor, "price"]), 2),
            "latest_at": latest.loc[vendor, "recorded_at"],
            "points": int(row["count"]),
        }
        for vendor, row in stats.iterrows()
    ]


def catalog_frame(db_path: str = DB_PATH, category: Optional[str] = None) -> pd.DataFrame:
    """One row per product with its best current price and flattened specs.

    Spec columns are prefixed with `spec_`.
    """
    query = """
        SELECT p.id, p.name, p.category, p.brand, p.sku, p.image_url, p.specs_json,
               MIN(vp.price) AS best_price,
               COUNT(vp.id) AS vendor_count,
               SUM(CASE WHEN vp.in_stock = 1 THEN 1 ELSE 0 END) AS in_stock_count,
               p.updated_at
        FROM products p
        LEFT JOIN vendor_prices vp ON vp.product_id = p.id
    """
    params: List[Any] = []
    if category:
        query += " WHERE p.category = ?"
        params.append(category)
    query += " GROUP BY p.id ORDER BY p.category, p.name"

    with get_connection(db_path) as conn:
        df = pd.read_sql_query(query, conn, params=params)

    if df.empty:
        return df.drop(columns=["specs_json"])

    specs = pd.DataFrame([_parse_specs(s) for s in df["specs_json"]], index=df.index)
    specs = specs.add_prefix("spec_")
    return pd.concat([df.drop(columns=["specs_json"]), specs], axis=1)


def export_catalog_csv(
    path: str = OUTPUT_PATH,
    db_path: str = DB_PATH,
    category: Optional[str] = None,
) -> int:
    """Write the catalog to CSV. Returns the number of rows written."""
    df = catalog_frame(db_path, category=category)
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)
    return len(df)


def category_breakdown(db_path: str = DB_PATH) -> Dict[str, Any]:
    """Product counts per category, and per category within each brand.

    Products without a brand are counted under "Unknown".
    """
    with get_connection(db_path) as conn:
        df = pd.read_sql_query("SELECT category, brand FROM products", conn)

    if df.empty:
        return {"category_distribution": {}, "brand_breakdown": {}}

    df["brand"] = df["brand"].fillna("Unknown")
    distribution = df["category"].value_counts()
    by_brand = df.groupby(["brand", "category"]).size()

    brand_breakdown: Dict[str, Dict[str, int]] = {}
    for (brand, category), count in by_brand.items():
        brand_breakdown.setdefault(brand, {})[category] = int(count)

    return {
        "category_distribution": {category: int(count) for category, count in distribution.items()},
        "brand_breakdown": brand_breakdown,
    }
