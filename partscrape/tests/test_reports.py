"""Tests for price statistics and catalog export."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pandas as pd

from partscrape.db import append_price_history, create_product, upsert_vendor, upsert_vendor_price
from partscrape.reports import catalog_frame, export_catalog_csv, get_price_stats


def _ts(days_ago: float) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days_ago)).strftime("%Y-%m-%d %H:%M:%S")


def test_price_stats_per_vendor(db_path):
    product_id = create_product(db_path, "Motor", "motor")
    rdq = upsert_vendor(db_path, "RDQ")
    pyro = upsert_vendor(db_path, "Pyrodrone")
    for days, price in ((40, "50.00"), (10, "30.00"), (5, "20.00"), (1, "25.00")):
        append_price_history(db_path, product_id, rdq, Decimal(price), _ts(days))
    append_price_history(db_path, product_id, pyro, Decimal("27.00"), _ts(2))

    stats = get_price_stats(product_id, days=30, db_path=db_path)

    assert [s["vendor"] for s in stats] == ["Pyrodrone", "RDQ"]
    rdq_stats = stats[1]
    assert rdq_stats["min"] == 20.0
    assert rdq_stats["max"] == 30.0
    assert rdq_stats["mean"] == 25.0
    assert rdq_stats["latest"] == 25.0
    assert rdq_stats["points"] == 3


def test_price_stats_empty(db_path):
    product_id = create_product(db_path, "Motor", "motor")
    assert get_price_stats(product_id, db_path=db_path) == []


def test_catalog_frame_flattens_specs(db_path):
    motor = create_product(db_path, "Motor", "motor", specifications={"kv": 1950})
    create_product(db_path, "Props", "prop", specifications={"size": "5x4.3x3"})
    rdq = upsert_vendor(db_path, "RDQ")
    pyro = upsert_vendor(db_path, "Pyrodrone")
    upsert_vendor_price(db_path, motor, rdq, Decimal("30.00"), "https://rdq/m")
    upsert_vendor_price(db_path, motor, pyro, Decimal("28.00"), "https://pyro/m", in_stock=False)

    df = catalog_frame(db_path)

    row = df[df["name"] == "Motor"].iloc[0]
    assert row["best_price"] == 28.0
    assert row["vendor_count"] == 2
    assert row["in_stock_count"] == 1
    assert row["spec_kv"] == 1950
    assert pd.isna(df[df["name"] == "Props"].iloc[0]["best_price"])
    assert "specs_json" not in df.columns


def test_export_catalog_csv(db_path, tmp_path):
    create_product(db_path, "Motor", "motor", specifications={"kv": 1950})
    create_product(db_path, "Props", "prop")
    out = tmp_path / "export" / "catalog.csv"

    count = export_catalog_csv(str(out), db_path=db_path, category="motor")

    assert count == 1
    df = pd.read_csv(out)
    assert list(df["name"]) == ["Motor"]
