"""Tests for the SQLite catalog helpers."""

from decimal import Decimal

import pytest

from partscrape.db import (
    append_price_history,
    copy_vendor_price,
    create_job,
    create_product,
    delete_product,
    find_product_by_name_or_sku,
    get_job,
    get_price_history,
    get_price_targets,
    get_product,
    get_product_count,
    get_products_for_price_update,
    get_vendor_prices,
    init_db,
    list_jobs,
    update_job,
    update_product,
    upsert_vendor,
    upsert_vendor_price,
)
from partscrape.models import JobStatus


class TestVendorsAndProducts:
    def test_init_db_is_idempotent(self, db_path):
        init_db(db_path)
        assert get_product_count(db_path) == 0

    def test_upsert_vendor_returns_same_id(self, db_path):
        first = upsert_vendor(db_path, "RDQ", "https://www.racedayquads.com")
        second = upsert_vendor(db_path, "RDQ")
        assert first == second

    def test_create_and_get_product_round_trips_specs(self, db_path):
        product_id = create_product(db_path, "EMAX 2207 Motor", "motor", specifications={"kv": 1900})
        product = get_product(db_path, product_id)
        assert product.name == "EMAX 2207 Motor"
        assert product.specifications == {"kv": 1900}

    def test_find_by_name_is_case_insensitive(self, db_path):
        product_id = create_product(db_path, "EMAX 2207 Motor", "motor")
        assert find_product_by_name_or_sku(db_path, "emax 2207 motor").id == product_id

    def test_find_by_sku_when_name_differs(self, db_path):
        product_id = create_product(db_path, "EMAX 2207 Motor", "motor", sku="ECO2207")
        assert find_product_by_name_or_sku(db_path, "Renamed", sku="ECO2207").id == product_id
        assert find_product_by_name_or_sku(db_path, "Renamed", sku=None) is None

    def test_name_match_preferred_over_sku(self, db_path):
        by_sku = create_product(db_path, "Other", "motor", sku="X1")
        by_name = create_product(db_path, "Target", "motor", sku="Y2")
        assert find_product_by_name_or_sku(db_path, "Target", sku="X1").id == by_name
        assert by_sku != by_name

    def test_update_product_rejects_unknown_fields(self, db_path):
        product_id = create_product(db_path, "A", "other")
        with pytest.raises(ValueError):
            update_product(db_path, product_id, price=3)

    def test_update_product(self, db_path):
        product_id = create_product(db_path, "A", "other")
        assert update_product(db_path, product_id, brand="Acme", specifications={"size": "5inch"})
        product = get_product(db_path, product_id)
        assert product.brand == "Acme"
        assert product.specifications == {"size": "5inch"}

    def test_count_by_category(self, db_path):
        create_product(db_path, "A", "motor")
        create_product(db_path, "B", "prop")
        assert get_product_count(db_path) == 2
        assert get_product_count(db_path, "motor") == 1


class TestPrices:
    def _seed(self, db_path):
        vendor_id = upsert_vendor(db_path, "RDQ")
        product_id = create_product(db_path, "Motor", "motor")
        return product_id, vendor_id

    def test_vendor_price_unique_per_product_vendor(self, db_path):
        product_id, vendor_id = self._seed(db_path)
        first = upsert_vendor_price(db_path, product_id, vendor_id, Decimal("20.00"), "https://a/p")
        second = upsert_vendor_price(db_path, product_id, vendor_id, Decimal("18.50"), "https://a/p", in_stock=False)

        prices = get_vendor_prices(db_path, product_id)
        assert first == second
        assert len(prices) == 1
        assert prices[0].price == Decimal("18.50")
        assert prices[0].in_stock is False

    def test_history_appends(self, db_path):
        product_id, vendor_id = self._seed(db_path)
        append_price_history(db_path, product_id, vendor_id, Decimal("20.00"), "2024-01-01 00:00:00")
        append_price_history(db_path, product_id, vendor_id, Decimal("20.00"), "2024-01-02 00:00:00")

        history = get_price_history(db_path, product_id)
        assert [h.price for h in history] == [Decimal("20.00"), Decimal("20.00")]
        assert len(get_price_history(db_path, product_id, since="2024-01-02 00:00:00")) == 1

    def test_delete_cascades_prices(self, db_path):
        product_id, vendor_id = self._seed(db_path)
        upsert_vendor_price(db_path, product_id, vendor_id, Decimal("20.00"), "https://a/p")
        append_price_history(db_path, product_id, vendor_id, Decimal("20.00"))

        assert delete_product(db_path, product_id)
        assert get_vendor_prices(db_path, product_id) == []
        assert get_price_history(db_path, product_id) == []

    def test_copy_vendor_price(self, db_path):
        product_id, vendor_id = self._seed(db_path)
        upsert_vendor_price(db_path, product_id, vendor_id, Decimal("20.00"), "https://a/p",
                            last_updated="2024-03-01 10:00:00")
        target = create_product(db_path, "Motor B", "motor")

        copy_vendor_price(db_path, get_vendor_prices(db_path, product_id)[0], target)

        copied = get_vendor_prices(db_path, target)[0]
        assert copied.price == Decimal("20.00")
        assert copied.url == "https://a/p"
        assert copied.last_updated == "2024-03-01 10:00:00"

    def test_price_update_targets_skip_unpriced_products(self, db_path):
        product_id, vendor_id = self._seed(db_path)
        create_product(db_path, "No price", "motor")
        upsert_vendor_price(db_path, product_id, vendor_id, Decimal("20.00"), "https://a/p")

        assert [p.id for p in get_products_for_price_update(db_path, 10)] == [product_id]
        targets = get_price_targets(db_path, 10)
        assert targets == [{
            "product_id": product_id,
            "vendor_id": vendor_id,
            "url": "https://a/p",
            "vendor": "RDQ",
            "product_name": "Motor",
        }]

    def test_vendor_scoped_targets_ignore_other_vendors_stale_rows(self, db_path):
        other = upsert_vendor(db_path, "OtherShop")
        mine = upsert_vendor(db_path, "RDQ")
        for name in ("Old A", "Old B"):
            stale = create_product(db_path, name, "motor")
            upsert_vendor_price(db_path, stale, other, Decimal("10.00"), f"https://other/{name}")
        product_id = create_product(db_path, "Fresh", "motor")
        upsert_vendor_price(db_path, product_id, mine, Decimal("20.00"), "https://rdq/fresh")

        assert [p.id for p in get_products_for_price_update(db_path, 2, vendor="RDQ")] == [product_id]
        targets = get_price_targets(db_path, 2, vendor="rdq")
        assert [(t["product_id"], t["vendor"]) for t in targets] == [(product_id, "RDQ")]
        assert len(get_price_targets(db_path, 2)) == 2


class TestJobs:
    def test_create_job_is_pending(self, db_path):
        job = create_job(db_path, vendor="RDQ", category="motor")
        assert job.status == JobStatus.PENDING
        assert job.vendor == "RDQ"
        assert job.products_found == 0

    def test_update_and_list(self, db_path):
        first = create_job(db_path)
        second = create_job(db_path, job_type="price")
        update_job(db_path, first.id, status=JobStatus.COMPLETED, products_found=3)

        assert get_job(db_path, first.id).status == JobStatus.COMPLETED
        assert get_job(db_path, first.id).products_found == 3
        assert [j.id for j in list_jobs(db_path)] == [second.id, first.id]
        assert [j.id for j in list_jobs(db_path, status=JobStatus.PENDING)] == [second.id]

    def test_update_job_rejects_unknown_fields(self, db_path):
        job = create_job(db_path)
        with pytest.raises(ValueError):
            update_job(db_path, job.id, vendor="RDQ")

    def test_missing_job(self, db_path):
        assert get_job(db_path, 999) is None
