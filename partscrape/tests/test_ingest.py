"""Tests for reconciling scraped products into the catalog."""

from decimal import Decimal
from unittest.mock import patch

from partscrape.db import (
    get_price_history,
    get_product,
    get_product_count,
    get_vendor_id,
    get_vendor_prices,
    list_products,
)
from partscrape.ingest import ingest_product, ingest_products, validate_specifications


class TestValidateSpecifications:
    def test_keys_normalized_and_bad_values_dropped(self):
        specs = validate_specifications("motor", {
            "KV Rating": 1950,
            "Weight:": " 33g ",
            "nested": {"a": 1},
            "empty": "",
            "missing": None,
            "nan": float("nan"),
            "waterproof": True,
        })
        assert specs == {"kv_rating": 1950, "weight": "33g", "waterproof": "yes"}

    def test_vendor_specific_keys_kept(self):
        assert validate_specifications("motor", {"bearing_brand": "NSK"}) == {"bearing_brand": "NSK"}

    def test_empty(self):
        assert validate_specifications("motor", None) == {}


class TestIngestProduct:
    def test_creates_product_price_and_history(self, db_path, make_scraped):
        assert ingest_product(db_path, make_scraped()) == "created"

        product = list_products(db_path)[0]
        vendor_id = get_vendor_id(db_path, "RDQ")
        prices = get_vendor_prices(db_path, product.id)
        assert product.brand == "T-Motor"
        assert product.specifications == {"kv": 1950, "stator_size": "2207"}
        assert prices[0].vendor_id == vendor_id
        assert prices[0].price == Decimal("29.99")
        assert len(get_price_history(db_path, product.id)) == 1

    def test_second_ingest_updates_and_appends_history(self, db_path, make_scraped):
        ingest_product(db_path, make_scraped())
        assert ingest_product(db_path, make_scraped(price=Decimal("27.50"))) == "updated"

        product = list_products(db_path)[0]
        assert get_product_count(db_path) == 1
        assert [h.price for h in get_price_history(db_path, product.id)] == [Decimal("29.99"), Decimal("27.50")]
        assert get_vendor_prices(db_path, product.id)[0].price == Decimal("27.50")

    def test_unset_fields_fall_back_to_existing(self, db_path, make_scraped):
        ingest_product(db_path, make_scraped())
        ingest_product(db_path, make_scraped(brand=None, description=None, image_url=None, specifications={}))

        product = list_products(db_path)[0]
        assert product.brand == "T-Motor"
        assert product.description == "Freestyle motor"
        assert product.image_url == "https://cdn.example.com/f60.jpg"
        assert product.specifications == {"kv": 1950, "stator_size": "2207"}

    def test_match_by_sku(self, db_path, make_scraped):
        ingest_product(db_path, make_scraped())
        assert ingest_product(db_path, make_scraped(name="F60 Pro IV 1950KV", vendor="Pyrodrone")) == "updated"
        product = list_products(db_path)[0]
        assert len(get_vendor_prices(db_path, product.id)) == 2

    def test_unpriced_product_stored_without_price_rows(self, db_path, make_scraped):
        ingest_product(db_path, make_scraped(price=None))
        product = list_products(db_path)[0]
        assert get_vendor_prices(db_path, product.id) == []
        assert get_price_history(db_path, product.id) == []

    def test_raw_vendor_category_is_classified(self, db_path, make_scraped):
        ingest_product(db_path, make_scraped(name="EMAX ECO II 2207 1900KV Motor", category="Brushless Motors"))
        assert list_products(db_path)[0].category == "motor"

    def test_unrecognized_raw_category_falls_back_to_other(self, db_path, make_scraped):
        ingest_product(db_path, make_scraped(name="Widget 123", category="gimbal", description=None,
                                             specifications={}))
        assert list_products(db_path)[0].category == "other"


class TestIngestProducts:
    def test_counters_add_up(self, db_path, make_scraped):
        items = [
            make_scraped(),
            make_scraped(),
            make_scraped(name="  ", sku=None),
            make_scraped(name="Gemfan 51466 Props", category="prop", sku="G51466"),
        ]
        stats = ingest_products(db_path, items, job_id=1)

        assert stats.to_dict() == {"found": 4, "created": 2, "updated": 1, "errors": 1}
        assert stats.found == stats.created + stats.updated + stats.errors

    def test_storage_failure_is_counted_not_raised(self, db_path, make_scraped):
        with patch("partscrape.ingest.upsert_vendor", side_effect=RuntimeError("disk full")):
            stats = ingest_products(db_path, [make_scraped(), make_scraped(name="Other")])
        assert stats.errors == 2
        assert get_product_count(db_path) == 0

    def test_consumes_generators(self, db_path, make_scraped):
        stats = ingest_products(db_path, (make_scraped(name=f"Motor {i}", sku=None) for i in range(3)))
        assert stats.created == 3
        assert get_product(db_path, 3).name == "Motor 2"
