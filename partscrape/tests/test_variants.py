"""Tests for variant detection and splitting."""

from partscrape.models import Product
from partscrape.variants import (
    detect_variants,
    get_variant_stats,
    has_likely_variants,
    split_product_variants,
)


def _product(name, category="motor", **kwargs):
    fields = dict(
        id=7,
        name=name,
        category=category,
        brand="T-Motor",
        sku="F60",
        description="Freestyle motor",
        image_url="https://cdn.example.com/f60.jpg",
        specifications={"stator_size": "2207", "kv": "1750KV/2000KV/2300KV"},
    )
    fields.update(kwargs)
    return Product(**fields)


class TestDetectVariants:
    """Variant detection on product names."""

    def test_kv_variants(self):
        spec = detect_variants("T-Motor F60 2207 1750KV/2000KV/2300KV Motor", "motor")
        assert spec is not None
        assert spec.variants == ["1750KV", "2000KV", "2300KV"]
        assert spec.spec_key == "kv"
        assert spec.matched_text == "1750KV/2000KV/2300KV"
        assert spec.base_name == "T-Motor F60 2207 Motor"

    def test_single_kv_is_not_variant(self):
        assert detect_variants("T-Motor F60 2207 1750KV Motor", "motor") is None

    def test_prop_size_is_one_spec(self):
        """'5x4.3x3' is a single multi-part spec, not three variants."""
        assert detect_variants("HQProp 5x4.3x3 Props", "prop") is None

    def test_battery_capacity_variants(self):
        spec = detect_variants("Tattu 1300mAh/1550mAh 6S LiPo", "battery")
        assert spec.variants == ["1300mAh", "1550mAh"]
        assert spec.spec_key == "capacity_mah"

    def test_cell_count_variants(self):
        spec = detect_variants("CNHL 1500mAh 4S/6S Battery", "battery")
        assert spec.variants == ["4S", "6S"]
        assert spec.spec_key == "cells"

    def test_frame_colors(self):
        spec = detect_variants("Apex 5 Arm Kit Red/Blue/Black", "frame")
        assert spec.variants == ["Red", "Blue", "Black"]
        assert spec.spec_key == "color"

    def test_category_filters_patterns(self):
        """Color variants only apply to categories that have them."""
        assert detect_variants("Motor Screws Red/Blue", "motor") is None

    def test_duplicate_values_collapse(self):
        assert detect_variants("Motor 2207 1750KV/1750KV", "motor") is None

    def test_generic_needs_three_values(self):
        assert detect_variants("Widget 3/4", "other") is None
        spec = detect_variants("Widget 3/4/5", "other")
        assert spec.variants == ["3", "4", "5"]
        assert spec.spec_key is None

    def test_no_category_tries_all_patterns(self):
        spec = detect_variants("Motor 1750KV/2000KV")
        assert spec.variant_type == "Motor KV ratings"


class TestHasLikelyVariants:
    def test_detects_kv_list(self):
        assert has_likely_variants("2207 1750KV/2000KV Motor")

    def test_plain_name(self):
        assert not has_likely_variants("2207 1750KV Motor")


class TestSplitProductVariants:
    """Splitting a product into drafts."""

    def test_split_into_three(self):
        drafts = split_product_variants(_product("T-Motor F60 2207 1750KV/2000KV/2300KV Motor"))

        assert len(drafts) == 3
        assert [d.name for d in drafts] == [
            "T-Motor F60 2207 1750KV Motor",
            "T-Motor F60 2207 2000KV Motor",
            "T-Motor F60 2207 2300KV Motor",
        ]
        assert [d.specifications["kv"] for d in drafts] == [1750, 2000, 2300]

    def test_non_varying_fields_copied(self):
        source = _product("T-Motor F60 2207 1750KV/2000KV Motor")
        for draft in split_product_variants(source):
            assert draft.brand == source.brand
            assert draft.sku == source.sku
            assert draft.category == source.category
            assert draft.description == source.description
            assert draft.image_url == source.image_url
            assert draft.specifications["stator_size"] == "2207"
            assert draft.variant_type == "Motor KV ratings"

    def test_single_value_returns_one_draft(self):
        source = _product("T-Motor F60 2207 1750KV Motor", specifications={"kv": 1750})
        drafts = split_product_variants(source)

        assert len(drafts) == 1
        assert drafts[0].name == source.name
        assert drafts[0].specifications == {"kv": 1750}
        assert drafts[0].variant is None

    def test_source_specs_not_mutated(self):
        source = _product("T-Motor F60 2207 1750KV/2000KV Motor")
        split_product_variants(source)
        assert source.specifications["kv"] == "1750KV/2000KV/2300KV"

    def test_string_valued_spec(self):
        drafts = split_product_variants(
            _product("Apex 5 Arm Kit Red/Blue", category="frame", specifications={})
        )
        assert [d.specifications["color"] for d in drafts] == ["Red", "Blue"]


class TestVariantStats:
    def test_counts(self):
        stats = get_variant_stats([
            "Motor 1750KV/2000KV/2300KV",
            "Plain Motor 2207",
            "Battery 1300mAh/1500mAh",
        ])
        assert stats["total_products"] == 3
        assert stats["products_with_variants"] == 2
        assert stats["detected_variants"][0] == {
            "name": "Motor 1750KV/2000KV/2300KV",
            "variant_count": 3,
            "variant_type": "Motor KV ratings",
        }
