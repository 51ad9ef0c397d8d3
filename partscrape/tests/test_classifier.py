"""Tests for part taxonomy classification."""

import pytest

from partscrape.classifier import (
    classify,
    classify_with_details,
    compare_classifications,
    determine_category,
)


class TestOverrideRules:
    """Override rules win over scoring, in their fixed order."""

    def test_aio_with_motor_in_name_is_stack(self):
        """A flight controller from a motor brand must not become a motor."""
        assert classify("T-Motor F7 AIO Flight Controller") == "stack"

    def test_motor_mount_is_not_motor(self):
        assert classify("Motor Mount for 2207") == "other"

    def test_plain_motor(self):
        assert classify("EMAX ECO II 2207 1900KV Motor") == "motor"

    def test_frame_without_mount(self):
        assert classify("ImpulseRC Apex 5 Frame Kit") == "frame"

    def test_frame_dampener_is_accessory(self):
        assert classify("Frame Dampener Balls") == "other"

    def test_camera_token(self):
        assert classify("Caddx Ratel 2 Camera") == "camera"

    def test_props_token(self):
        assert classify("Gemfan Hurricane 51466 Props") == "prop"

    def test_battery_keywords(self):
        assert classify("Tattu R-Line 1300mAh 6S LiPo") == "battery"

    def test_esc_without_mount_is_stack(self):
        assert classify("SpeedyBee BLS 50A 4-in-1 ESC") == "stack"

    def test_stack_mount_is_accessory(self):
        assert classify("Stack Mount Grommets") == "other"


class TestScoring:
    """Weighted scoring when no override rule applies."""

    def test_kv_rating_scores_motor(self):
        assert classify("Velox V2 2306 2550KV") == "motor"

    def test_prop_size_pattern_scores_prop(self):
        assert classify("HQ Durable 5x4.3x3 Tri-Blade") == "prop"

    def test_mah_scores_battery(self):
        assert classify("CNHL Black Series 1500mAh 4S") == "battery"

    def test_no_signal_is_other(self):
        assert classify("Zip Ties 100 pack") == "other"

    def test_url_contributes_to_text(self):
        """Keywords in the URL count like keywords in the name."""
        assert classify("Xing2 2207", url="https://shop.example.com/products/xing2-2207-motor") == "motor"

    def test_deterministic(self):
        name = "Foxeer Razer Micro 1200TVL"
        assert classify(name) == classify(name)

    def test_tie_between_categories_follows_fixed_order(self):
        """Equal non-zero scores resolve motor, frame, camera, prop, battery, stack."""
        assert classify("brushless wheelbase") == "motor"
        assert classify("wheelbase blade") == "frame"
        assert classify("blade cell") == "prop"


class TestClassifyWithDetails:
    """Detailed classification results."""

    def test_override_confidence(self):
        result = classify_with_details("T-Motor F7 AIO")
        assert result.category == "stack"
        assert result.method == "override"
        assert result.confidence == 90
        assert "override" in result.reasoning

    def test_accessory_method(self):
        result = classify_with_details("Antenna Mount 3D printed")
        assert result.category == "other"
        assert result.method == "accessory"
        assert "mount" in result.reasoning

    def test_brand_fallback_for_uncertain_scoring(self):
        """A known brand decides when the rules find nothing."""
        result = classify_with_details("Tattu R-Line Version 5")
        assert result.category == "battery"
        assert result.method == "brand"
        assert result.confidence == 75

    def test_scoring_other_has_low_confidence(self):
        result = classify_with_details("Zip Ties 100 pack")
        assert result.category == "other"
        assert result.confidence == 30

    def test_to_dict_keys(self):
        data = classify_with_details("EMAX 2306 Motor").to_dict()
        assert set(data) == {"category", "confidence", "method", "reasoning"}


class TestCompareAndDetermine:
    """Legacy/detailed comparison and URL mapping."""

    def test_compare_agreement(self):
        result = compare_classifications("EMAX ECO II 2207 Motor")
        assert result["legacy"] == "motor"
        assert result["enhanced"]["category"] == "motor"
        assert result["agree"] is True

    def test_compare_disagreement_on_brand(self):
        result = compare_classifications("Tattu R-Line Version 5")
        assert result["legacy"] == "other"
        assert result["enhanced"]["category"] == "battery"
        assert result["agree"] is False

    def test_url_mapping_wins(self, vendor_config):
        category = determine_category(
            "https://shop.example.com/collections/motors/products/thing",
            "Some AIO Board",
            category_for_url=vendor_config.category_for_url,
        )
        assert category == "motor"

    @pytest.mark.parametrize("name,expected", [
        ("Caddx Ant Nano Camera", "camera"),
        ("Gemfan 3016 Props", "prop"),
    ])
    def test_text_fallback_without_mapping(self, vendor_config, name, expected):
        category = determine_category(
            "https://shop.example.com/products/thing",
            name,
            category_for_url=vendor_config.category_for_url,
        )
        assert category == expected
