"""Variant detection and splitting for compound vendor listings.

Vendors often bundle several SKUs into one listing ("2207 1750KV/2000KV/2300KV").
Detection looks for several distinct values of one dimension joined by
"/", "|" or ",". A single multi-part spec such as a "5x4.3x3" prop size
has no separator between values and is never treated as variants.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from partscrape.models import Product, ProductDraft, SpecValue, VariantSpec

__all__ = [
    "VariantPattern",
    "VARIANT_PATTERNS",
    "has_likely_variants",
    "detect_variants",
    "split_product_variants",
    "get_variant_stats",
]

SEPARATOR = r"\s*[/|,]\s*"
_SEPARATOR_RE = re.compile(SEPARATOR)

_COLORS = r"(?:red|blue|black|white|green|orange|yellow|purple|pink|grey|gray|clear|silver|gold)"


@dataclass(frozen=True)
class VariantPattern:
    category: str
    value: str
    unit: str
    description: str
    spec_key: Optional[str]
    numeric: bool = False
    min_values: int = 2

    def compile(self) -> "re.Pattern[str]":
        # A value must start a token so that "5x4.3x3, 4" is not read as "3, 4"
        return re.compile(
            rf"(?<![\w.])(?:{self.value})(?:{SEPARATOR}(?:{self.value}))+(?![\w.])",
            re.IGNORECASE,
        )


# Specific patterns first; "generic" only applies when nothing else matched.
VARIANT_PATTERNS: Sequence[VariantPattern] = (
    VariantPattern("motor", r"\d+(?:\.\d+)?\s*kv", "KV", "Motor KV ratings", "kv", numeric=True),
    VariantPattern("battery", r"\d+(?:\.\d+)?\s*mah", "mAh", "Battery capacities", "capacity_mah", numeric=True),
    VariantPattern("battery", r"\d{1,2}s", "S", "Cell count variants", "cells", numeric=True),
    VariantPattern("battery", r"\d+(?:\.\d+)?v", "V", "Voltage variants", "voltage"),
    VariantPattern("stack", r"\d+(?:\.\d+)?a", "A", "ESC amp ratings", "current"),
    VariantPattern(
        "prop",
        r"\d+(?:\.\d+)?x\d+(?:\.\d+)?x\d+(?:\.\d+)?",
        "inches",
        "Propeller sizes",
        "size",
    ),
    VariantPattern("frame", r"\d+(?:\.\d+)?\s*(?:inch|in|\")", "inch", "Frame sizes", "size"),
    VariantPattern("frame", _COLORS, "", "Colors", "color"),
    VariantPattern("prop", _COLORS, "", "Colors", "color"),
    VariantPattern("generic", r"\d+(?:\.\d+)?", "", "Generic numeric variants", None, min_values=3),
)

_COMPILED = [(p, p.compile()) for p in VARIANT_PATTERNS]

LIKELY_VARIANT_INDICATORS = (
    re.compile(r"\d+(?:\.\d+)?\s*kv\s*[/|,]\s*\d+", re.IGNORECASE),
    re.compile(r"\d+(?:\.\d+)?\s*mah\s*[/|,]\s*\d+", re.IGNORECASE),
    re.compile(r"\d+(?:\.\d+)?a\s*[/|,]\s*\d+", re.IGNORECASE),
    re.compile(r"\d+x\d+(?:\.\d+)?x\d+\s*[/|,]\s*\d+x\d+(?:\.\d+)?x\d+", re.IGNORECASE),
    re.compile(r"\d+s\s*[/|,]\s*\d+s", re.IGNORECASE),
    re.compile(r"\d+(?:\.\d+)?v\s*[/|,]\s*\d+", re.IGNORECASE),
    re.compile(rf"\b{_COLORS}\s*[/|,]\s*{_COLORS}\b", re.IGNORECASE),
    re.compile(r"(?<![\w.])\d+\s*[/|,]\s*\d+\s*[/|,]\s*\d+", re.IGNORECASE),
)


def has_likely_variants(name: str) -> bool:
    """Cheap pre-filter: does the name look like it bundles several SKUs?"""
    return any(pattern.search(name) for pattern in LIKELY_VARIANT_INDICATORS)


def _distinct(values: List[str]) -> List[str]:
    seen = set()
    result = []
    for value in values:
        key = re.sub(r"\s+", "", value.lower())
        if key not in seen:
            seen.add(key)
            result.append(value)
    return result


def _clean_base_name(base_name: str) -> str:
    base_name = re.sub(r"\s+", " ", base_name).strip()
    return re.sub(r"\s*[-–—]\s*$", "", base_name).strip()


def detect_variants(name: str, category: Optional[str] = None) -> Optional[VariantSpec]:
    """Find the varying dimension in a product name.

    Only patterns for `category` (plus the generic numeric pattern) are
    tried when a category is given. Returns None when the name holds fewer
    than two distinct values for every dimension.
    """
    for pattern, regex in _COMPILED:
        if category and pattern.category not in (category, "generic"):
            continue
        for match in regex.finditer(name):
            matched_text = match.group(0)
            values = _distinct([v.strip() for v in _SEPARATOR_RE.split(matched_text) if v.strip()])
            if len(values) < max(2, pattern.min_values):
                continue
            return VariantSpec(
                original=name,
                variants=values,
                base_name=_clean_base_name(name.replace(matched_text, " ", 1)),
                variant_type=pattern.description,
                unit=pattern.unit,
                spec_key=pattern.spec_key,
                matched_text=matched_text,
            )
    return None


def _spec_value(value: str, numeric: bool) -> SpecValue:
    if not numeric:
        return value
    number = re.match(r"\d+(?:\.\d+)?", value)
    if number is None:
        return value
    text = number.group(0)
    return float(text) if "." in text else int(text)


def _pattern_for(spec: VariantSpec) -> Optional[VariantPattern]:
    for pattern in VARIANT_PATTERNS:
        if pattern.description == spec.variant_type:
            return pattern
    return None


def split_product_variants(product: Product) -> List[ProductDraft]:
    """Split a product into one draft per detected variant value.

    Each draft is the original product with the variant token replaced by
    one value, in the name and in the matching specifications entry. A
    single-element result means no split applies.
    """
    base_specs: Dict[str, SpecValue] = dict(product.specifications or {})
    detected = detect_variants(product.name, product.category)

    if detected is None:
        return [ProductDraft(
            name=product.name,
            category=product.category,
            brand=product.brand,
            sku=product.sku,
            description=product.description,
            image_url=product.image_url,
            specifications=base_specs,
            variant=None,
            variant_type=None,
        )]

    pattern = _pattern_for(detected)
    numeric = pattern.numeric if pattern else False

    drafts: List[ProductDraft] = []
    for value in detected.variants:
        name = re.sub(r"\s+", " ", product.name.replace(detected.matched_text, value, 1)).strip()
        specs = dict(base_specs)
        if detected.spec_key:
            specs[detected.spec_key] = _spec_value(value, numeric)
        drafts.append(ProductDraft(
            name=name,
            category=product.category,
            brand=product.brand,
            sku=product.sku,
            description=product.description,
            image_url=product.image_url,
            specifications=specs,
            variant=value,
            variant_type=detected.variant_type,
        ))
    return drafts


def get_variant_stats(product_names: Sequence[str]) -> Dict[str, Any]:
    """Summarize how many names carry variants and how many each."""
    detected_variants = []
    for name in product_names:
        detected = detect_variants(name)
        if detected:
            detected_variants.append({
                "name": detected.original,
                "variant_count": len(detected.variants),
                "variant_type": detected.variant_type,
            })
    return {
        "total_products": len(product_names),
        "products_with_variants": len(detected_variants),
        "detected_variants": detected_variants,
    }
