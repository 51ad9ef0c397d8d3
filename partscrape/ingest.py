"""Reconcile scraped products against the catalog.

Per item: upsert the vendor, find the product by name (else SKU), update
or create it, upsert its (product, vendor) price row and append one price
history point. A failure on one item is counted and logged; the loop goes
on with the next item.
"""

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, Optional

from partscrape.classifier import classify
from partscrape.config import CATEGORIES, DEFAULT_CURRENCY, WELL_KNOWN_SPEC_KEYS, get_vendor_config
from partscrape.db import (
    append_price_history,
    create_product,
    find_product_by_name_or_sku,
    update_product,
    upsert_vendor,
    upsert_vendor_price,
)
from partscrape.errors import IngestionItemError
from partscrape.html_utils import normalize_spec_key
from partscrape.logging_config import get_logger, log_scrape_event
from partscrape.models import ScrapedProduct, SpecValue

__all__ = ["IngestStats", "validate_specifications", "ingest_product", "ingest_products"]

logger = get_logger("ingest")


@dataclass
class IngestStats:
    found: int = 0
    created: int = 0
    updated: int = 0
    errors: int = 0

    def add(self, other: "IngestStats") -> None:
        self.found += other.found
        self.created += other.created
        self.updated += other.updated
        self.errors += other.errors

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def validate_specifications(category: str, specs: Optional[Dict[str, Any]]) -> Dict[str, SpecValue]:
    """Coerce a specification bag to {normalized key: str | int | float}.

    Empty keys, None values, NaN and nested structures are dropped. Keys
    outside the category's well-known set are kept as vendor-specific.
    """
    clean: Dict[str, SpecValue] = {}
    if not specs:
        return clean

    known = WELL_KNOWN_SPEC_KEYS.get(category, frozenset())
    for raw_key, value in specs.items():
        key = normalize_spec_key(str(raw_key))
        if not key or value is None:
            continue
        if isinstance(value, bool):
            value = "yes" if value else "no"
        elif isinstance(value, float) and math.isnan(value):
            continue
        elif isinstance(value, (dict, list, tuple, set)):
            logger.debug(f"Dropping non-scalar spec {key!r}")
            continue
        elif not isinstance(value, (str, int, float)):
            value = str(value)
        if isinstance(value, str):
            value = value.strip()
            if not value:
                continue
        if key not in known:
            logger.debug(f"Vendor-specific spec key {key!r} for {category}")
        clean[key] = value
    return clean


def _vendor_website(vendor: str) -> Optional[str]:
    config = get_vendor_config(vendor)
    return config.base_url if config else None


def ingest_product(db_path: str, product: ScrapedProduct) -> str:
    """Store one scraped product. Returns "created" or "updated".

    Raises IngestionItemError when the item is unusable or storage fails.
    """
    if not product.name or not product.name.strip():
        raise IngestionItemError(f"Product from {product.url} has no name")
    category = product.category
    if category not in CATEGORIES:
        # Raw vendor category: assign one from the text
        category = classify(product.name, product.description, product.url)
    specs = validate_specifications(category, product.specifications)

    try:
        vendor_id = upsert_vendor(db_path, product.vendor, _vendor_website(product.vendor))

        existing = find_product_by_name_or_sku(db_path, product.name, product.sku)
        if existing is not None:
            # Unset incoming fields keep the stored values
            update_product(
                db_path,
                existing.id,
                brand=product.brand or existing.brand,
                sku=product.sku or existing.sku,
                description=product.description or existing.description,
                image_url=product.image_url or existing.image_url,
                specifications=specs or existing.specifications,
            )
            product_id = existing.id
            outcome = "updated"
        else:
            product_id = create_product(
                db_path,
                name=product.name,
                category=category,
                brand=product.brand,
                sku=product.sku,
                description=product.description,
                image_url=product.image_url,
                specifications=specs,
            )
            outcome = "created"

        if product.price is not None:
            upsert_vendor_price(
                db_path,
                product_id=product_id,
                vendor_id=vendor_id,
                price=product.price,
                url=product.url,
                in_stock=product.in_stock,
                currency=DEFAULT_CURRENCY,
            )
            append_price_history(db_path, product_id, vendor_id, product.price)
    except IngestionItemError:
        raise
    except Exception as e:
        raise IngestionItemError(f"Failed to store {product.name!r}: {e}") from e

    return outcome


def ingest_products(
    db_path: str,
    products: Iterable[ScrapedProduct],
    job_id: Optional[int] = None,
) -> IngestStats:
    """Ingest a stream of products; found == created + updated + errors."""
    stats = IngestStats()
    for product in products:
        stats.found += 1
        try:
            outcome = ingest_product(db_path, product)
        except IngestionItemError as e:
            stats.errors += 1
            log_scrape_event("ingest_error", {
                "message": str(e),
                "job_id": job_id,
                "vendor": product.vendor,
                "url": product.url,
            }, level=logging.WARNING, logger_name="ingest")
            continue
        if outcome == "created":
            stats.created += 1
        else:
            stats.updated += 1
    return stats
