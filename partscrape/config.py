"""Configuration and constants for the vendor crawler."""

import os
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional, Tuple

__all__ = [
    "CATEGORIES",
    "HEADERS",
    "REQUEST_TIMEOUT",
    "MAX_RETRIES",
    "RETRY_BACKOFF_BASE",
    "MAX_RETRY_BACKOFF",
    "RETRY_STATUS_CODES",
    "DB_PATH",
    "OUTPUT_PATH",
    "DEFAULT_CURRENCY",
    "FULL_SCRAPE_INTERVAL",
    "PRICE_UPDATE_INTERVAL",
    "PRICE_UPDATE_BATCH_SIZE",
    "PRICE_HISTORY_WINDOW_DAYS",
    "SCHEDULER_MAX_WORKERS",
    "API_RATE_LIMIT_REQUESTS",
    "API_RATE_LIMIT_WINDOW",
    "WELL_KNOWN_SPEC_KEYS",
    "ProductPageSelectors",
    "VendorConfig",
    "VENDOR_CONFIGS",
    "get_vendor_config",
]

# Closed taxonomy. Order matters: it is the tie-break order of the scorer.
CATEGORIES: Tuple[str, ...] = ("motor", "frame", "camera", "prop", "battery", "stack", "other")

# HTTP headers sent with every request
HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

# Request timeouts
REQUEST_TIMEOUT = 30

# Retry settings with exponential backoff
MAX_RETRIES = 3
RETRY_BACKOFF_BASE = 2.0
MAX_RETRY_BACKOFF = 30.0
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}

# Storage
DB_PATH = os.getenv("PARTSCRAPE_DB_PATH", "data/catalog.db")
OUTPUT_PATH = "data/catalog_export.csv"
DEFAULT_CURRENCY = "USD"

# Scheduling (seconds)
FULL_SCRAPE_INTERVAL = float(os.getenv("FULL_SCRAPE_INTERVAL", str(24 * 60 * 60)))
PRICE_UPDATE_INTERVAL = float(os.getenv("PRICE_UPDATE_INTERVAL", str(60 * 60)))
PRICE_UPDATE_BATCH_SIZE = int(os.getenv("PRICE_UPDATE_BATCH_SIZE", "100"))
SCHEDULER_MAX_WORKERS = int(os.getenv("SCHEDULER_MAX_WORKERS", "4"))

# Price statistics
PRICE_HISTORY_WINDOW_DAYS = 30

# Operator API rate limiting (requests per window, window in seconds)
API_RATE_LIMIT_REQUESTS = int(os.getenv("API_RATE_LIMIT_REQUESTS", "60"))
API_RATE_LIMIT_WINDOW = float(os.getenv("API_RATE_LIMIT_WINDOW", "60"))


# =============================================================================
# Specification keys
# =============================================================================
# Documented keys per category. Keys outside these sets are vendor-specific
# and are stored as-is.

WELL_KNOWN_SPEC_KEYS: Dict[str, FrozenSet[str]] = {
    "motor": frozenset({"kv", "stator_size", "weight", "shaft", "cells", "mounting"}),
    "frame": frozenset({"wheelbase", "size", "material", "arm_thickness", "weight", "color"}),
    "stack": frozenset({"current", "processor", "mounting", "firmware", "cells"}),
    "camera": frozenset({"resolution", "sensor", "lens", "fov", "weight", "system"}),
    "prop": frozenset({"size", "pitch", "blades", "material", "shaft", "color"}),
    "battery": frozenset({"capacity_mah", "cells", "voltage", "c_rating", "connector", "weight"}),
    "other": frozenset(),
}


# =============================================================================
# Vendor configuration
# =============================================================================


@dataclass(frozen=True)
class ProductPageSelectors:
    """CSS selectors used to extract fields from a product page."""

    name: str
    price: str
    in_stock: str
    brand: Optional[str] = None
    sku: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    specifications: Optional[str] = None


@dataclass(frozen=True)
class VendorConfig:
    """Static crawl configuration for one vendor site.

    `rate_limit` is the minimum delay in seconds between two fetches
    against this vendor. `category_mapping` is an ordered sequence of
    (url path fragment, taxonomy category) pairs.
    """

    vendor: str
    base_url: str
    seed_urls: Tuple[str, ...]
    link_selectors: Tuple[str, ...]
    product_page_indicators: Tuple[str, ...]
    exclude_patterns: Tuple[str, ...]
    product_page_selectors: ProductPageSelectors
    max_pages: int = 500
    max_depth: int = 2
    rate_limit: float = 2.0
    category_mapping: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    @property
    def domain(self) -> str:
        return self.base_url.split("://", 1)[-1].split("/", 1)[0].lower()

    def category_for_url(self, url: str) -> Optional[str]:
        """Return the taxonomy category mapped from the URL path, if any."""
        for fragment, category in self.category_mapping:
            if fragment in url:
                return category
        return None


_SHOPIFY_EXCLUDES = (
    "/search",
    "/cart",
    "/checkout",
    "/account",
    "/pages",
    "/blogs",
    "/password",
    "/admin",
    ".pdf",
    ".jpg",
    ".png",
    ".zip",
    "/policies/",
    "#",
    "javascript:",
    "mailto:",
)

VENDOR_CONFIGS: Dict[str, VendorConfig] = {
    "GetFPV": VendorConfig(
        vendor="GetFPV",
        base_url="https://www.getfpv.com",
        seed_urls=(
            "https://www.getfpv.com/motors/mini-quad-motors.html",
            "https://www.getfpv.com/motors/micro-quad-motors.html",
            "https://www.getfpv.com/multi-rotor-frames.html",
            "https://www.getfpv.com/electronics.html",
        ),
        link_selectors=(
            '.product-item a[href$=".html"]',
            ".product-item-link",
            ".product-name a",
            ".product-image a",
        ),
        product_page_indicators=(
            "/motors/mini-quad-motors/",
            "/motors/micro-quad-motors/",
            "/multi-rotor-frames/",
            "/electronics/",
        ),
        exclude_patterns=(
            "/search",
            "/cart",
            "/checkout",
            "/account",
            "/customer",
            "/blog",
            "/review",
            "/compare",
            ".pdf",
            ".jpg",
            ".png",
            ".zip",
            "/catalogsearch",
        ),
        product_page_selectors=ProductPageSelectors(
            name="h1.page-title, .product-name h1, .product-title",
            price=".price, .regular-price, .special-price .price",
            brand=".product-brand, .brand, [data-brand]",
            sku=".product-sku, .sku, [data-sku]",
            description=".product-description, .description, .product-info-main .value",
            image=".product-image-main img, .product-photo img",
            in_stock=".stock, .availability, .in-stock, .out-of-stock",
            specifications=".product-attributes, .additional-attributes, .tech-specs",
        ),
        max_pages=1000,
        max_depth=3,
        rate_limit=3.0,
        category_mapping=(
            ("/motors/mini-quad-motors/", "motor"),
            ("/motors/micro-quad-motors/", "motor"),
            ("/multi-rotor-frames/", "frame"),
            ("/electronics/", "stack"),
        ),
    ),
    "RDQ": VendorConfig(
        vendor="RDQ",
        base_url="https://www.racedayquads.com",
        seed_urls=(
            "https://www.racedayquads.com/collections/all-motors",
            "https://www.racedayquads.com/collections/all-frames",
            "https://www.racedayquads.com/collections/stacks-aios-fc-esc",
            "https://www.racedayquads.com/collections/fpv-cameras",
            "https://www.racedayquads.com/collections/all-props",
            "https://www.racedayquads.com/collections/all-batteries",
        ),
        link_selectors=(
            'a[href*="/products/"]',
            'a[href*="/collections/"]',
            ".product-item-link",
            ".product-title a",
        ),
        product_page_indicators=("/products/",),
        exclude_patterns=_SHOPIFY_EXCLUDES + ("/customer_authentication",),
        product_page_selectors=ProductPageSelectors(
            name='h1, .product-title, [data-testid="product-title"]',
            price='[data-testid="price"], .price, .money, .price-item--sale, .price-item--regular',
            brand=".product-vendor, .vendor, .brand, [data-brand]",
            sku=".product-single__sku, .sku, .product-sku",
            description=".product-single__description, .product-description, .rte",
            image=".product-single__photo img, .product-photo img, .product__media img",
            in_stock=".product-form__inventory, .inventory, .in-stock, .product-form__buttons",
            specifications=".product-single__description table, .specifications, .product-specs",
        ),
        max_pages=1000,
        max_depth=2,
        rate_limit=2.0,
        category_mapping=(
            ("/collections/all-motors", "motor"),
            ("/collections/all-frames", "frame"),
            ("/collections/stacks-aios-fc-esc", "stack"),
            ("/collections/fpv-cameras", "camera"),
            ("/collections/all-props", "prop"),
            ("/collections/all-batteries", "battery"),
        ),
    ),
    "Pyrodrone": VendorConfig(
        vendor="Pyrodrone",
        base_url="https://pyrodrone.com",
        seed_urls=(
            "https://pyrodrone.com/collections/motor",
            "https://pyrodrone.com/collections/frames",
            "https://pyrodrone.com/collections/flight-controllers",
            "https://pyrodrone.com/collections/esc",
            "https://pyrodrone.com/collections/cameras",
            "https://pyrodrone.com/collections/propellers",
            "https://pyrodrone.com/collections/batteries",
        ),
        link_selectors=(
            'a[href*="/products/"]',
            'a[href*="/collections/"]',
            ".product-item__link",
            ".product-card__title a",
        ),
        product_page_indicators=("/products/",),
        exclude_patterns=_SHOPIFY_EXCLUDES,
        product_page_selectors=ProductPageSelectors(
            name="h1.product-single__title, .product__title, h1.product-title",
            price=".price--highlight, .product__price, .price, .money",
            brand=".product__vendor, .vendor, .product-meta__vendor",
            sku=".product__sku, .sku, .variant-sku",
            description=".product-single__description, .product__description, .rte",
            image=".product-single__photo img, .product__media img",
            in_stock=".product-form__inventory, .product__inventory, .btn--add-to-cart",
            specifications=".product-single__description table, .product__description table",
        ),
        max_pages=800,
        max_depth=2,
        rate_limit=2.5,
        category_mapping=(
            ("/collections/motor", "motor"),
            ("/collections/frames", "frame"),
            ("/collections/flight-controllers", "stack"),
            ("/collections/esc", "stack"),
            ("/collections/cameras", "camera"),
            ("/collections/propellers", "prop"),
            ("/collections/batteries", "battery"),
        ),
    ),
}


def get_vendor_config(vendor: str) -> Optional[VendorConfig]:
    """Get the crawl configuration for a vendor (case-insensitive)."""
    if vendor in VENDOR_CONFIGS:
        return VENDOR_CONFIGS[vendor]
    lowered = vendor.lower()
    for name, config in VENDOR_CONFIGS.items():
        if name.lower() == lowered:
            return config
    return None
