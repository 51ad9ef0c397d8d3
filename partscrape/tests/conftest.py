"""Shared fixtures: temporary catalog databases, a canned-HTML HTTP session
and a small vendor configuration pointing at it."""

import os
import tempfile
from decimal import Decimal
from typing import Dict, List, Optional, Tuple, Union

import pytest

from partscrape.config import ProductPageSelectors, VendorConfig
from partscrape.db import init_db
from partscrape.models import ScrapedProduct
from partscrape.rate_limit import RateLimiter

BASE_URL = "https://shop.example.com"


class FakeResponse:
    def __init__(self, status_code: int, text: str):
        self.status_code = status_code
        self.text = text


class FakeSession:
    """Stands in for requests.Session, serving canned pages by URL.

    A page value may be an HTML string (200), a (status, html) tuple, or an
    exception instance to raise. Unknown URLs answer 404.
    """

    def __init__(self, pages: Dict[str, Union[str, Tuple[int, str], Exception]]):
        self.pages = pages
        self.calls: List[str] = []
        self.headers: Dict[str, str] = {}

    def get(self, url: str, timeout: Optional[float] = None) -> FakeResponse:
        self.calls.append(url)
        page = self.pages.get(url)
        if page is None:
            return FakeResponse(404, "Not Found")
        if isinstance(page, Exception):
            raise page
        if isinstance(page, tuple):
            return FakeResponse(*page)
        return FakeResponse(200, page)


def product_html(
    name: str,
    price: str = "$29.99",
    stock: str = "In stock",
    brand: Optional[str] = None,
    sku: Optional[str] = None,
    description: str = "",
    specs: Optional[Dict[str, str]] = None,
) -> str:
    rows = "".join(f"<tr><th>{k}</th><td>{v}</td></tr>" for k, v in (specs or {}).items())
    return f"""
    <html><body>
      <h1 class="product-title">{name}</h1>
      <span class="price">{price}</span>
      <div class="stock">{stock}</div>
      {f'<span class="brand">{brand}</span>' if brand else ''}
      {f'<span class="sku">SKU: {sku}</span>' if sku else ''}
      <div class="description">{description}</div>
      <img class="main-image" src="/cdn/images/{name.split()[0].lower()}.jpg">
      <table class="specs">{rows}</table>
    </body></html>
    """


def listing_html(*hrefs: str) -> str:
    links = "".join(f'<div class="item"><a href="{h}">item</a></div>' for h in hrefs)
    return f"<html><body>{links}<a href=\"/cart\">cart</a></body></html>"


@pytest.fixture
def db_path():
    """Path to a fresh, initialized SQLite catalog."""
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "catalog.db")
        init_db(path)
        yield path


@pytest.fixture
def vendor_config():
    return VendorConfig(
        vendor="TestVendor",
        base_url=BASE_URL,
        seed_urls=(f"{BASE_URL}/collections/motors", f"{BASE_URL}/collections/props"),
        link_selectors=(".item a",),
        product_page_indicators=("/products/",),
        exclude_patterns=("/cart", "/account"),
        product_page_selectors=ProductPageSelectors(
            name="h1.product-title",
            price=".price",
            in_stock=".stock",
            brand=".brand",
            sku=".sku",
            description=".description",
            image="img.main-image",
            specifications="table.specs",
        ),
        max_pages=50,
        max_depth=2,
        rate_limit=1.5,
        category_mapping=(
            ("/collections/motors", "motor"),
            ("/collections/props", "prop"),
        ),
    )


@pytest.fixture
def no_sleep_limiter():
    """RateLimiter that records requested sleeps instead of sleeping."""
    slept: List[float] = []
    limiter = RateLimiter(sleep=slept.append)
    limiter.slept = slept
    return limiter


@pytest.fixture
def make_scraped():
    def _make(name: str = "T-Motor F60 Pro IV 1950KV Motor", **overrides) -> ScrapedProduct:
        fields = dict(
            vendor="RDQ",
            category="motor",
            name=name,
            url="https://www.racedayquads.com/products/f60",
            price=Decimal("29.99"),
            in_stock=True,
            brand="T-Motor",
            sku="F60-1950",
            description="Freestyle motor",
            image_url="https://cdn.example.com/f60.jpg",
            specifications={"kv": 1950, "stator_size": "2207"},
        )
        fields.update(overrides)
        return ScrapedProduct(**fields)

    return _make
