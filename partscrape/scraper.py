"""Vendor crawling and product page extraction."""

import logging
import random
import time
from collections import deque
from decimal import Decimal
from typing import Deque, Iterator, List, Optional, Set, Tuple

import requests  # type: ignore[import-untyped]
from bs4 import BeautifulSoup

from partscrape.classifier import determine_category
from partscrape.config import (
    HEADERS,
    MAX_RETRIES,
    MAX_RETRY_BACKOFF,
    REQUEST_TIMEOUT,
    RETRY_BACKOFF_BASE,
    RETRY_STATUS_CODES,
    VendorConfig,
)
from partscrape.errors import FetchError
from partscrape.html_utils import (
    extract_brand_from_name,
    extract_links,
    extract_pattern_specs,
    extract_specifications,
    is_excluded,
    is_product_page,
    normalize_product_title,
    parse_document,
    parse_in_stock,
    parse_price,
    select_attr,
    select_text,
)
from partscrape.logging_config import get_logger, log_scrape_event
from partscrape.models import ScrapedProduct
from partscrape.rate_limit import RateLimiter, get_rate_limiter
from partscrape.shutdown import shutdown_requested
from partscrape.url_validation import (
    URLValidationError,
    canonical_url,
    normalize_url,
    validate_image_url,
    validate_url,
)

__all__ = [
    "create_session",
    "fetch_html",
    "parse_product_page",
    "scrape_product_from_url",
    "crawl_vendor",
    "refresh_price",
]

logger = get_logger("scraper")

MAX_DESCRIPTION_LENGTH = 2000


def create_session() -> requests.Session:
    """Session with the crawler's headers and keep-alive connection pooling."""
    session = requests.Session()
    session.headers.update(HEADERS)
    session.headers.setdefault("Accept-Encoding", "gzip, deflate")
    return session


def _backoff(attempt: int) -> float:
    return min(RETRY_BACKOFF_BASE ** attempt, MAX_RETRY_BACKOFF) + random.uniform(0, 1)


def fetch_html(url: str, session: Optional[requests.Session] = None) -> str:
    """GET a page with exponential backoff on transient failures.

    Connection errors, timeouts and RETRY_STATUS_CODES are retried up to
    MAX_RETRIES times. Anything else, or exhausted retries, raises FetchError.
    """
    sess = session or create_session()

    for attempt in range(MAX_RETRIES + 1):
        try:
            resp = sess.get(url, timeout=REQUEST_TIMEOUT)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            if attempt < MAX_RETRIES:
                backoff = _backoff(attempt)
                logger.warning(
                    f"{type(e).__name__} fetching {url}, backing off {backoff:.1f}s "
                    f"(attempt {attempt + 1}/{MAX_RETRIES})"
                )
                time.sleep(backoff)
                continue
            raise FetchError(url, f"Failed to fetch {url}: {e}") from e
        except requests.exceptions.RequestException as e:
            raise FetchError(url, f"Failed to fetch {url}: {e}") from e

        if resp.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
            backoff = _backoff(attempt)
            logger.warning(
                f"Received {resp.status_code} for {url}, backing off {backoff:.1f}s "
                f"(attempt {attempt + 1}/{MAX_RETRIES})"
            )
            time.sleep(backoff)
            continue

        if resp.status_code >= 400:
            raise FetchError(url, f"HTTP {resp.status_code} fetching {url}", status_code=resp.status_code)

        return str(resp.text)

    # Loop always returns or raises; kept for type checkers
    raise FetchError(url, f"Failed to fetch {url}")


def _clean_sku(sku: Optional[str]) -> Optional[str]:
    if not sku:
        return None
    for prefix in ("sku:", "sku", "part #:", "part#:"):
        if sku.lower().startswith(prefix):
            sku = sku[len(prefix):]
            break
    sku = sku.strip()
    return sku or None


def _image_url(soup: BeautifulSoup, selector: Optional[str], base_url: str) -> Optional[str]:
    src = select_attr(soup, selector, "src", "data-src", "data-original")
    if not src:
        return None
    try:
        return validate_image_url(normalize_url(src, base_url)) or None
    except URLValidationError as e:
        logger.debug(f"Ignoring image {src}: {e}")
        return None


def parse_product_page(html: str, url: str, config: VendorConfig) -> Optional[ScrapedProduct]:
    """Extract a ScrapedProduct from product page HTML.

    Missing optional fields are left empty. A page without a parsable name
    yields None.
    """
    soup = parse_document(html)
    selectors = config.product_page_selectors

    raw_name = select_text(soup, selectors.name)
    if not raw_name:
        logger.warning(f"No product name found on {url}")
        return None
    name = normalize_product_title(raw_name, config.vendor)
    if not name:
        logger.warning(f"Product name on {url} is empty after normalization")
        return None

    price_text = select_text(soup, selectors.price)
    price = parse_price(price_text)
    if price_text and price is None:
        logger.debug(f"Unparsable price {price_text!r} on {url}")

    description = select_text(soup, selectors.description)
    if description and len(description) > MAX_DESCRIPTION_LENGTH:
        description = description[:MAX_DESCRIPTION_LENGTH].rstrip()

    brand = (
        select_text(soup, selectors.brand)
        or select_attr(soup, selectors.brand, "data-brand", "content")
        or extract_brand_from_name(name)
    )

    category = determine_category(url, name, description, config.category_for_url)

    specs = extract_specifications(soup, selectors.specifications)
    for key, value in extract_pattern_specs(name, description or "", category).items():
        specs.setdefault(key, value)

    return ScrapedProduct(
        vendor=config.vendor,
        category=category,
        name=name,
        url=url,
        price=price,
        in_stock=parse_in_stock(select_text(soup, selectors.in_stock)),
        brand=brand,
        sku=_clean_sku(select_text(soup, selectors.sku) or select_attr(soup, selectors.sku, "data-sku")),
        description=description,
        image_url=_image_url(soup, selectors.image, config.base_url),
        specifications=specs,
    )


def scrape_product_from_url(
    url: str,
    config: VendorConfig,
    session: Optional[requests.Session] = None,
) -> Optional[ScrapedProduct]:
    """Fetch and extract one product page. Fetch failures are logged and yield None."""
    try:
        html = fetch_html(url, session=session)
    except FetchError as e:
        log_scrape_event("fetch_error", {
            "message": str(e),
            "url": url,
            "status_code": e.status_code,
            "vendor": config.vendor,
        }, level=logging.WARNING, logger_name="scraper")
        return None
    return parse_product_page(html, url, config)


def _seed_urls(config: VendorConfig, category_filter: Optional[str]) -> List[str]:
    if not category_filter:
        return list(config.seed_urls)
    seeds = [u for u in config.seed_urls if config.category_for_url(u) == category_filter]
    # Vendors without a mapping for the category are walked in full and filtered on output
    return seeds or list(config.seed_urls)


def crawl_vendor(
    config: VendorConfig,
    category_filter: Optional[str] = None,
    session: Optional[requests.Session] = None,
    rate_limiter: Optional[RateLimiter] = None,
    max_pages: Optional[int] = None,
) -> Iterator[ScrapedProduct]:
    """Walk a vendor site breadth-first from its seed URLs, yielding products.

    Lazy and finite: stops after `max_pages` fetches (default
    `config.max_pages`) or when the frontier is exhausted. A URL that
    fails to fetch or parse is logged and skipped.
    """
    sess = session or create_session()
    limiter = rate_limiter or get_rate_limiter()
    page_budget = config.max_pages if max_pages is None else max_pages

    frontier: Deque[Tuple[str, int]] = deque()
    seen: Set[str] = set()
    for seed in _seed_urls(config, category_filter):
        key = canonical_url(seed)
        if key not in seen:
            seen.add(key)
            frontier.append((seed, 0))

    log_scrape_event("crawl_start", {
        "message": f"Crawling {config.vendor} ({category_filter or 'all'} categories)",
        "vendor": config.vendor,
        "category": category_filter or "all",
        "seeds": len(frontier),
        "max_pages": page_budget,
    }, logger_name="scraper")

    pages = 0
    emitted = 0
    errors = 0
    while frontier and pages < page_budget:
        if shutdown_requested():
            logger.info(f"Shutdown requested, stopping crawl of {config.vendor}")
            break

        url, depth = frontier.popleft()
        limiter.wait(config.vendor, config.rate_limit)
        pages += 1

        try:
            html = fetch_html(url, session=sess)
        except FetchError as e:
            errors += 1
            log_scrape_event("fetch_error", {
                "message": str(e),
                "url": url,
                "status_code": e.status_code,
                "vendor": config.vendor,
            }, level=logging.WARNING, logger_name="scraper")
            continue

        if is_product_page(url, config) and not is_excluded(url, config):
            try:
                product = parse_product_page(html, url, config)
            except Exception as e:
                errors += 1
                logger.warning(f"Failed to parse {url}: {e}")
                continue
            if product is None:
                continue
            if category_filter and product.category != category_filter:
                continue
            emitted += 1
            log_scrape_event("product_scraped", {
                "message": f"Scraped {product.name}",
                "vendor": config.vendor,
                "url": url,
                "category": product.category,
                "price": str(product.price) if product.price is not None else None,
            }, level=logging.DEBUG, logger_name="scraper")
            yield product
            continue

        if depth >= config.max_depth:
            continue

        try:
            links = extract_links(parse_document(html), config)
        except Exception as e:
            errors += 1
            logger.warning(f"Failed to extract links from {url}: {e}")
            continue

        for link in links:
            key = canonical_url(link)
            if key in seen:
                continue
            seen.add(key)
            frontier.append((link, depth + 1))

    log_scrape_event("crawl_complete", {
        "message": f"Finished {config.vendor}: {emitted} products from {pages} pages",
        "vendor": config.vendor,
        "pages": pages,
        "products": emitted,
        "errors": errors,
    }, logger_name="scraper")


def refresh_price(
    url: str,
    config: VendorConfig,
    session: Optional[requests.Session] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> Tuple[Optional[Decimal], bool]:
    """Re-read only price and stock from a known product page.

    Raises FetchError when the page cannot be fetched.
    """
    try:
        url = validate_url(url, allowed_domains={config.domain})
    except URLValidationError as e:
        raise FetchError(url, f"Refusing to refresh {url}: {e}") from e

    (rate_limiter or get_rate_limiter()).wait(config.vendor, config.rate_limit)
    soup = parse_document(fetch_html(url, session=session))
    selectors = config.product_page_selectors
    price = parse_price(select_text(soup, selectors.price))
    in_stock = parse_in_stock(select_text(soup, selectors.in_stock))
    return price, in_stock
