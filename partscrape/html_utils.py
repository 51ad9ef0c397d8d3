"""HTML parsing and extraction utilities.

Pure functions over a parsed document: no fetching, no business state.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

from bs4 import BeautifulSoup, Tag

from partscrape.config import VendorConfig
from partscrape.logging_config import get_logger
from partscrape.models import SpecValue
from partscrape.url_validation import URLValidationError, canonical_url, normalize_url, validate_url

__all__ = [
    "parse_document",
    "select_text",
    "select_attr",
    "extract_links",
    "is_product_page",
    "is_excluded",
    "parse_price",
    "parse_in_stock",
    "normalize_product_title",
    "extract_brand_from_name",
    "extract_specifications",
    "extract_pattern_specs",
    "normalize_spec_key",
]

logger = get_logger("html_utils")

# Prices like "$1,299.00", "1.299,00 €", "Sale price $21.77Regular price$28.78"
PRICE_TOKEN_RE = re.compile(r"\d{1,3}(?:[.,\s]\d{3})+(?:[.,]\d{1,2})?|\d+(?:[.,]\d{1,2})?")

OUT_OF_STOCK_KEYWORDS = ("out of stock", "sold out", "unavailable", "backorder", "notify me")

KNOWN_BRANDS = (
    "T-Motor", "TMotor", "EMAX", "BetaFPV", "iFlight", "HappyModel", "Foxeer", "RunCam",
    "Caddx", "Armattan", "ImpulseRC", "TBS", "FrSky", "Radiomaster", "DJI", "Fat Shark",
    "Gemfan", "HQProp", "DALProp", "Tattu", "CNHL", "GNB", "SpeedyBee", "Holybro",
    "Matek", "Diatone", "GEPRC", "Flywoo", "BrotherHobby", "Lumenier", "Walksnail",
)

VENDOR_PREFIXES: Dict[str, List[str]] = {
    "GetFPV": ["GetFPV", "Get FPV"],
    "RDQ": ["RDQ", "Race Day Quads", "RaceDay"],
    "Pyrodrone": ["Pyrodrone", "Pyro Drone"],
}

MARKETING_TERMS = (
    re.compile(
        r"\b(?:new|brand new|original|genuine|authentic|official|latest|premium|"
        r"high[- ]quality|top[- ]quality)\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(?:free shipping|fast delivery|quick ship|in stock|available now|on sale|"
        r"special offer|limited time|hot deal)\b",
        re.IGNORECASE,
    ),
    re.compile(r"\b(?:for fpv|for drone|for quadcopter|for multirotor)\b", re.IGNORECASE),
)

MAX_TITLE_LENGTH = 80


def parse_document(html: str) -> BeautifulSoup:
    """Parse raw HTML into a navigable tree."""
    return BeautifulSoup(html, "html.parser")


def select_text(soup: BeautifulSoup, selector: Optional[str]) -> Optional[str]:
    """Text of the first element matching `selector`, whitespace-collapsed."""
    if not selector:
        return None
    el = soup.select_one(selector)
    if el is None:
        return None
    text = " ".join(el.stripped_strings)
    return text or None


def select_attr(soup: BeautifulSoup, selector: Optional[str], *attrs: str) -> Optional[str]:
    """First non-empty value among `attrs` on the first matching element."""
    if not selector:
        return None
    el = soup.select_one(selector)
    if el is None:
        return None
    for attr in attrs:
        value = el.get(attr)
        if isinstance(value, list):
            value = " ".join(value)
        if value and value.strip():
            return value.strip()
    return None


def is_product_page(url: str, config: VendorConfig) -> bool:
    return any(indicator in url for indicator in config.product_page_indicators)


def is_excluded(url: str, config: VendorConfig) -> bool:
    return any(pattern in url for pattern in config.exclude_patterns)


def extract_links(soup: BeautifulSoup, config: VendorConfig) -> List[str]:
    """Discover crawlable links on a listing page.

    Uses the vendor's link selectors plus any anchor that looks like a
    product page. Links must stay on the vendor's domain and avoid the
    exclusion patterns. Order is preserved, duplicates removed.
    """
    candidates: List[str] = []
    for selector in config.link_selectors:
        for a in soup.select(selector):
            href = a.get("href")
            if isinstance(href, str):
                candidates.append(href)
    for a in soup.find_all("a", href=True):
        href = a["href"]
        if isinstance(href, str) and is_product_page(href, config):
            candidates.append(href)

    links: List[str] = []
    seen = set()
    for href in candidates:
        if is_excluded(href, config):
            continue
        url = normalize_url(href, config.base_url)
        if not url or is_excluded(url, config):
            continue
        try:
            url = validate_url(url, allowed_domains={config.domain})
        except URLValidationError as e:
            logger.debug(f"Skipping link {href}: {e}")
            continue
        key = canonical_url(url)
        if key not in seen:
            seen.add(key)
            links.append(url)
    return links


def _to_decimal(token: str) -> Optional[Decimal]:
    token = re.sub(r"\s", "", token)
    match = re.match(r"^(.*?)(?:[.,](\d{1,2}))?$", token)
    if not match:
        return None
    whole = re.sub(r"[.,]", "", match.group(1))
    frac = match.group(2)
    if not whole:
        return None
    try:
        value = Decimal(f"{whole}.{frac}" if frac else whole)
    except InvalidOperation:
        return None
    return value.quantize(Decimal("0.01"))


def parse_price(price_text: Optional[str]) -> Optional[Decimal]:
    """Parse price text into a Decimal, or None when no positive amount is found.

    Currency symbols and thousands separators are stripped. When several
    amounts are present (sale + regular), the first one wins.
    """
    if not price_text:
        return None
    match = PRICE_TOKEN_RE.search(price_text)
    if not match:
        return None
    value = _to_decimal(match.group(0).strip())
    if value is None or value <= 0:
        return None
    return value


def parse_in_stock(stock_text: Optional[str]) -> bool:
    """A listing is in stock unless its stock text says otherwise."""
    if not stock_text:
        return True
    lowered = stock_text.lower()
    return not any(keyword in lowered for keyword in OUT_OF_STOCK_KEYWORDS)


def normalize_product_title(title: str, vendor: str = "") -> str:
    """Clean up a vendor product title."""
    cleaned = re.sub(r"\s+", " ", title).strip()

    for prefix in VENDOR_PREFIXES.get(vendor, []):
        cleaned = re.sub(rf"^{re.escape(prefix)}\s*[-:]?\s*", "", cleaned, flags=re.IGNORECASE)

    for pattern in MARKETING_TERMS:
        cleaned = re.sub(r"\s+", " ", pattern.sub(" ", cleaned)).strip()

    cleaned = re.sub(r"\([^)]*\bincludes?d?\b[^)]*\)", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"\s+", " ", cleaned).strip(" -")

    if len(cleaned) > MAX_TITLE_LENGTH:
        parts = [p.strip() for p in re.split(r"\s[-–—|]\s", cleaned) if p.strip()]
        if len(parts) > 1:
            cleaned = parts[0]
            if len(cleaned) < 30:
                cleaned += " - " + parts[1]
        if len(cleaned) > MAX_TITLE_LENGTH:
            cleaned = cleaned[: MAX_TITLE_LENGTH - 3].rstrip() + "..."

    return cleaned


def extract_brand_from_name(name: str) -> Optional[str]:
    lowered = name.lower()
    for brand in KNOWN_BRANDS:
        if brand.lower() in lowered:
            return brand
    first = name.split()[0] if name.split() else ""
    return first or None


def normalize_spec_key(key: str) -> str:
    """'Stator Size:' -> 'stator_size'."""
    key = key.strip().rstrip(":").lower()
    key = re.sub(r"[^a-z0-9]+", "_", key)
    return key.strip("_")


def _spec_pair(el: Tag) -> Optional[tuple]:
    if el.name == "tr":
        cells = el.find_all(["td", "th"])
        if len(cells) >= 2:
            return cells[0].get_text(" ", strip=True), cells[1].get_text(" ", strip=True)
        return None
    if el.name == "dt":
        dd = el.find_next_sibling("dd")
        if dd is not None:
            return el.get_text(" ", strip=True), dd.get_text(" ", strip=True)
        return None
    text = el.get_text(" ", strip=True)
    match = re.match(r"^([^:]{1,40}):\s*(.+)$", text)
    if match:
        return match.group(1), match.group(2)
    return None


def extract_specifications(soup: BeautifulSoup, selector: Optional[str]) -> Dict[str, SpecValue]:
    """Extract key/value specs from tables, definition lists and 'Key: value' items."""
    specs: Dict[str, SpecValue] = {}
    if not selector:
        return specs
    for container in soup.select(selector):
        for el in container.find_all(["tr", "dt", "li"]):
            pair = _spec_pair(el)
            if not pair:
                continue
            key, value = normalize_spec_key(pair[0]), pair[1].strip()
            if key and value and key not in specs:
                specs[key] = value
    return specs


def extract_pattern_specs(name: str, description: str, category: str) -> Dict[str, SpecValue]:
    """Pull well-known spec values out of the name/description text."""
    text = f"{name} {description}".lower()
    specs: Dict[str, SpecValue] = {}

    if category == "motor":
        kv = re.search(r"\b(\d{3,5})\s*kv\b", text)
        if kv:
            specs["kv"] = int(kv.group(1))
        stator = re.search(r"\b((?:0[89]|1\d|2\d|3\d|4\d)\d{2})\b", name)
        if stator:
            specs["stator_size"] = stator.group(1)
    elif category == "battery":
        mah = re.search(r"\b(\d{3,5})\s*mah\b", text)
        if mah:
            specs["capacity_mah"] = int(mah.group(1))
        cells = re.search(r"\b(\d{1,2})\s*s\b", text)
        if cells:
            specs["cells"] = int(cells.group(1))
        voltage = re.search(r"\b(\d{1,2}(?:\.\d{1,2})?)\s*v\b", text)
        if voltage:
            specs["voltage"] = f"{voltage.group(1)}V"
        connector = re.search(r"\b(xt30|xt60|xt90|ph2\.0|bt2\.0)\b", text)
        if connector:
            specs["connector"] = connector.group(1).upper()
    elif category == "prop":
        size = re.search(r"\b(\d+(?:\.\d+)?)\s*x\s*(\d+(?:\.\d+)?)(?:\s*x\s*(\d))?\b", text)
        if size:
            specs["size"] = size.group(0).replace(" ", "")
            specs["pitch"] = size.group(2)
            if size.group(3):
                specs["blades"] = int(size.group(3))
        if "blades" not in specs:
            if "tri-blade" in text or "triblade" in text:
                specs["blades"] = 3
            elif "bi-blade" in text:
                specs["blades"] = 2
    elif category == "stack":
        current = re.search(r"\b(\d{2,3})\s*a\b", text)
        if current:
            specs["current"] = f"{current.group(1)}A"
        processor = re.search(r"\b(f4\d{2}|f7\d{2}|h7\d{2}|g4\d{2})\b", text)
        if processor:
            specs["processor"] = processor.group(1).upper()
    elif category == "frame":
        wheelbase = re.search(r"\b(\d{2,3})\s*mm\b", text)
        if wheelbase:
            specs["wheelbase"] = f"{wheelbase.group(1)}mm"
        size = re.search(r"\b(\d(?:\.\d)?)\s*(?:inch|in|\")(?=\W|$)", text)
        if size:
            specs["size"] = f"{size.group(1)}inch"
    elif category == "camera":
        tvl = re.search(r"\b(\d{3,4})\s*tvl\b", text)
        if tvl:
            specs["resolution"] = f"{tvl.group(1)}TVL"
        fov = re.search(r"\b(\d{2,3})\s*°?\s*fov\b", text)
        if fov:
            specs["fov"] = f"{fov.group(1)}°"

    return specs
