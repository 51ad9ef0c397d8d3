"""Data models for scraped listings, catalog rows and jobs."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Union

__all__ = [
    "SpecValue",
    "ScrapedProduct",
    "Product",
    "VendorPrice",
    "PriceHistoryPoint",
    "JobStatus",
    "ScrapingJob",
    "VariantSpec",
    "ProductDraft",
]

SpecValue = Union[str, int, float]


@dataclass
class ScrapedProduct:
    """A single listing extracted from one vendor page.

    Transient: never persisted as-is. `price` is None when the page had a
    price element that could not be parsed.
    """

    # Required fields
    vendor: str
    category: str
    name: str
    url: str

    # Optional fields
    price: Optional[Decimal] = None
    in_stock: bool = True
    brand: Optional[str] = None
    sku: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None

    # Raw + pattern-extracted specifications
    specifications: Dict[str, SpecValue] = field(default_factory=dict)


@dataclass
class Product:
    """A persisted catalog entry."""

    name: str
    category: str
    brand: Optional[str] = None
    sku: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    specifications: Dict[str, SpecValue] = field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    # Database ID (set after insert)
    id: Optional[int] = None


@dataclass
class VendorPrice:
    """Current price of a product at one vendor. Unique per (product, vendor)."""

    product_id: int
    vendor_id: int
    price: Decimal
    url: str
    in_stock: bool = True
    currency: str = "USD"
    last_updated: Optional[str] = None
    id: Optional[int] = None


@dataclass
class PriceHistoryPoint:
    """One append-only price observation."""

    product_id: int
    vendor_id: int
    price: Decimal
    recorded_at: str
    id: Optional[int] = None


class JobStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass
class ScrapingJob:
    """One crawl invocation, scoped to a vendor/category or "all"."""

    vendor: str = "all"
    category: str = "all"
    job_type: str = "full"
    status: JobStatus = JobStatus.PENDING
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    products_found: int = 0
    products_created: int = 0
    products_updated: int = 0
    error_count: int = 0
    error_message: Optional[str] = None
    created_at: Optional[str] = None
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "vendor": self.vendor,
            "category": self.category,
            "job_type": self.job_type,
            "status": self.status.value,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "products_found": self.products_found,
            "products_created": self.products_created,
            "products_updated": self.products_updated,
            "error_count": self.error_count,
            "error_message": self.error_message,
            "created_at": self.created_at,
        }


@dataclass
class VariantSpec:
    """Result of variant detection on a product name.

    `matched_text` is the exact substring of the original name holding the
    variant values (e.g. "1750KV/2000KV/2300KV").
    """

    original: str
    variants: List[str]
    base_name: str
    variant_type: str
    unit: str
    spec_key: Optional[str]
    matched_text: str


@dataclass
class ProductDraft:
    """An unpersisted product produced by a variant split."""

    name: str
    category: str
    brand: Optional[str] = None
    sku: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    specifications: Dict[str, SpecValue] = field(default_factory=dict)
    variant: Optional[str] = None
    variant_type: Optional[str] = None
