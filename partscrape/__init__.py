"""Drone parts vendor ingestion pipeline."""

__version__ = "0.1.0"

# Re-export main components for convenient imports
from partscrape.classifier import classify, classify_with_details, compare_classifications
from partscrape.config import CATEGORIES, DB_PATH, VENDOR_CONFIGS, VendorConfig, get_vendor_config
from partscrape.db import get_product_count, init_db
from partscrape.ingest import ingest_products
from partscrape.models import JobStatus, Product, ScrapedProduct, ScrapingJob
from partscrape.scheduler import ScrapeScheduler
from partscrape.scraper import crawl_vendor, scrape_product_from_url
from partscrape.variants import detect_variants, has_likely_variants, split_product_variants
from partscrape.workflows import run_crawl_job, run_price_update_job, split_product, split_products

__all__ = [
    # Version
    "__version__",
    # Config
    "CATEGORIES",
    "DB_PATH",
    "VENDOR_CONFIGS",
    "VendorConfig",
    "get_vendor_config",
    # Models
    "JobStatus",
    "Product",
    "ScrapedProduct",
    "ScrapingJob",
    # Core functions
    "classify",
    "classify_with_details",
    "compare_classifications",
    "crawl_vendor",
    "scrape_product_from_url",
    "detect_variants",
    "has_likely_variants",
    "split_product_variants",
    "ingest_products",
    "init_db",
    "get_product_count",
    "run_crawl_job",
    "run_price_update_job",
    "split_product",
    "split_products",
    # Scheduling
    "ScrapeScheduler",
]
