"""Job-level orchestration: crawl jobs, price refresh jobs and variant splits.

A job row is created PENDING by whoever triggers it, then `run_job()`
moves it to RUNNING and finally to COMPLETED or FAILED. Only errors
around the crawl loop fail a job; item errors are counted.
"""

import logging
from dataclasses import asdict
from typing import Any, Dict, List, Optional, Sequence

import requests  # type: ignore[import-untyped]

from partscrape.classifier import classify_with_details
from partscrape.config import CATEGORIES, DB_PATH, PRICE_UPDATE_BATCH_SIZE, VENDOR_CONFIGS, VendorConfig, get_vendor_config
from partscrape.db import (
    append_price_history,
    create_job,
    get_job,
    get_price_targets,
    get_product,
    list_products,
    now_timestamp,
    replace_product_with_drafts,
    update_job,
    update_product,
    upsert_vendor_price,
)
from partscrape.errors import FetchError, JobFatalError, VariantSplitError
from partscrape.ingest import IngestStats, ingest_products
from partscrape.logging_config import get_logger, log_scrape_event
from partscrape.models import JobStatus, Product, ScrapingJob
from partscrape.rate_limit import RateLimiter
from partscrape.reports import category_breakdown
from partscrape.scraper import crawl_vendor, create_session, refresh_price
from partscrape.variants import detect_variants, split_product_variants

__all__ = [
    "JOB_TYPES",
    "create_pending_job",
    "resolve_vendor_configs",
    "run_job",
    "run_crawl_job",
    "run_price_update_job",
    "split_product",
    "split_products",
    "find_variant_candidates",
    "resort_products",
    "resort_report",
    "product_to_dict",
]

logger = get_logger("workflows")

JOB_TYPES = ("full", "price")


def product_to_dict(product: Product) -> Dict[str, Any]:
    return asdict(product)


def create_pending_job(
    db_path: str = DB_PATH,
    vendor: str = "all",
    category: str = "all",
    job_type: str = "full",
) -> int:
    """Create a PENDING job row and return its id."""
    if job_type not in JOB_TYPES:
        raise ValueError(f"Unknown job type: {job_type}")
    job = create_job(db_path, vendor=vendor, category=category, job_type=job_type)
    log_scrape_event("job_status", {
        "message": f"Job {job.id} ({job_type}, {vendor}/{category}) pending",
        "job_id": job.id,
        "status": JobStatus.PENDING.value,
    }, logger_name="workflows")
    return job.id


def resolve_vendor_configs(vendor: str) -> List[VendorConfig]:
    """Configs for one vendor, or every vendor for "all". Unknown vendors are fatal."""
    if vendor == "all":
        return list(VENDOR_CONFIGS.values())
    config = get_vendor_config(vendor)
    if config is None:
        raise JobFatalError(f"Unknown vendor: {vendor}")
    return [config]


def _set_status(db_path: str, job_id: int, status: JobStatus, **fields: Any) -> None:
    update_job(db_path, job_id, status=status, **fields)
    log_scrape_event("job_status", {
        "message": f"Job {job_id} {status.value.lower()}",
        "job_id": job_id,
        "status": status.value,
        **fields,
    }, level=logging.ERROR if status == JobStatus.FAILED else logging.INFO, logger_name="workflows")


def _finish(db_path: str, job_id: int, stats: IngestStats, error: Optional[str] = None) -> None:
    _set_status(
        db_path,
        job_id,
        JobStatus.FAILED if error else JobStatus.COMPLETED,
        completed_at=now_timestamp(),
        products_found=stats.found,
        products_created=stats.created,
        products_updated=stats.updated,
        error_count=stats.errors,
        error_message=error,
    )


def _crawl(
    db_path: str,
    job: ScrapingJob,
    stats: IngestStats,
    session: Optional[requests.Session],
    rate_limiter: Optional[RateLimiter],
    max_pages: Optional[int],
) -> None:
    if job.category != "all" and job.category not in CATEGORIES:
        raise JobFatalError(f"Unknown category: {job.category}")
    category_filter = None if job.category == "all" else job.category

    sess = session or create_session()
    for config in resolve_vendor_configs(job.vendor):
        products = crawl_vendor(
            config,
            category_filter=category_filter,
            session=sess,
            rate_limiter=rate_limiter,
            max_pages=max_pages,
        )
        stats.add(ingest_products(db_path, products, job_id=job.id))
        logger.info(
            f"Job {job.id}: {config.vendor} done "
            f"({stats.found} found, {stats.created} created, {stats.updated} updated)"
        )


def _refresh_prices(
    db_path: str,
    job: ScrapingJob,
    stats: IngestStats,
    session: Optional[requests.Session],
    rate_limiter: Optional[RateLimiter],
    batch_size: int,
) -> None:
    vendor = None if job.vendor == "all" else job.vendor
    if vendor is not None:
        vendor = resolve_vendor_configs(vendor)[0].vendor

    sess = session or create_session()
    for target in get_price_targets(db_path, batch_size, vendor=vendor):
        stats.found += 1
        config = get_vendor_config(target["vendor"])
        if config is None:
            stats.errors += 1
            logger.warning(f"No crawl config for vendor {target['vendor']}, skipping {target['url']}")
            continue
        try:
            price, in_stock = refresh_price(target["url"], config, session=sess, rate_limiter=rate_limiter)
        except FetchError as e:
            stats.errors += 1
            log_scrape_event("fetch_error", {
                "message": str(e),
                "url": target["url"],
                "status_code": e.status_code,
                "job_id": job.id,
            }, level=logging.WARNING, logger_name="workflows")
            continue
        if price is None:
            stats.errors += 1
            logger.warning(f"No price found on {target['url']}")
            continue

        upsert_vendor_price(
            db_path,
            product_id=target["product_id"],
            vendor_id=target["vendor_id"],
            price=price,
            url=target["url"],
            in_stock=in_stock,
        )
        append_price_history(db_path, target["product_id"], target["vendor_id"], price)
        update_product(db_path, target["product_id"])
        stats.updated += 1


def run_job(
    db_path: str,
    job_id: int,
    session: Optional[requests.Session] = None,
    rate_limiter: Optional[RateLimiter] = None,
    max_pages: Optional[int] = None,
    batch_size: int = PRICE_UPDATE_BATCH_SIZE,
) -> ScrapingJob:
    """Run a PENDING job to completion and return its final row.

    Never raises for job-level failures: they end as FAILED with an
    error message.
    """
    job = get_job(db_path, job_id)
    if job is None:
        raise ValueError(f"Job {job_id} not found")
    if job.status != JobStatus.PENDING:
        raise ValueError(f"Job {job_id} is {job.status.value}, expected PENDING")

    _set_status(db_path, job_id, JobStatus.RUNNING, started_at=now_timestamp())

    stats = IngestStats()
    try:
        if job.job_type == "price":
            _refresh_prices(db_path, job, stats, session, rate_limiter, batch_size)
        else:
            _crawl(db_path, job, stats, session, rate_limiter, max_pages)
    except Exception as e:
        logger.exception(f"Job {job_id} failed")
        _finish(db_path, job_id, stats, error=str(e) or type(e).__name__)
    else:
        _finish(db_path, job_id, stats)

    return get_job(db_path, job_id)


def run_crawl_job(
    db_path: str = DB_PATH,
    vendor: str = "all",
    category: str = "all",
    **kwargs: Any,
) -> ScrapingJob:
    """Create and run a full crawl job in the calling thread."""
    job_id = create_pending_job(db_path, vendor=vendor, category=category, job_type="full")
    return run_job(db_path, job_id, **kwargs)


def run_price_update_job(db_path: str = DB_PATH, vendor: str = "all", **kwargs: Any) -> ScrapingJob:
    """Create and run a price-only refresh job in the calling thread."""
    job_id = create_pending_job(db_path, vendor=vendor, job_type="price")
    return run_job(db_path, job_id, **kwargs)


# =============================================================================
# Variant split
# =============================================================================

def split_product(db_path: str, product_id: int) -> Dict[str, Any]:
    """Split one persisted product into its variants.

    Every vendor price row of the original is copied onto each new product
    and the original is deleted. Raises VariantSplitError when the product
    does not exist or has no variants.
    """
    product = get_product(db_path, product_id)
    if product is None:
        raise VariantSplitError(product_id, f"Product {product_id} not found")

    drafts = split_product_variants(product)
    if len(drafts) <= 1:
        raise VariantSplitError(product_id, f"No variants detected in {product.name!r}")

    created = replace_product_with_drafts(db_path, product_id, drafts)
    log_scrape_event("variant_split", {
        "message": f"Split {product.name!r} into {len(created)} products",
        "product_id": product_id,
        "created_ids": [p.id for p in created],
        "variant_type": drafts[0].variant_type,
    }, logger_name="workflows")
    return {
        "original_name": product.name,
        "created_products": [product_to_dict(p) for p in created],
    }


def split_products(db_path: str, product_ids: Sequence[int]) -> List[Dict[str, Any]]:
    """Split several products; each id succeeds or fails on its own."""
    results = []
    for product_id in product_ids:
        try:
            result = split_product(db_path, product_id)
        except VariantSplitError as e:
            results.append({"product_id": product_id, "success": False, "error": str(e)})
            continue
        except Exception as e:
            logger.exception(f"Unexpected error splitting product {product_id}")
            results.append({"product_id": product_id, "success": False, "error": str(e)})
            continue
        results.append({"product_id": product_id, "success": True, **result})
    return results


def find_variant_candidates(db_path: str = DB_PATH, category: Optional[str] = None) -> List[Dict[str, Any]]:
    """Persisted products whose names carry splittable variants."""
    candidates = []
    for product in list_products(db_path, category=category):
        detected = detect_variants(product.name, product.category)
        if detected is None:
            continue
        candidates.append({
            "product_id": product.id,
            "name": product.name,
            "category": product.category,
            "variants": detected.variants,
            "variant_type": detected.variant_type,
            "base_name": detected.base_name,
        })
    return candidates


# =============================================================================
# Category resort
# =============================================================================

def resort_products(
    db_path: str = DB_PATH,
    category: Optional[str] = None,
    brand: Optional[str] = None,
    apply: bool = False,
) -> Dict[str, Any]:
    """Re-run classification over stored products.

    Scoped by current category and/or brand (case-insensitive). Without
    `apply` this is a dry run: the changes are reported and nothing is
    written.
    """
    products = list_products(db_path, category=category)
    if brand:
        products = [p for p in products if (p.brand or "").lower() == brand.lower()]

    changes = []
    for product in products:
        result = classify_with_details(product.name, product.description)
        if result.category == product.category:
            continue
        changes.append({
            "product_id": product.id,
            "name": product.name,
            "brand": product.brand,
            "old_category": product.category,
            "new_category": result.category,
            "confidence": result.confidence,
            "reason": result.reasoning,
        })

    if apply:
        for change in changes:
            update_product(db_path, change["product_id"], category=change["new_category"])
        if changes:
            log_scrape_event("product_resort", {
                "message": f"Reclassified {len(changes)} of {len(products)} products",
                "category": category,
                "brand": brand,
                "product_ids": [c["product_id"] for c in changes],
            }, logger_name="workflows")

    return {
        "total_processed": len(products),
        "reclassified": len(changes),
        "applied": apply,
        "changes": changes,
    }


def resort_report(db_path: str = DB_PATH) -> Dict[str, Any]:
    """Category distribution, per-brand breakdown and likely misclassifications."""
    report = category_breakdown(db_path)
    report["potential_misclassifications"] = resort_products(db_path)["changes"]
    return report
