"""Command-line interface for the ingestion pipeline.

    python -m partscrape.cli crawl --vendor RDQ --category motor
    python -m partscrape.cli refresh-prices
    python -m partscrape.cli variants detect
    python -m partscrape.cli resort --category other --apply
    python -m partscrape.cli schedule
"""

import argparse
import json
import logging
from typing import List, Optional

from dotenv import load_dotenv

from partscrape.classifier import compare_classifications
from partscrape.config import CATEGORIES, DB_PATH, OUTPUT_PATH, PRICE_HISTORY_WINDOW_DAYS, VENDOR_CONFIGS
from partscrape.db import get_product_count, init_db, list_jobs
from partscrape.logging_config import setup_logging
from partscrape.models import JobStatus
from partscrape.reports import export_catalog_csv, get_price_stats
from partscrape.scheduler import ScrapeScheduler
from partscrape.shutdown import get_shutdown_handler
from partscrape.workflows import (
    find_variant_candidates,
    resort_products,
    resort_report,
    run_crawl_job,
    run_price_update_job,
    split_products,
)

__all__ = ["main", "parse_args"]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Drone parts vendor ingestion pipeline")
    parser.add_argument("--db", default=DB_PATH, help=f"SQLite database path (default: {DB_PATH})")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--no-log-file", action="store_true", help="Do not write JSONL log files")
    sub = parser.add_subparsers(dest="command", required=True)

    crawl = sub.add_parser("crawl", help="Run a full crawl job now")
    crawl.add_argument("--vendor", default="all", help=f"Vendor or 'all' ({', '.join(VENDOR_CONFIGS)})")
    crawl.add_argument("--category", default="all", choices=("all",) + CATEGORIES)
    crawl.add_argument("--max-pages", type=int, default=None, help="Fetch budget per vendor")

    refresh = sub.add_parser("refresh-prices", help="Re-fetch prices of least recently updated products")
    refresh.add_argument("--vendor", default="all")
    refresh.add_argument("--batch-size", type=int, default=None)

    classify = sub.add_parser("classify", help="Compare legacy and detailed classification")
    classify.add_argument("name")
    classify.add_argument("--description", default=None)
    classify.add_argument("--url", default=None)

    variants = sub.add_parser("variants", help="Detect or split variant listings")
    variants_sub = variants.add_subparsers(dest="variants_command", required=True)
    detect = variants_sub.add_parser("detect", help="List products with detectable variants")
    detect.add_argument("--category", default=None, choices=CATEGORIES)
    split = variants_sub.add_parser("split", help="Split products into variants (destructive)")
    split.add_argument("product_ids", nargs="+", type=int)

    resort = sub.add_parser("resort", help="Re-run classification over stored products (dry run by default)")
    resort.add_argument("--category", default=None, choices=CATEGORIES, help="Only products currently in this category")
    resort.add_argument("--brand", default=None)
    resort.add_argument("--apply", action="store_true", help="Write the new categories")
    resort.add_argument("--report", action="store_true", help="Print category/brand counts and likely misclassifications")

    jobs = sub.add_parser("jobs", help="Show recent jobs")
    jobs.add_argument("--limit", type=int, default=20)
    jobs.add_argument("--status", default=None, choices=[s.value for s in JobStatus])

    stats = sub.add_parser("stats", help="Catalog counts, or price stats for one product")
    stats.add_argument("--product", type=int, default=None)
    stats.add_argument("--days", type=int, default=PRICE_HISTORY_WINDOW_DAYS)

    export = sub.add_parser("export-csv", help="Export the catalog to CSV")
    export.add_argument("--output", default=OUTPUT_PATH)
    export.add_argument("--category", default=None, choices=CATEGORIES)

    sub.add_parser("schedule", help="Run the recurring scheduler until interrupted")

    return parser.parse_args(argv)


def _print_job(job) -> None:
    print(
        f"  #{job.id:<5} {job.job_type:<6} {job.vendor:<10} {job.category:<8} {job.status.value:<10}"
        f" found={job.products_found} created={job.products_created}"
        f" updated={job.products_updated} errors={job.error_count}"
    )
    if job.error_message:
        print(f"         error: {job.error_message}")


def show_stats(db_path: str) -> None:
    print(f"Database: {db_path}")
    print(f"Total products: {get_product_count(db_path)}")
    for category in CATEGORIES:
        count = get_product_count(db_path, category)
        if count:
            print(f"  {category:<8} {count}")


def run_schedule(db_path: str) -> None:
    handler = get_shutdown_handler().install()
    scheduler = ScrapeScheduler(db_path=db_path)
    handler.register_cleanup(scheduler.shutdown)
    scheduler.start()
    status = scheduler.get_status()
    print(f"Scheduler running. Next full run: {status['next_full_run']}, next price run: {status['next_price_run']}")
    print("Press Ctrl+C to stop.")
    try:
        handler.wait()
    finally:
        handler.cleanup()
        handler.uninstall()


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv)
    setup_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        log_to_file=not args.no_log_file,
    )
    init_db(args.db)

    if args.command == "crawl":
        job = run_crawl_job(args.db, vendor=args.vendor, category=args.category, max_pages=args.max_pages)
        _print_job(job)
        return 0 if job.status == JobStatus.COMPLETED else 1

    if args.command == "refresh-prices":
        kwargs = {"batch_size": args.batch_size} if args.batch_size else {}
        job = run_price_update_job(args.db, vendor=args.vendor, **kwargs)
        _print_job(job)
        return 0 if job.status == JobStatus.COMPLETED else 1

    if args.command == "classify":
        print(json.dumps(compare_classifications(args.name, args.description, args.url), indent=2))
        return 0

    if args.command == "variants":
        if args.variants_command == "detect":
            candidates = find_variant_candidates(args.db, category=args.category)
            for c in candidates:
                print(f"  #{c['product_id']:<6} {c['name']}")
                print(f"          {c['variant_type']}: {', '.join(c['variants'])}")
            print(f"{len(candidates)} products with variants")
            return 0
        results = split_products(args.db, args.product_ids)
        for result in results:
            if result["success"]:
                names = ", ".join(p["name"] for p in result["created_products"])
                print(f"  #{result['product_id']}: split {result['original_name']!r} -> {names}")
            else:
                print(f"  #{result['product_id']}: {result['error']}")
        return 0 if all(r["success"] for r in results) else 1

    if args.command == "resort":
        if args.report:
            report = resort_report(args.db)
            print(json.dumps(report, indent=2))
            return 0
        result = resort_products(args.db, category=args.category, brand=args.brand, apply=args.apply)
        for change in result["changes"]:
            print(f"  #{change['product_id']:<6} {change['name']}")
            print(f"          {change['old_category']} -> {change['new_category']} ({change['reason']})")
        verb = "Reclassified" if result["applied"] else "Would reclassify"
        print(f"{verb} {result['reclassified']} of {result['total_processed']} products")
        return 0

    if args.command == "jobs":
        jobs = list_jobs(args.db, limit=args.limit, status=JobStatus(args.status) if args.status else None)
        if not jobs:
            print("No jobs")
        for job in jobs:
            _print_job(job)
        return 0

    if args.command == "stats":
        if args.product is None:
            show_stats(args.db)
            return 0
        rows = get_price_stats(args.product, days=args.days, db_path=args.db)
        if not rows:
            print(f"No price history for product {args.product} in the last {args.days} days")
        for row in rows:
            print(
                f"  {row['vendor']:<10} latest={row['latest']:.2f} min={row['min']:.2f}"
                f" max={row['max']:.2f} mean={row['mean']:.2f} ({row['points']} points)"
            )
        return 0

    if args.command == "export-csv":
        count = export_catalog_csv(args.output, db_path=args.db, category=args.category)
        print(f"Exported {count} products to {args.output}")
        return 0

    if args.command == "schedule":
        run_schedule(args.db)
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main())
