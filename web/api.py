"""Operator API endpoints.

Scheduler control and job status:
- GET  /api/scraper/status
- POST /api/scraper/schedule   {"action": "start" | "stop"}
- POST /api/scraper/trigger    {"type": "full" | "price", "vendor", "category"}
- GET  /api/scraper/jobs
- GET  /api/scraper/jobs/<id>

Catalog maintenance:
- POST /api/classify
- GET  /api/admin/variants?action=detect|stats
- POST /api/admin/variants     {"action": "split-single" | "split-batch"}
- GET  /api/admin/resort?action=report|preview
- POST /api/admin/resort       {"action": "resort-all" | "resort-category" | "resort-brand"}
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from flask import Blueprint, Response, current_app, jsonify, request

from partscrape.classifier import compare_classifications
from partscrape.config import CATEGORIES, get_vendor_config
from partscrape.db import get_job, get_product_count, list_jobs, list_products
from partscrape.errors import SchedulerShutdownError, VariantSplitError
from partscrape.models import JobStatus
from partscrape.scheduler import ScrapeScheduler
from partscrape.variants import get_variant_stats
from partscrape.workflows import (
    JOB_TYPES,
    find_variant_candidates,
    resort_products,
    resort_report,
    split_product,
    split_products,
)

from .config import DEFAULT_JOB_LIST_LIMIT, MAX_BATCH_SPLIT, MAX_JOB_LIST_LIMIT

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")

ApiResponse = Union[Response, Tuple[Response, int]]


def _scheduler() -> ScrapeScheduler:
    return current_app.extensions["scheduler"]


def _db_path() -> str:
    return current_app.config["DB_PATH"]


def _error(message: str, status: int = 400) -> Tuple[Response, int]:
    return jsonify({"error": message}), status


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@api.before_request
def enforce_rate_limit() -> Optional[Tuple[Response, int]]:
    """Reject clients that exceed the per-address request budget."""
    limiter = current_app.extensions["rate_limiter"]
    client = request.remote_addr or "unknown"
    if not limiter.allow(client):
        logger.warning(f"Rate limit exceeded for {client} on {request.path}")
        return _error("Rate limit exceeded, try again later", 429)
    return None


# ---------- SCRAPER ----------


@api.route("/scraper/status", methods=["GET"])
def scraper_status() -> ApiResponse:
    status = _scheduler().get_status()
    status["product_count"] = get_product_count(_db_path())
    status["recent_jobs"] = [job.to_dict() for job in list_jobs(_db_path(), limit=5)]
    return jsonify(status)


@api.route("/scraper/schedule", methods=["POST"])
def scraper_schedule() -> ApiResponse:
    action = _json_body().get("action")
    scheduler = _scheduler()
    if action == "start":
        try:
            changed = scheduler.start()
        except SchedulerShutdownError as e:
            return _error(str(e), 503)
    elif action == "stop":
        changed = scheduler.stop()
    else:
        return _error("action must be 'start' or 'stop'")

    logger.info(f"Scheduler {action} requested (changed={changed})")
    return jsonify({"success": True, "changed": changed, "status": scheduler.get_status()})


@api.route("/scraper/trigger", methods=["POST"])
def scraper_trigger() -> ApiResponse:
    data = _json_body()
    job_type = data.get("type", "full")
    vendor = data.get("vendor") or "all"
    category = data.get("category") or "all"

    if job_type not in JOB_TYPES:
        return _error(f"type must be one of {', '.join(JOB_TYPES)}")
    if not isinstance(vendor, str) or (vendor.lower() != "all" and get_vendor_config(vendor) is None):
        return _error(f"Unknown vendor: {vendor}")
    if category != "all" and category not in CATEGORIES:
        return _error(f"Unknown category: {category}")

    scheduler = _scheduler()
    try:
        if job_type == "full":
            job_id = scheduler.trigger_full(vendor=vendor, category=category)
        else:
            job_id = scheduler.trigger_price_update(vendor=vendor)
    except SchedulerShutdownError as e:
        return _error(str(e), 503)

    return jsonify({
        "success": True,
        "job_id": job_id,
        "status": JobStatus.PENDING.value,
        "message": f"{job_type} job queued for {vendor}",
    }), 202


@api.route("/scraper/jobs", methods=["GET"])
def scraper_jobs() -> ApiResponse:
    try:
        limit = int(request.args.get("limit", DEFAULT_JOB_LIST_LIMIT))
    except ValueError:
        return _error("limit must be an integer")
    limit = max(1, min(limit, MAX_JOB_LIST_LIMIT))

    status = request.args.get("status")
    if status:
        try:
            status = JobStatus(status.upper())
        except ValueError:
            return _error(f"Unknown status: {status}")

    jobs = list_jobs(_db_path(), limit=limit, status=status or None)
    return jsonify({"jobs": [job.to_dict() for job in jobs]})


@api.route("/scraper/jobs/<int:job_id>", methods=["GET"])
def scraper_job(job_id: int) -> ApiResponse:
    job = get_job(_db_path(), job_id)
    if job is None:
        return _error(f"Job {job_id} not found", 404)
    return jsonify(job.to_dict())


# ---------- CLASSIFICATION ----------


@api.route("/classify", methods=["POST"])
def classify_product() -> ApiResponse:
    data = _json_body()
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        return _error("name is required")
    return jsonify(compare_classifications(name, data.get("description"), data.get("url")))


# ---------- VARIANTS ----------


@api.route("/admin/variants", methods=["GET"])
def variants_report() -> ApiResponse:
    action = request.args.get("action", "detect")
    category = request.args.get("category") or None

    if action == "detect":
        candidates = find_variant_candidates(_db_path(), category=category)
        return jsonify({"count": len(candidates), "candidates": candidates})
    if action == "stats":
        names = [p.name for p in list_products(_db_path(), category=category)]
        return jsonify(get_variant_stats(names))
    return _error("action must be 'detect' or 'stats'")


def _parse_ids(raw: Any) -> Optional[List[int]]:
    if not isinstance(raw, list):
        return None
    ids = []
    for value in raw:
        if isinstance(value, bool):
            return None
        try:
            ids.append(int(value))
        except (TypeError, ValueError):
            return None
    return ids


@api.route("/admin/variants", methods=["POST"])
def variants_split() -> ApiResponse:
    data = _json_body()
    action = data.get("action")

    if action == "split-single":
        ids = _parse_ids([data.get("productId")])
        if not ids:
            return _error("productId must be an integer")
        try:
            result = split_product(_db_path(), ids[0])
        except VariantSplitError as e:
            return _error(str(e))
        return jsonify({"success": True, **result})

    if action == "split-batch":
        ids = _parse_ids(data.get("productIds"))
        if not ids:
            return _error("productIds must be a non-empty list of integers")
        if len(ids) > MAX_BATCH_SPLIT:
            return _error(f"At most {MAX_BATCH_SPLIT} products per batch")
        results = split_products(_db_path(), ids)
        succeeded = sum(1 for r in results if r["success"])
        return jsonify({
            "success": succeeded == len(results),
            "succeeded": succeeded,
            "failed": len(results) - succeeded,
            "results": results,
        })

    return _error("action must be 'split-single' or 'split-batch'")


# ---------- RESORT ----------


@api.route("/admin/resort", methods=["GET"])
def resort_preview() -> ApiResponse:
    action = request.args.get("action", "report")
    category = request.args.get("category") or None
    brand = request.args.get("brand") or None

    if category is not None and category not in CATEGORIES:
        return _error(f"Unknown category: {category}")
    if action == "report":
        return jsonify(resort_report(_db_path()))
    if action == "preview":
        return jsonify(resort_products(_db_path(), category=category, brand=brand))
    return _error("action must be 'report' or 'preview'")


@api.route("/admin/resort", methods=["POST"])
def resort_apply() -> ApiResponse:
    data = _json_body()
    action = data.get("action")
    category = data.get("category")
    brand = data.get("brand")

    if action == "resort-all":
        category, brand = None, None
    elif action == "resort-category":
        if category not in CATEGORIES:
            return _error("category is required and must be a known category")
        brand = None
    elif action == "resort-brand":
        if not isinstance(brand, str) or not brand.strip():
            return _error("brand is required")
        category = None
    else:
        return _error("action must be 'resort-all', 'resort-category' or 'resort-brand'")

    result = resort_products(_db_path(), category=category, brand=brand, apply=True)
    logger.info(f"Resort {action}: {result['reclassified']} of {result['total_processed']} reclassified")
    return jsonify({"success": True, **result})
