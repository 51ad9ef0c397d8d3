"""Centralized configuration for the operator web API."""

import os

from partscrape.config import API_RATE_LIMIT_REQUESTS, API_RATE_LIMIT_WINDOW, DB_PATH

__all__ = [
    "DB_PATH",
    "FLASK_HOST",
    "FLASK_PORT",
    "FLASK_DEBUG",
    "SCHEDULER_AUTOSTART",
    "API_RATE_LIMIT_REQUESTS",
    "API_RATE_LIMIT_WINDOW",
    "DEFAULT_JOB_LIST_LIMIT",
    "MAX_JOB_LIST_LIMIT",
    "MAX_BATCH_SPLIT",
]

# Flask app settings (allow env overrides; default debug off for safety)
FLASK_HOST = os.getenv("FLASK_HOST", "0.0.0.0")
FLASK_PORT = int(os.getenv("FLASK_PORT", os.getenv("PORT", "5000")))
FLASK_DEBUG = os.getenv("FLASK_DEBUG", "False").lower() == "true"

# Arm the recurring crawl timers when the app starts
SCHEDULER_AUTOSTART = os.getenv("SCHEDULER_AUTOSTART", "False").lower() == "true"

DEFAULT_JOB_LIST_LIMIT = 20
MAX_JOB_LIST_LIMIT = 200
MAX_BATCH_SPLIT = int(os.getenv("MAX_BATCH_SPLIT", "100"))
