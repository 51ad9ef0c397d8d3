"""Flask operator API for the ingestion pipeline.

Exposes scheduler controls, job status, classification review and
variant detect/split actions. Run with:

    python -m web.app
    gunicorn "web.app:create_app()"
"""

import atexit
import base64
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, Response, jsonify, request

# Load environment variables from .env file (explicitly specify path)
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

from partscrape.db import init_db  # noqa: E402
from partscrape.logging_config import setup_logging  # noqa: E402
from partscrape.rate_limit import RateLimiter  # noqa: E402
from partscrape.scheduler import ScrapeScheduler  # noqa: E402

from .config import (  # noqa: E402
    API_RATE_LIMIT_REQUESTS,
    API_RATE_LIMIT_WINDOW,
    DB_PATH,
    FLASK_DEBUG,
    FLASK_HOST,
    FLASK_PORT,
    SCHEDULER_AUTOSTART,
)

__all__ = ["create_app"]


# ---------- BASIC AUTH ----------


def _basic_auth_creds() -> tuple[Optional[str], Optional[str]]:
    """Get operator credentials from environment."""
    return os.getenv("OPERATOR_USER"), os.getenv("OPERATOR_PASS")


def _unauthorized() -> Response:
    return Response(
        "Authentication required",
        401,
        {"WWW-Authenticate": 'Basic realm="Login Required"'},
    )


def require_basic_auth() -> Optional[Response]:
    """
    Enforce HTTP Basic Auth for all routes.
    Skips enforcement if credentials are not configured (OPERATOR_USER/OPERATOR_PASS unset).
    """
    user, password = _basic_auth_creds()
    if not user or not password:
        return None  # auth disabled

    header = request.headers.get("Authorization", "")
    if not header.startswith("Basic "):
        return _unauthorized()

    try:
        decoded = base64.b64decode(header.split(" ", 1)[1]).decode("utf-8")
        username, passwd = decoded.split(":", 1)
    except (ValueError, UnicodeDecodeError):
        return _unauthorized()

    if username == user and passwd == password:
        return None
    return _unauthorized()


# ---------- APP FACTORY ----------


def create_app(
    db_path: Optional[str] = None,
    scheduler: Optional[ScrapeScheduler] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> Flask:
    """Build the operator app.

    The scheduler lives for the life of the process; it is shut down at
    interpreter exit.
    """
    app = Flask(__name__)
    app.config["DB_PATH"] = db_path or DB_PATH
    init_db(app.config["DB_PATH"])

    if scheduler is None:
        scheduler = ScrapeScheduler(db_path=app.config["DB_PATH"])
        atexit.register(scheduler.shutdown, wait=False)
        if SCHEDULER_AUTOSTART:
            scheduler.start()
    app.extensions["scheduler"] = scheduler
    app.extensions["rate_limiter"] = rate_limiter or RateLimiter(
        max_requests=API_RATE_LIMIT_REQUESTS,
        window=API_RATE_LIMIT_WINDOW,
    )

    app.before_request(require_basic_auth)

    from .api import api
    app.register_blueprint(api)

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok"})

    return app


if __name__ == "__main__":
    setup_logging()
    create_app().run(host=FLASK_HOST, port=FLASK_PORT, debug=FLASK_DEBUG)
