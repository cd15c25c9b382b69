import logging
import os

import redis
from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.middleware.proxy_fix import ProxyFix

import config
from extensions import db, limiter
from models_streaks import StreakRecordRow  # noqa: F401
from streaks_api import init_streaks

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def _is_production() -> bool:
    return bool(os.getenv("RENDER")) or os.getenv("FLASK_ENV") == "production"


def create_app(overrides: dict | None = None, redis_client=None) -> Flask:
    app = Flask(__name__)

    app.config["SECRET_KEY"] = config.SECRET_KEY
    app.config["ADMIN_API_KEY"] = config.ADMIN_API_KEY
    app.config["SQLALCHEMY_DATABASE_URI"] = config.DATABASE_URL
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
        "pool_recycle": 300,
        "pool_pre_ping": True,
    }
    app.config["RATELIMIT_STORAGE_URI"] = config.RATE_LIMIT_STORAGE_URL
    app.config.update(overrides or {})

    # Enforce a strong SECRET_KEY in production (do not allow dev fallbacks).
    if _is_production() and app.config["SECRET_KEY"].startswith("dev-secret-key-change"):
        raise RuntimeError("SECRET_KEY must be set to a strong random value in production (Render/FLASK_ENV=production).")

    # Render runs behind a reverse proxy; trust a single hop.
    if _is_production():
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    db.init_app(app)
    limiter.init_app(app)
    CORS(app)

    if redis_client is None:
        # from_url does not connect until the first command.
        redis_client = redis.from_url(config.REDIS_URL)
    init_streaks(app, redis_client)

    @app.after_request
    def add_perf_headers(resp):
        if not (request.path or "").startswith("/static/"):
            # streak state is per-wallet; never let a proxy cache it
            resp.headers.setdefault("Cache-Control", "no-store")
        resp.headers.setdefault("X-Content-Type-Options", "nosniff")
        return resp

    @app.get("/healthz")
    def healthz():
        return jsonify({"ok": True})

    with app.app_context():
        db.create_all()

    return app


if __name__ == "__main__":
    app = create_app()
    port = int(os.getenv("PORT", 5000))
    debug = os.getenv("FLASK_ENV", "development") == "development"

    print("=" * 60)
    print("Daily Claim Streak Service")
    print("=" * 60)
    print(f"Status: http://localhost:{port}/api/streak/status?wallet=0x...")
    print(f"Redis:  {config.REDIS_URL}")
    print("=" * 60)

    app.run(host="0.0.0.0", port=port, debug=debug)
