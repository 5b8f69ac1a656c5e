import logging
import os
import time

from quart import Quart, g, jsonify, request
from werkzeug.exceptions import HTTPException

from .auth.controller import bp as auth_bp
from .auth.session import build_session_store, load_session
from .cart.controller import bp as cart_bp
from .catalog.controller import bp as catalog_bp
from .common import database
from .common.config import settings
from .common.kafka_client import close_producer
from .orders.controller import bp as orders_bp
from .payments.controller import bp as payments_bp
from .payments.gateway import CinetPayClient
from .seed import seed_catalog

# Prometheus metrics
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


log = logging.getLogger(__name__)

# Get instance ID from environment
INSTANCE_ID = os.getenv("INSTANCE_ID", "unknown")

REQUEST_COUNT = Counter("http_requests_total", "Total HTTP requests", ["method", "endpoint", "status"])
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0, float("inf"))
)


def create_app() -> Quart:
    app = Quart(__name__)

    # Blueprints
    app.register_blueprint(auth_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(cart_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(payments_bp)

    @app.before_request
    async def before_request():
        g.start_time = time.time()
        log.debug("[Instance %s] %s %s", INSTANCE_ID, request.method, request.path)
        await load_session()

    @app.after_request
    async def after_request(response):
        try:
            start = getattr(g, "start_time", None)
            if start is not None:
                duration = time.time() - start
                # Label by route pattern so /api/products/1 and /api/products/2 share a series
                endpoint = request.url_rule.rule if request.url_rule is not None else "unmatched"
                REQUEST_LATENCY.labels(endpoint=endpoint).observe(duration)
                REQUEST_COUNT.labels(
                    method=request.method,
                    endpoint=endpoint,
                    status=str(response.status_code)
                ).inc()
                response.headers["X-Instance-ID"] = INSTANCE_ID
        except Exception as e:
            log.error("Error recording metrics: %s", e)
        return response

    @app.errorhandler(HTTPException)
    async def http_error(error: HTTPException):
        return jsonify({"message": error.description}), error.code

    @app.errorhandler(Exception)
    async def unexpected_error(error: Exception):
        log.error("Unhandled error on %s %s", request.method, request.path, exc_info=error)
        return jsonify({"success": False, "message": "Erreur serveur"}), 500

    @app.get("/metrics")
    async def metrics():
        data = generate_latest()
        return app.response_class(data, mimetype=CONTENT_TYPE_LATEST)

    @app.get("/health")
    async def health():
        return jsonify({"status": "ok"})

    @app.before_serving
    async def startup():
        logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
        log.info("Initializing database...")
        database.configure_engine(settings.DB_URL)
        await database.init_db()
        if settings.SEED_SAMPLE_DATA:
            await seed_catalog()
        log.info("Database ready.")
        app.extensions.setdefault("session_store", build_session_store())
        app.extensions.setdefault("payment_gateway", CinetPayClient.from_settings())
        log.info("Session backend=%s, events enabled=%s", settings.SESSION_BACKEND, settings.KAFKA_ENABLED)

    @app.after_serving
    async def shutdown():
        for name in ("payment_gateway", "session_store"):
            resource = app.extensions.pop(name, None)
            if resource is not None:
                try:
                    await resource.close()
                except Exception as e:
                    log.warning("Failed to close %s: %s", name, e)
        await close_producer()
        await database.dispose_engine()
        log.info("Shutdown complete.")

    return app
