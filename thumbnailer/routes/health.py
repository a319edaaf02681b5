import os
from datetime import UTC, datetime

from flask import Blueprint, jsonify

from ..middleware.rate_limit import limiter
from ..services.container import get_services

health_bp = Blueprint("health", __name__)

VERSION = os.environ.get("FOLIO_VERSION", "0.1.0-dev")
SERVICE_NAME = "thumbnail-generation"


@health_bp.route("/health")
@limiter.exempt
def health_check():
    status = {
        "status": "healthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "service": SERVICE_NAME,
        "services": {},
    }
    overall_healthy = True
    services = get_services()

    try:
        services.records.ping()
        status["services"]["database"] = "ok"
    except Exception as exc:
        status["services"]["database"] = f"error: {exc}"
        overall_healthy = False

    status["services"]["storage"] = "configured" if services.storage.configured else "unconfigured"

    if not overall_healthy:
        status["status"] = "unhealthy"
        return jsonify(status), 503

    return jsonify(status)


@health_bp.route("/version")
def version():
    return jsonify(
        {
            "version": VERSION,
            "release": os.environ.get("FOLIO_RELEASE", "none"),
            "environment": os.environ.get("FOLIO_ENV", "production"),
        }
    )
