from __future__ import annotations

import os

from flask import Blueprint, Response, jsonify
from prometheus_client import REGISTRY, CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest, multiprocess

from ..metrics import METRICS_ENABLED
from ..middleware.rate_limit import limiter

PROMETHEUS_MULTIPROC_DIR = (os.environ.get("PROMETHEUS_MULTIPROC_DIR") or "").strip()
PROMETHEUS_MULTIPROC_ENABLED = bool(PROMETHEUS_MULTIPROC_DIR)

metrics_bp = Blueprint("metrics", __name__)


def _get_metrics_registry() -> CollectorRegistry:
    if PROMETHEUS_MULTIPROC_ENABLED:
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        return registry
    return REGISTRY


@metrics_bp.route("/metrics")
@limiter.exempt
def metrics():
    if not METRICS_ENABLED:
        return jsonify({"error": "Metrics disabled"}), 404
    registry = _get_metrics_registry()
    return Response(generate_latest(registry), content_type=CONTENT_TYPE_LATEST)
