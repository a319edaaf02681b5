from __future__ import annotations

import logging

from flask import Blueprint, g, jsonify, request

from ..errors import RequestError
from ..middleware.rate_limit import limiter

logger = logging.getLogger("folio.thumbnails")


def create_thumbnails_blueprint(deps: dict):
    get_services = deps["get_services"]
    rate_limit_thumbnails = deps["rate_limit_thumbnails"]

    bp = Blueprint("thumbnails", __name__)

    @bp.errorhandler(RequestError)
    def handle_request_error(exc: RequestError):
        return jsonify({"error": exc.to_dict()}), exc.status_code

    @bp.route("/api/thumbnails/generate", methods=["POST"])
    @limiter.limit(rate_limit_thumbnails)
    def generate_thumbnail():
        services = get_services()
        # Unauthenticated is raised here and mapped by handle_request_error.
        caller_id = services.identity.verify(request.headers)
        g.caller_id = caller_id

        payload = request.get_json(silent=True)
        result = services.thumbnails.generate(caller_id, payload)

        resp = jsonify(result)
        resp.headers["Cache-Control"] = "no-store"
        return resp

    return bp
