from __future__ import annotations

import os

from flask_limiter import Limiter

from ..utils.request import _get_rate_limit_key

RATE_LIMIT_THUMBNAILS = os.environ.get("FOLIO_RATE_LIMIT_THUMBNAILS", "30 per minute")

limiter = Limiter(key_func=_get_rate_limit_key, default_limits=[])


def init_rate_limiter(app) -> None:
    limiter.init_app(app)
