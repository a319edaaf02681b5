from __future__ import annotations

import logging
import os

logger = logging.getLogger("folio.config")

REQUIRED_VARS = [
    "FOLIO_AUTH_SECRET",
    "FOLIO_STORAGE_BUCKET",
]


def validate_config() -> list[str]:
    missing = [var for var in REQUIRED_VARS if not os.environ.get(var)]
    if missing:
        # Logged, not fatal: health and metrics stay reachable while misconfigured.
        logger.error("Missing required environment variables: %s", ", ".join(missing))

    auth_secret = os.environ.get("FOLIO_AUTH_SECRET")
    if auth_secret and len(auth_secret) < 32:
        logger.warning("FOLIO_AUTH_SECRET is too short. Use at least 32 characters for security.")

    if not os.environ.get("FOLIO_STORAGE_PUBLIC_BASE_URL"):
        logger.info("FOLIO_STORAGE_PUBLIC_BASE_URL not set; thumbnails will use presigned URLs.")
    return missing
