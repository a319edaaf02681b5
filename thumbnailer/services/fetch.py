from __future__ import annotations

import logging
import os

import requests

from ..config import env_int
from ..errors import MediaFetchError

logger = logging.getLogger("folio.fetch")

FETCH_CONNECT_TIMEOUT_SECONDS = env_int("FOLIO_FETCH_CONNECT_TIMEOUT_SECONDS", 10)
FETCH_READ_TIMEOUT_SECONDS = env_int("FOLIO_FETCH_READ_TIMEOUT_SECONDS", 120)
FETCH_CHUNK_BYTES = 1024 * 1024
# Bounds scratch disk usage per invocation; 0 disables the limit.
MAX_SOURCE_BYTES = max(0, env_int("FOLIO_THUMB_MAX_SOURCE_BYTES", 2 * 1024 * 1024 * 1024))


def _copy_stream_with_limit(chunks, dst, max_bytes: int | None) -> int:
    total = 0
    for chunk in chunks:
        if not chunk:
            continue
        total += len(chunk)
        if max_bytes and total > max_bytes:
            raise MediaFetchError("Video exceeds the maximum allowed size")
        dst.write(chunk)
    return total


class BlobFetcher:
    """Streams a remote media file to a local path."""

    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        max_bytes: int | None = None,
        timeout: tuple[int, int] | None = None,
    ) -> None:
        self._session = session or requests.Session()
        self._max_bytes = MAX_SOURCE_BYTES if max_bytes is None else max_bytes
        self._timeout = timeout or (FETCH_CONNECT_TIMEOUT_SECONDS, FETCH_READ_TIMEOUT_SECONDS)

    def stream_download(self, url: str, dst_path: str) -> int:
        logger.info("Downloading video from %s", url)
        try:
            with self._session.get(url, stream=True, timeout=self._timeout) as resp:
                if not 200 <= resp.status_code < 300:
                    reason = resp.reason or f"HTTP {resp.status_code}"
                    raise MediaFetchError(f"Failed to download video: {reason}")

                expected = resp.headers.get("Content-Length")
                with open(dst_path, "wb") as handle:
                    total = _copy_stream_with_limit(
                        resp.iter_content(chunk_size=FETCH_CHUNK_BYTES), handle, self._max_bytes
                    )
        except requests.RequestException as exc:
            raise MediaFetchError(f"Failed to download video: {exc}") from exc
        except OSError as exc:
            raise MediaFetchError(f"Failed to write video to scratch space: {exc}") from exc

        encoding = (resp.headers.get("Content-Encoding") or "identity").strip().lower()
        # Content-Length counts encoded bytes; iter_content yields decoded ones.
        if expected is not None and encoding == "identity":
            try:
                expected_bytes = int(expected)
            except (TypeError, ValueError):
                expected_bytes = None
            if expected_bytes is not None and total != expected_bytes:
                raise MediaFetchError(
                    f"Failed to download video: truncated body ({total} of {expected_bytes} bytes)"
                )
        if total == 0:
            raise MediaFetchError("Failed to download video: empty body")

        logger.info("Downloaded %d bytes to %s", total, os.path.basename(dst_path))
        return total
