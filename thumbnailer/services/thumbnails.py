"""
Thumbnail generation pipeline.

Guard -> Lookup -> Validate -> Extract -> Publish -> Report, run strictly in
order for one request. Request errors propagate to the caller; anything that
goes wrong while extracting or publishing is reported as a failure payload.
"""

from __future__ import annotations

import logging
import math
import os
import time
from dataclasses import dataclass
from datetime import UTC, datetime

from ..config import parse_bool
from ..errors import (
    IdentityMismatch,
    InvalidArgument,
    NotFound,
    PermissionDenied,
    RecordUpdateError,
    RequestError,
    Unauthenticated,
)
from ..metrics import THUMBNAIL_COUNT, THUMBNAIL_LATENCY, observe_stage
from .frames import DEFAULT_QUALITY_TIER, QUALITY_TIERS, ExtractedFrame
from .records import MediaRecord
from .storage import build_storage_key, format_key_timestamp, generation_nonce

logger = logging.getLogger("folio.thumbnails")

OPTIMISTIC_UPDATES = parse_bool(os.environ.get("FOLIO_THUMB_OPTIMISTIC_UPDATES", "false"))
DELETE_ORPHANS = parse_bool(os.environ.get("FOLIO_THUMB_DELETE_ORPHANS", "false"))


@dataclass(frozen=True)
class ThumbnailRequest:
    record_id: str
    timestamp_seconds: float
    caller_id: str
    quality_tier: str = DEFAULT_QUALITY_TIER


@dataclass(frozen=True)
class ThumbnailArtifact:
    source_record_id: str
    timestamp_seconds: float
    quality_tier: str
    storage_key: str
    public_reference: str
    content_type: str
    width: int
    height: int
    size_bytes: int


def _required_string(payload: dict, name: str) -> str:
    value = payload.get(name)
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgument(f"Missing or invalid parameter: {name}")
    return value.strip()


def _parse_timestamp(value) -> float:
    # bool is an int subclass; true/false are not timestamps.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidArgument("Missing or invalid parameter: timestampSeconds")
    seconds = float(value)
    if not math.isfinite(seconds):
        raise InvalidArgument("Missing or invalid parameter: timestampSeconds")
    return seconds


def authorize_request(verified_caller_id: str | None, payload) -> ThumbnailRequest:
    if not verified_caller_id:
        raise Unauthenticated()
    if not isinstance(payload, dict):
        raise InvalidArgument("Request body must be a JSON object")

    record_id = _required_string(payload, "recordId")
    caller_id = _required_string(payload, "callerId")
    if "timestampSeconds" not in payload:
        raise InvalidArgument("Missing required parameter: timestampSeconds")
    timestamp = _parse_timestamp(payload.get("timestampSeconds"))

    tier = payload.get("qualityTier")
    if tier is None:
        tier = DEFAULT_QUALITY_TIER
    if not isinstance(tier, str) or tier not in QUALITY_TIERS:
        allowed = ", ".join(QUALITY_TIERS)
        raise InvalidArgument(f"qualityTier must be one of: {allowed}")

    if caller_id != verified_caller_id:
        raise IdentityMismatch()

    return ThumbnailRequest(
        record_id=record_id,
        timestamp_seconds=timestamp,
        caller_id=caller_id,
        quality_tier=tier,
    )


def lookup_record(records, record_id: str, caller_id: str) -> MediaRecord:
    record = records.get(record_id)
    if record is None:
        raise NotFound("Video not found")
    if record.owner_id != caller_id:
        raise PermissionDenied()
    return record


def require_source(record: MediaRecord) -> str:
    if not record.source_url:
        raise NotFound("Video file not found or not accessible")
    return record.source_url


def is_valid_timestamp(timestamp_seconds: float, duration_seconds: float | None = None) -> bool:
    if timestamp_seconds < 0:
        return False
    # Only a positive duration bounds the timestamp; None and 0 both mean
    # the duration was never recorded.
    if duration_seconds is not None and duration_seconds > 0 and timestamp_seconds > duration_seconds:
        return False
    return True


def validate_timestamp(timestamp_seconds: float, duration_seconds: float | None) -> None:
    if timestamp_seconds < 0:
        raise InvalidArgument("Timestamp must not be negative")
    if not is_valid_timestamp(timestamp_seconds, duration_seconds):
        raise InvalidArgument("Timestamp exceeds video duration")


def publish_artifact(
    storage,
    records,
    *,
    record: MediaRecord,
    request: ThumbnailRequest,
    frame: ExtractedFrame,
    nonce: str | None = None,
    optimistic: bool | None = None,
    delete_orphans: bool | None = None,
) -> ThumbnailArtifact:
    optimistic = OPTIMISTIC_UPDATES if optimistic is None else optimistic
    delete_orphans = DELETE_ORPHANS if delete_orphans is None else delete_orphans

    key = build_storage_key(record.record_id, request.timestamp_seconds, nonce or generation_nonce())
    logger.info("Uploading thumbnail to %s", key)

    started = time.perf_counter()
    storage.upload(
        key,
        frame.data,
        content_type=frame.content_type,
        metadata={
            "recordId": record.record_id,
            "timestamp": format_key_timestamp(request.timestamp_seconds),
            "quality": frame.tier,
            "generatedAt": datetime.now(UTC).isoformat(),
        },
    )
    observe_stage("upload", time.perf_counter() - started)
    public_reference = storage.public_reference(key)

    try:
        records.conditional_update(
            record.record_id,
            {"poster_url": public_reference},
            expected_updated_at=record.updated_at if optimistic else None,
        )
    except RecordUpdateError:
        if delete_orphans:
            try:
                storage.delete(key)
            except Exception as exc:
                logger.warning("Failed to delete orphaned thumbnail %s: %s", key, exc)
        else:
            logger.warning("Thumbnail %s left orphaned after record update failure", key)
        raise

    logger.info("Video record %s updated with new thumbnail URL", record.record_id)
    return ThumbnailArtifact(
        source_record_id=record.record_id,
        timestamp_seconds=request.timestamp_seconds,
        quality_tier=frame.tier,
        storage_key=key,
        public_reference=public_reference,
        content_type=frame.content_type,
        width=frame.width,
        height=frame.height,
        size_bytes=len(frame.data),
    )


def _elapsed_ms(started: float) -> int:
    return int(round((time.perf_counter() - started) * 1000))


def _record_outcome(status: str, started: float) -> None:
    if THUMBNAIL_COUNT is not None:
        THUMBNAIL_COUNT.labels(status).inc()
    if THUMBNAIL_LATENCY is not None:
        THUMBNAIL_LATENCY.labels(status).observe(time.perf_counter() - started)


class ThumbnailService:
    def __init__(self, *, records, extractor, storage) -> None:
        self.records = records
        self.extractor = extractor
        self.storage = storage

    def generate(self, verified_caller_id: str | None, payload) -> dict:
        started = time.perf_counter()
        try:
            request = authorize_request(verified_caller_id, payload)
            record = lookup_record(self.records, request.record_id, request.caller_id)
            validate_timestamp(request.timestamp_seconds, record.duration_seconds)
            source_url = require_source(record)

            logger.info(
                "Generating %s thumbnail for %s at %ss",
                request.quality_tier,
                request.record_id,
                format_key_timestamp(request.timestamp_seconds),
            )
            frame = self.extractor.extract(source_url, request.timestamp_seconds, request.quality_tier)
            artifact = publish_artifact(
                self.storage, self.records, record=record, request=request, frame=frame
            )
        except RequestError as exc:
            logger.info("Thumbnail request rejected (%s): %s", exc.code, exc.message)
            _record_outcome("rejected", started)
            raise
        except Exception as exc:
            logger.error("Thumbnail generation error: %s", exc, exc_info=True)
            _record_outcome("failure", started)
            return {
                "success": False,
                "error": str(exc) or "Unknown error occurred",
                "processingTimeMs": _elapsed_ms(started),
            }

        _record_outcome("success", started)
        return {
            "success": True,
            "thumbnailUrl": artifact.public_reference,
            "processingTimeMs": _elapsed_ms(started),
        }
