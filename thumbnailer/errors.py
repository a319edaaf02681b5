"""
Error taxonomy for thumbnail generation.

Request errors are raised to the caller and carry a stable ``code`` plus the
HTTP status the blueprint maps them to. Processing errors are caught by the
pipeline and reported as ``{"success": false, ...}`` payloads.
"""

from __future__ import annotations


class ThumbnailError(Exception):
    code = "internal"
    default_message = "Thumbnail generation failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class RequestError(ThumbnailError):
    status_code = 400

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class Unauthenticated(RequestError):
    code = "unauthenticated"
    status_code = 401
    default_message = "User must be authenticated"


class InvalidArgument(RequestError):
    code = "invalid-argument"
    status_code = 400
    default_message = "Invalid request"


class IdentityMismatch(RequestError):
    code = "identity-mismatch"
    status_code = 403
    default_message = "User ID mismatch"


class NotFound(RequestError):
    code = "not-found"
    status_code = 404
    default_message = "Video not found"


class PermissionDenied(RequestError):
    code = "permission-denied"
    status_code = 403
    default_message = "You do not have permission to edit this video"


class ProcessingError(ThumbnailError):
    code = "processing-failed"


class MediaFetchError(ProcessingError):
    code = "media-fetch-failed"
    default_message = "Failed to download video"


class MediaDecodeError(ProcessingError):
    code = "media-decode-failed"
    default_message = "FFmpeg processing failed"


class StorageUploadError(ProcessingError):
    code = "storage-upload-failed"
    default_message = "Failed to upload thumbnail"


class RecordUpdateError(ProcessingError):
    code = "record-update-failed"
    default_message = "Failed to update video record"
