from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time

SUPPORTED_ALG = "HS256"


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    padded = data + ("=" * (-len(data) % 4))
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def _json_segment(segment: str) -> dict | None:
    try:
        value = json.loads(_b64url_decode(segment).decode("utf-8"))
    except Exception:
        return None
    return value if isinstance(value, dict) else None


def _sign(signing_input: bytes, secret: str) -> bytes:
    return hmac.new(secret.encode("utf-8"), signing_input, hashlib.sha256).digest()


def _encode_jwt(payload: dict, secret: str) -> str:
    header = {"alg": SUPPORTED_ALG, "typ": "JWT"}
    header_b64 = _b64url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    payload_b64 = _b64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    signing_input = f"{header_b64}.{payload_b64}".encode("ascii")
    return f"{header_b64}.{payload_b64}.{_b64url_encode(_sign(signing_input, secret))}"


def _time_claim_ok(payload: dict, name: str, now: int, leeway: int) -> bool:
    value = payload.get(name)
    if value is None:
        return True
    try:
        value = int(value)
    except (TypeError, ValueError):
        return False
    if name == "exp":
        return value + leeway >= now
    return value - leeway <= now


def _decode_jwt(
    token: str, secret: str, verify_exp: bool = True, leeway_seconds: int = 30
) -> dict | None:
    if not token:
        return None
    parts = token.split(".")
    if len(parts) != 3:
        return None
    header = _json_segment(parts[0])
    # Rejects "none" and asymmetric algs; only the shared-secret scheme is trusted.
    if not header or header.get("alg") != SUPPORTED_ALG:
        return None
    try:
        signature = _b64url_decode(parts[2])
        signing_input = f"{parts[0]}.{parts[1]}".encode("ascii")
    except Exception:
        return None
    if not hmac.compare_digest(signature, _sign(signing_input, secret)):
        return None
    payload = _json_segment(parts[1])
    if payload is None:
        return None
    if verify_exp:
        now = int(time.time())
        if not _time_claim_ok(payload, "exp", now, leeway_seconds):
            return None
        if not _time_claim_ok(payload, "nbf", now, leeway_seconds):
            return None
    return payload


def _peek_jwt_payload(token: str) -> dict | None:
    if not token:
        return None
    parts = token.split(".")
    if len(parts) != 3:
        return None
    return _json_segment(parts[1])
