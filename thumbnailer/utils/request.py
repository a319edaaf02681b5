from __future__ import annotations

import ipaddress
import re

from flask import request

# Checked in order; the first header holding a parseable address wins.
CLIENT_IP_HEADERS = ("CF-Connecting-IP", "X-Forwarded-For", "X-Real-IP")

_IPV4_WITH_PORT_RE = re.compile(r"\d+\.\d+\.\d+\.\d+:\d+")


def _normalize_ip(value: str | None) -> str | None:
    if not value:
        return None

    # X-Forwarded-For lists the original client first.
    value = value.split(",", 1)[0].strip()
    if value.startswith("[") and "]" in value:
        value = value[1 : value.index("]")]
    elif _IPV4_WITH_PORT_RE.fullmatch(value):
        value = value.rsplit(":", 1)[0]

    try:
        return str(ipaddress.ip_address(value))
    except ValueError:
        return None


def _get_request_ip() -> str | None:
    for header in CLIENT_IP_HEADERS:
        ip = _normalize_ip(request.headers.get(header))
        if ip:
            return ip
    return _normalize_ip(request.remote_addr)


def _get_rate_limit_key() -> str:
    try:
        ip = _get_request_ip()
    except RuntimeError:
        # Outside a request context (CLI, background thread).
        ip = None
    return ip or "unknown"
