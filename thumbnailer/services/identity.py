from __future__ import annotations

import logging
import os
import secrets

from ..errors import Unauthenticated
from ..utils.jwt import _decode_jwt, _peek_jwt_payload

logger = logging.getLogger("folio.identity")

AUTH_ISSUER = os.environ.get("FOLIO_AUTH_ISSUER", "folio")
AUTH_SECRET = os.environ.get("FOLIO_AUTH_SECRET", "").strip()
AUTH_AUDIENCE = (os.environ.get("FOLIO_AUTH_AUDIENCE") or "").strip()


def _get_bearer_token(headers) -> str | None:
    auth_header = headers.get("Authorization") if headers else None
    if not auth_header or not auth_header.lower().startswith("bearer "):
        return None
    return auth_header[7:].strip() or None


class IdentityVerifier:
    """
    Verifies identity-provider bearer tokens (HS256) and yields the caller id.

    The caller id is the token's ``sub`` claim. Expiry and issuer are
    enforced; audience only when configured.
    """

    def __init__(
        self,
        *,
        secret: str | None = None,
        issuer: str | None = None,
        audience: str | None = None,
    ) -> None:
        self._secret = secret if secret is not None else AUTH_SECRET
        if not self._secret:
            # Nothing external can mint tokens for a random secret, so every
            # request is rejected until FOLIO_AUTH_SECRET is configured.
            self._secret = secrets.token_urlsafe(48)
            logger.warning("FOLIO_AUTH_SECRET not set; all callers will be unauthenticated.")
        self._issuer = issuer if issuer is not None else AUTH_ISSUER
        self._audience = audience if audience is not None else AUTH_AUDIENCE

    def caller_id(self, headers) -> str | None:
        token = _get_bearer_token(headers)
        if not token:
            return None
        if not _peek_jwt_payload(token):
            return None
        claims = _decode_jwt(token, self._secret, verify_exp=True)
        if not claims:
            return None
        # Provider tokens must expire; _decode_jwt only checks exp when present.
        exp = claims.get("exp")
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            return None
        if self._issuer and claims.get("iss") != self._issuer:
            return None
        if self._audience:
            aud = claims.get("aud")
            audiences = aud if isinstance(aud, list) else [aud]
            if self._audience not in audiences:
                return None
        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject.strip():
            return None
        return subject.strip()

    def verify(self, headers) -> str:
        caller = self.caller_id(headers)
        if caller is None:
            raise Unauthenticated()
        return caller
