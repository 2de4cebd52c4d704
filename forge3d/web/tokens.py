"""
Anti-forgery tokens for mutating backend requests.

Tokens are timestamped signatures from itsdangerous, so the backend can
verify them without storing anything.
"""

from __future__ import annotations

import logging
import secrets

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

logger = logging.getLogger(__name__)

TOKEN_HEADER = "X-CSRF-Token"
_SALT = "forge3d-csrf"


class TokenService:
    """Issue and verify short-lived anti-forgery tokens."""

    def __init__(self, secret_key: str = "", max_age_seconds: int = 3600):
        if not secret_key:
            logger.warning("[Tokens] SECRET_KEY not set - tokens will not survive a restart")
            secret_key = secrets.token_hex(32)
        self.max_age_seconds = max_age_seconds
        self._serializer = URLSafeTimedSerializer(secret_key, salt=_SALT)

    def issue(self) -> str:
        return self._serializer.dumps(secrets.token_urlsafe(16))

    def verify(self, token: str | None) -> bool:
        """Check signature and age."""
        if not token:
            return False
        try:
            self._serializer.loads(token, max_age=self.max_age_seconds)
        except SignatureExpired:
            logger.info("[Tokens] Expired token rejected")
            return False
        except BadSignature:
            logger.info("[Tokens] Invalid token rejected")
            return False
        return True


__all__ = ["TokenService", "TOKEN_HEADER"]
