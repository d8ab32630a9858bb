"""
Signed, URL-safe tokens for stateless pagination.

A token carries the JSON payload needed to rebuild a query (for the canvass
search, the compiled filter) together with creation and expiry timestamps.
Tokens are signed with itsdangerous so clients can hand them back on later
page requests without being able to alter them.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeSerializer


class TokenManager:
    """
    Encodes and decodes signed pagination tokens.

    Expiry is embedded in the signed envelope rather than delegated to a
    timed serializer, so tests and callers can pass an explicit "now".
    """

    def __init__(self, secret_key: str, token_expiry: int = 3600, salt: str = "pagination"):
        """
        Args:
            secret_key: Secret key for token signing
            token_expiry: Token lifetime in seconds (default: 1 hour)
            salt: Namespace so tokens from one purpose are rejected by another
        """
        self.secret_key = secret_key
        self.token_expiry = token_expiry
        self.serializer = URLSafeSerializer(secret_key, salt=salt)

    def encode_token(self, data: Dict[str, Any], now: Optional[datetime] = None) -> str:
        """Sign ``data`` into a URL-safe token string."""
        created_at = now or datetime.now(timezone.utc)
        envelope = {
            "data": data,
            "created_at": created_at.isoformat(),
            "expires_at": (created_at + timedelta(seconds=self.token_expiry)).isoformat(),
        }
        return self.serializer.dumps(json.dumps(envelope, separators=(",", ":"), sort_keys=True))

    def decode_token(self, token: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Verify a token and return the original data.

        Raises:
            BadSignature: If the token was not produced with this key and salt
            SignatureExpired: If the token is past its expiry
            ValueError: If the signed payload is malformed
        """
        envelope = self._load(token)
        expires_at = envelope.get("expires_at")
        if expires_at:
            current = now or datetime.now(timezone.utc)
            if current > datetime.fromisoformat(expires_at):
                raise SignatureExpired("Token has expired")
        data = envelope.get("data")
        if not isinstance(data, dict):
            raise ValueError("Invalid token format: missing data")
        return data

    def _load(self, token: str) -> Dict[str, Any]:
        raw = self.serializer.loads(token)
        try:
            envelope = json.loads(raw)
        except (TypeError, json.JSONDecodeError) as e:
            raise ValueError(f"Invalid token format: {e}")
        if not isinstance(envelope, dict):
            raise ValueError("Invalid token format: not an object")
        return envelope
