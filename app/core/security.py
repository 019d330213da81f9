"""
JWT access tokens, opaque refresh secrets and password hashing (bcrypt).

Both helpers are plain objects built once from settings in ``create_app``
and handed to whoever needs them; nothing here reads global state.
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import jwt
from jose.exceptions import JOSEError
from passlib.context import CryptContext

_REFRESH_BYTES = 32  # 256 bits
_RESERVED_CLAIMS = {"exp", "iat", "type"}


class SigningError(RuntimeError):
    """The access token could not be signed (bad key / algorithm)."""


class InvalidToken(ValueError):
    """Signature mismatch, malformed structure or expired token."""


# ── Passwords ───────────────────────────────────────────────────────
class PasswordHasher:
    """Salted bcrypt with a fixed work factor."""

    def __init__(self, rounds: int = 10) -> None:
        self.rounds = rounds
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
        )

    def hash(self, plain: str) -> str:
        return self._context.hash(plain)

    def verify(self, plain: str, hashed: str) -> bool:
        try:
            return self._context.verify(plain, hashed)
        except (ValueError, TypeError):
            # Unrecognised / corrupt hash in the store
            return False


# ── Tokens ──────────────────────────────────────────────────────────
class TokenIssuer:
    """Signs and verifies access tokens; mints refresh secrets."""

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        self._secret = secret
        self._algorithm = algorithm

    def issue_access_token(self, claims: dict[str, Any], ttl: timedelta) -> str:
        now = datetime.now(timezone.utc)
        payload = {k: v for k, v in claims.items() if k not in _RESERVED_CLAIMS}
        payload.update({"type": "access", "iat": now, "exp": now + ttl})
        try:
            return jwt.encode(payload, self._secret, algorithm=self._algorithm)
        except (JOSEError, TypeError, ValueError) as exc:
            raise SigningError(f"Could not sign access token: {exc}") from exc

    def verify_access_token(self, token: str) -> dict[str, Any]:
        """Return the claim set of a valid *access* token or raise ``InvalidToken``."""
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except JOSEError as exc:
            raise InvalidToken(str(exc)) from exc
        if payload.get("type") != "access" or not payload.get("sub"):
            raise InvalidToken("Not an access token")
        return payload

    @staticmethod
    def hash_for_lookup(raw: str) -> str:
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    def generate_refresh_secret(self) -> tuple[str, str]:
        """Return ``(raw_value, stored_hash)`` for a fresh refresh token."""
        raw = secrets.token_hex(_REFRESH_BYTES)
        return raw, self.hash_for_lookup(raw)
