"""
Session token codec.

Access and refresh tokens are HMAC-signed JWTs minted with two independent
secrets, so holding one secret never allows forging the other token kind.
A ``typ`` claim additionally keeps one kind from being accepted as the other.

The role carried by an access token is a snapshot taken at mint time. It is
exposed as ``AccessClaims.role_hint`` only; authorization decisions use the
role the request gate reads from the database.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional

import jwt
import structlog

from app.core.config import Settings, get_settings
from app.core.errors import Err, ErrorCode, Ok, Result

log = structlog.get_logger()

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


@dataclass(frozen=True)
class AccessClaims:
    user_id: uuid.UUID
    email: str
    role_hint: str
    organization_id: uuid.UUID
    expires_at: Optional[datetime] = field(default=None, compare=False)


@dataclass(frozen=True)
class RefreshClaims:
    user_id: uuid.UUID
    expires_at: Optional[datetime] = field(default=None, compare=False)


class TokenCodec:
    """Mint and verify access/refresh tokens."""

    def __init__(self, settings: Settings):
        self._access_secret = settings.jwt_access_secret
        self._refresh_secret = settings.jwt_refresh_secret
        self._access_ttl = settings.jwt_access_expiration
        self._refresh_ttl = settings.jwt_refresh_expiration
        self._algorithm = settings.jwt_algorithm

    # -- minting ------------------------------------------------------------

    def mint_access(
        self,
        user_id: uuid.UUID,
        email: str,
        role: str,
        organization_id: uuid.UUID,
        *,
        now: Optional[datetime] = None,
    ) -> str:
        issued_at = now or datetime.now(timezone.utc)
        payload = {
            "userId": str(user_id),
            "email": email,
            "role": role,
            "organizationId": str(organization_id),
            "typ": ACCESS_TOKEN_TYPE,
            "iat": issued_at,
            "exp": issued_at + self._access_ttl,
        }
        return jwt.encode(payload, self._access_secret, algorithm=self._algorithm)

    def mint_refresh(self, user_id: uuid.UUID, *, now: Optional[datetime] = None) -> str:
        issued_at = now or datetime.now(timezone.utc)
        payload = {
            "userId": str(user_id),
            "typ": REFRESH_TOKEN_TYPE,
            # unique per mint so two refreshes in the same second still rotate
            "jti": uuid.uuid4().hex,
            "iat": issued_at,
            "exp": issued_at + self._refresh_ttl,
        }
        return jwt.encode(payload, self._refresh_secret, algorithm=self._algorithm)

    # -- verification -------------------------------------------------------

    def verify_access(self, token: str) -> Result[AccessClaims]:
        decoded = self._decode(
            token,
            self._access_secret,
            ACCESS_TOKEN_TYPE,
            required=("email", "role", "organizationId"),
        )
        if isinstance(decoded, Err):
            return decoded
        payload = decoded.value
        try:
            return Ok(
                AccessClaims(
                    user_id=uuid.UUID(payload["userId"]),
                    email=str(payload["email"]),
                    role_hint=str(payload["role"]),
                    organization_id=uuid.UUID(payload["organizationId"]),
                    expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
                )
            )
        except (ValueError, TypeError, AttributeError):
            return Err(ErrorCode.TOKEN_INVALID)

    def verify_refresh(self, token: str) -> Result[RefreshClaims]:
        decoded = self._decode(token, self._refresh_secret, REFRESH_TOKEN_TYPE)
        if isinstance(decoded, Err):
            return decoded
        payload = decoded.value
        try:
            return Ok(
                RefreshClaims(
                    user_id=uuid.UUID(payload["userId"]),
                    expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
                )
            )
        except (ValueError, TypeError, AttributeError):
            return Err(ErrorCode.TOKEN_INVALID)

    def _decode(
        self,
        token: str,
        secret: str,
        expected_type: str,
        required: tuple[str, ...] = (),
    ) -> Result[dict]:
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self._algorithm],
                options={"require": ["exp", "iat", "userId", "typ", *required]},
            )
        except jwt.ExpiredSignatureError:
            return Err(ErrorCode.TOKEN_EXPIRED)
        except jwt.PyJWTError as exc:
            log.debug("token.rejected", reason=type(exc).__name__, expected=expected_type)
            return Err(ErrorCode.TOKEN_INVALID)
        if payload.get("typ") != expected_type:
            return Err(ErrorCode.TOKEN_INVALID)
        return Ok(payload)


@lru_cache
def get_token_codec() -> TokenCodec:
    """FastAPI dependency: the process-wide codec built from the settings."""
    return TokenCodec(get_settings())
