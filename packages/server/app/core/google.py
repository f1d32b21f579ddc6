"""
Google ID token verification.

Tokens are RS256 JWTs signed with Google's rotating keys; ``PyJWKClient``
fetches and caches the JWKS. The network fetch and signature check are
blocking, so they run on the thread pool.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import jwt
import structlog
from starlette.concurrency import run_in_threadpool

from app.core.config import Settings, get_settings
from app.core.errors import Err, ErrorCode, Ok, Result

log = structlog.get_logger()

GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = frozenset({"accounts.google.com", "https://accounts.google.com"})


@dataclass(frozen=True)
class GoogleIdentity:
    subject: str
    email: str
    name: str
    picture: Optional[str] = None


class GoogleTokenVerifier:
    def __init__(self, settings: Settings, jwks_client: Optional[jwt.PyJWKClient] = None):
        self._client_id = settings.google_client_id
        self._jwks = jwks_client or jwt.PyJWKClient(GOOGLE_JWKS_URL, cache_keys=True)

    async def verify(self, id_token: str) -> Result[GoogleIdentity]:
        if not self._client_id:
            log.error("google.client_id_missing")
            return Err(ErrorCode.INVALID_GOOGLE_TOKEN)
        try:
            claims = await run_in_threadpool(self._decode, id_token)
        except jwt.PyJWTError as exc:
            log.info("google.token_rejected", reason=type(exc).__name__)
            return Err(ErrorCode.INVALID_GOOGLE_TOKEN)

        if claims.get("iss") not in GOOGLE_ISSUERS:
            log.info("google.token_rejected", reason="issuer")
            return Err(ErrorCode.INVALID_GOOGLE_TOKEN)
        email = claims.get("email")
        if not email or claims.get("email_verified") is False:
            log.info("google.token_rejected", reason="email")
            return Err(ErrorCode.INVALID_GOOGLE_TOKEN)

        return Ok(
            GoogleIdentity(
                subject=str(claims["sub"]),
                email=str(email).lower(),
                name=claims.get("name") or str(email).split("@")[0],
                picture=claims.get("picture"),
            )
        )

    def _decode(self, id_token: str) -> dict:
        signing_key = self._jwks.get_signing_key_from_jwt(id_token)
        return jwt.decode(
            id_token,
            signing_key.key,
            algorithms=["RS256"],
            audience=self._client_id,
            options={"require": ["exp", "iat", "iss", "sub", "aud"]},
        )


@lru_cache
def get_google_verifier() -> GoogleTokenVerifier:
    return GoogleTokenVerifier(get_settings())
