"""
Request gate: authentication and authorization dependencies.

Every protected request re-reads the caller's membership for the
organization named in the access token. The role and verification status
handed to route handlers come from that read, never from the token, so a
revoked or demoted membership takes effect on the very next request.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from fastapi import Depends, Request
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.errors import AuthError, Err, ErrorCode
from app.core.tokens import TokenCodec, get_token_codec
from app.services.memberships import MembershipContext, MembershipResolver
from meet_shared.schemas.common import Role

log = structlog.get_logger()

bearer_header = APIKeyHeader(name="Authorization", auto_error=False)


@dataclass(frozen=True)
class RequestContext:
    """The authenticated caller inside their current organization."""
    user_id: uuid.UUID
    email: str
    organization_id: uuid.UUID
    role: Role
    is_verified: bool
    organization_name: str

    @classmethod
    def from_membership(cls, membership: MembershipContext) -> "RequestContext":
        return cls(
            user_id=membership.user_id,
            email=membership.email,
            organization_id=membership.organization_id,
            role=membership.role,
            is_verified=membership.is_verified,
            organization_name=membership.organization_name,
        )

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def authenticate_request(
    request: Request,
    authorization: Optional[str] = Depends(bearer_header),
    session: AsyncSession = Depends(get_session),
    codec: TokenCodec = Depends(get_token_codec),
) -> RequestContext:
    """Main authentication dependency: bearer access token plus a fresh membership read."""
    token = _bearer_token(authorization)
    if token is None:
        raise AuthError(ErrorCode.MISSING_TOKEN)

    verified = codec.verify_access(token)
    if isinstance(verified, Err):
        raise AuthError.from_err(verified)
    claims = verified.value

    membership = await MembershipResolver(session).get_membership_context(
        claims.user_id, claims.organization_id
    )
    if isinstance(membership, Err):
        log.warning(
            "gate.unauthorized_org",
            user_id=str(claims.user_id),
            org_id=str(claims.organization_id),
        )
        raise AuthError(ErrorCode.UNAUTHORIZED_ORG)

    context = RequestContext.from_membership(membership.value)
    if claims.role_hint != context.role.value:
        log.info(
            "gate.stale_role_claim",
            user_id=str(context.user_id),
            token_role=claims.role_hint,
            role=context.role.value,
        )
    request.state.auth = context
    return context


def require_role(*allowed: Role):
    """Dependency factory: the caller's current role must be one of ``allowed``."""

    async def dependency(
        context: RequestContext = Depends(authenticate_request),
    ) -> RequestContext:
        if context.role not in allowed:
            log.info(
                "gate.forbidden",
                user_id=str(context.user_id),
                role=context.role.value,
                required=[r.value for r in allowed],
            )
            raise AuthError(ErrorCode.FORBIDDEN)
        return context

    return dependency


require_admin = require_role(Role.ADMIN)
